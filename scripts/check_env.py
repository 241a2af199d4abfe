"""Operational checks for the scheduler's configuration and persisted state.

The tool offers three kinds of checks:

1. It instantiates ``AppSettings`` from the provided ``.env`` file, surfacing
   missing Slack credentials or malformed values before the service starts.
2. It records and verifies a checksum of the ``.env`` file so unexpected
   edits are detected.
3. It summarizes the scheduler database, counting messages per status and
   listing ``scheduled`` ones whose delivery time has already passed. Those
   will be marked failed by the next start.

Example usages::

    python -m scripts.check_env record --env-file /opt/scheduler/.env \
        --hash-file /opt/scheduler/.env.sha256

    python -m scripts.check_env verify --env-file /opt/scheduler/.env \
        --hash-file /opt/scheduler/.env.sha256

    python -m scripts.check_env pending --env-file /opt/scheduler/.env
"""

from __future__ import annotations

import argparse
import hashlib
import sys
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from app.clients.sqlite_store import SQLiteStore
from app.core.config import AppSettings, _load_env_file
from app.models.messages import MESSAGE_PARTITION, MessageStatus, ScheduledMessage

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_RUNTIME_ERROR = 5


def _compute_hash(env_file: Path) -> str:
    """Return the SHA256 checksum for the target environment file."""
    return hashlib.sha256(env_file.read_bytes()).hexdigest()


def _load_settings(env_file: Path) -> AppSettings:
    """Ensure required settings can be loaded from the supplied env file."""
    _load_env_file(str(env_file))
    return AppSettings()  # type: ignore[call-arg]


def _record_checksum(env_file: Path, hash_file: Path) -> int:
    """Persist the current checksum to ``hash_file``."""
    checksum = _compute_hash(env_file)
    hash_file.write_text(f"{checksum}\n", encoding="utf-8")
    print(f"Recorded checksum to {hash_file} ({checksum})")
    return EXIT_OK


def _verify_checksum(env_file: Path, hash_file: Path) -> int:
    """Compare the current checksum to the recorded baseline."""
    if not hash_file.exists():
        print(
            f"Expected checksum file {hash_file} is missing. "
            "Re-run with the 'record' command to establish a baseline.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    expected = hash_file.read_text(encoding="utf-8").strip()
    actual = _compute_hash(env_file)
    if expected == actual:
        print("Environment checksum OK.")
        return EXIT_OK

    print(
        "Environment checksum mismatch!\n"
        f"  expected: {expected}\n"
        f"  actual:   {actual}\n"
        "Investigate recent changes before restarting services.",
        file=sys.stderr,
    )
    return EXIT_CHECKSUM_ERROR


def _report_pending(db_path: str, now: datetime | None = None) -> int:
    """Print message counts per status and the overdue scheduled messages."""
    now = now or datetime.now(timezone.utc)
    store = SQLiteStore(db_path)
    messages = [
        ScheduledMessage.from_item(item)
        for item in store.list_items(partition_key=MESSAGE_PARTITION)
    ]
    counts = Counter(message.status for message in messages)
    for status in MessageStatus:
        print(f"{status.value}: {counts.get(status, 0)}")

    overdue = [
        message
        for message in messages
        if message.status is MessageStatus.SCHEDULED and message.send_at <= now
    ]
    for message in overdue:
        print(
            f"overdue {message.id} tenant={message.tenant_id} "
            f"send_at={message.send_at.isoformat()}"
        )
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate settings, detect .env drift and inspect pending messages."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common_arguments(subparser: argparse.ArgumentParser) -> None:
        subparser.add_argument(
            "--env-file",
            default=".env",
            type=Path,
            help="Path to the environment file (default: .env in the repo root).",
        )

    for name, help_text in (
        ("record", "Validate settings and store the checksum baseline."),
        ("verify", "Validate settings and compare the checksum with the baseline."),
    ):
        subparser = subparsers.add_parser(name, help=help_text)
        add_common_arguments(subparser)
        subparser.add_argument(
            "--hash-file",
            required=True,
            type=Path,
            help="Location of the checksum baseline.",
        )

    check_parser = subparsers.add_parser(
        "check",
        help="Validate settings without touching any checksum files.",
    )
    add_common_arguments(check_parser)

    pending_parser = subparsers.add_parser(
        "pending",
        help="Validate settings and summarize the scheduler database.",
    )
    add_common_arguments(pending_parser)

    return parser


def _ensure_env_file(env_file: Path) -> None:
    if not env_file.exists():
        raise FileNotFoundError(
            f"Environment file {env_file} does not exist. "
            "Ensure the path is correct or create it before running this tool."
        )


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    env_file: Path = args.env_file

    try:
        _ensure_env_file(env_file)
        settings = _load_settings(env_file)
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    except ValidationError as exc:
        print(
            "Settings validation failed. Missing or invalid values detected:\n"
            f"{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR
    except Exception as exc:  # pylint: disable=broad-except
        print(f"Unexpected error during validation: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    command: str = args.command
    handlers: dict[str, Callable[[], int]] = {
        "record": lambda: _record_checksum(env_file, args.hash_file),
        "verify": lambda: _verify_checksum(env_file, args.hash_file),
        "check": lambda: EXIT_OK,
        "pending": lambda: _report_pending(settings.scheduler.db_path),
    }
    return handlers[command]()


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
