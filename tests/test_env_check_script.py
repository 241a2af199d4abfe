"""Tests for the configuration and scheduler inspection script."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from app.clients.sqlite_store import SQLiteStore
from app.models.messages import MessageStatus
from app.services.scheduled_messages import ScheduledMessageRegistry
from scripts import check_env

REQUIRED_ENV_KEYS = [
    "SLACK_CLIENT_ID",
    "SLACK_CLIENT_SECRET",
    "SLACK_REDIRECT_URI",
    "SCHEDULER_DB_PATH",
]


def _write_env(env_path: Path, **values: str) -> None:
    contents = "\n".join(f"{key}={value}" for key, value in values.items())
    env_path.write_text(contents + "\n", encoding="utf-8")


def _clear_required_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in REQUIRED_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.mark.parametrize("command", ["record", "verify", "check", "pending"])
def test_main_requires_existing_env_file(tmp_path: Path, command: str) -> None:
    env_file = tmp_path / ".missing-env"
    hash_file = tmp_path / ".env.sha256"

    argv = [command, "--env-file", str(env_file)]
    if command in ("record", "verify"):
        argv.extend(["--hash-file", str(hash_file)])

    exit_code = check_env.main(argv)
    assert exit_code == check_env.EXIT_RUNTIME_ERROR


def test_record_and_verify_detects_mismatched_checksum(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / ".env"
    hash_file = tmp_path / ".env.sha256"

    _clear_required_env(monkeypatch)
    _write_env(
        env_file,
        SLACK_CLIENT_ID="abc",
        SLACK_CLIENT_SECRET="secret",
        SLACK_REDIRECT_URI="https://example.com/oauth/callback",
    )

    exit_code = check_env.main(
        ["record", "--env-file", str(env_file), "--hash-file", str(hash_file)]
    )
    assert exit_code == check_env.EXIT_OK
    assert hash_file.read_text(encoding="utf-8").strip()

    _clear_required_env(monkeypatch)
    exit_code = check_env.main(
        ["verify", "--env-file", str(env_file), "--hash-file", str(hash_file)]
    )
    assert exit_code == check_env.EXIT_OK

    _write_env(
        env_file,
        SLACK_CLIENT_ID="abc",
        SLACK_CLIENT_SECRET="different",
        SLACK_REDIRECT_URI="https://example.com/oauth/callback",
    )

    _clear_required_env(monkeypatch)
    exit_code = check_env.main(
        ["verify", "--env-file", str(env_file), "--hash-file", str(hash_file)]
    )
    assert exit_code == check_env.EXIT_CHECKSUM_ERROR


def test_validation_failure_for_missing_required_values(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / ".env"

    _clear_required_env(monkeypatch)
    _write_env(
        env_file,
        SLACK_CLIENT_ID="abc",
        SLACK_REDIRECT_URI="https://example.com/oauth/callback",
    )

    exit_code = check_env.main(["check", "--env-file", str(env_file)])
    assert exit_code == check_env.EXIT_VALIDATION_ERROR


def test_pending_reports_overdue_messages(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    env_file = tmp_path / ".env"
    db_path = tmp_path / "scheduler.db"

    registry = ScheduledMessageRegistry(SQLiteStore(str(db_path)))
    now = datetime.now(timezone.utc)
    overdue = registry.create(
        tenant_id="T1", channel_id="C1", text="old", send_at=now - timedelta(minutes=5)
    )
    registry.create(
        tenant_id="T1", channel_id="C1", text="new", send_at=now + timedelta(hours=1)
    )
    sent = registry.create(
        tenant_id="T1", channel_id="C1", text="done", send_at=now - timedelta(hours=1)
    )
    registry.transition(sent.id, MessageStatus.SENT)

    _clear_required_env(monkeypatch)
    _write_env(
        env_file,
        SLACK_CLIENT_ID="abc",
        SLACK_CLIENT_SECRET="secret",
        SLACK_REDIRECT_URI="https://example.com/oauth/callback",
        SCHEDULER_DB_PATH=str(db_path),
    )

    exit_code = check_env.main(["pending", "--env-file", str(env_file)])

    assert exit_code == check_env.EXIT_OK
    output = capsys.readouterr().out
    assert "scheduled: 2" in output
    assert "sent: 1" in output
    assert f"overdue {overdue.id}" in output
    assert output.count("overdue ") == 1
