try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from app.clients.slack_web import SlackAPIError
from app.main import app, lifespan
from app.models.oauth import SlackCredential
from app.schemas import SlackChannel
from app.services import (
    DeliveryError,
    DeliveryResult,
    MessageDispatcher,
    MessageSchedulingService,
    ScheduledMessageRegistry,
    SlackTokenService,
)
from app.services.slack_tokens import CredentialNotFoundError

pytestmark = pytest.mark.anyio


class RecordingGateway:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.channels_error: Exception | None = None

    async def send(self, tenant_id: str, channel_id: str, text: str) -> DeliveryResult:
        if tenant_id != "T1":
            raise DeliveryError("no credential") from CredentialNotFoundError(tenant_id)
        if channel_id == "C-broken":
            raise DeliveryError("chat.postMessage failed: channel_not_found")
        self.sent.append((tenant_id, channel_id, text))
        return DeliveryResult(channel_id=channel_id, ts="1.0")

    async def list_channels(self, tenant_id: str) -> list[SlackChannel]:
        if tenant_id != "T1":
            raise CredentialNotFoundError(tenant_id)
        if self.channels_error is not None:
            raise self.channels_error
        return [SlackChannel(id="C1", name="general", is_member=True)]


class StubOAuthClient:
    async def refresh_token(self, refresh_token: str):  # pragma: no cover - not expected
        raise AssertionError("refresh not expected")


@pytest.fixture()
def wired(store):
    from app import dependencies

    gateway = RecordingGateway()
    tokens = SlackTokenService(store=store, oauth_client=StubOAuthClient())
    tokens.put(SlackCredential(tenant_id="T1", access_token="xoxb-1"))
    tokens.put(SlackCredential(tenant_id="T2", access_token="xoxb-2"))
    registry = ScheduledMessageRegistry(store)
    dispatcher = MessageDispatcher(registry=registry, gateway=gateway)
    scheduler = MessageSchedulingService(registry=registry, dispatcher=dispatcher)

    app.dependency_overrides.clear()
    app.dependency_overrides.update(
        {
            dependencies.get_delivery_gateway: lambda: gateway,
            dependencies.get_slack_token_service: lambda: tokens,
            dependencies.get_scheduling_service: lambda: scheduler,
        }
    )

    yield gateway, registry, dispatcher

    app.dependency_overrides.clear()


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    )


def _in(seconds: float) -> str:
    return (datetime.now(timezone.utc) + timedelta(seconds=seconds)).isoformat()


async def test_health() -> None:
    async with _client() as client:
        response = await client.get("/api/health")
    assert response.json() == {"status": "ok"}


async def test_scheduled_message_is_delivered_end_to_end(wired) -> None:
    gateway, _, dispatcher = wired
    async with _client() as client:
        created = await client.post(
            "/api/scheduled-messages",
            json={"tenant_id": "T1", "channel_id": "C1", "text": "hi", "send_at": _in(0.3)},
        )
        assert created.status_code == 201
        message_id = created.json()["id"]
        assert created.json()["status"] == "scheduled"

        await asyncio.sleep(0.5)
        await dispatcher.wait_idle()

        fetched = await client.get(
            f"/api/scheduled-messages/{message_id}", params={"tenant_id": "T1"}
        )

    assert fetched.status_code == 200
    assert fetched.json()["status"] == "sent"
    assert gateway.sent == [("T1", "C1", "hi")]


async def test_cancel_immediately_prevents_delivery(wired) -> None:
    gateway, registry, dispatcher = wired
    async with _client() as client:
        created = await client.post(
            "/api/scheduled-messages",
            json={"tenant_id": "T1", "channel_id": "C1", "text": "later", "send_at": _in(1000)},
        )
        message_id = created.json()["id"]

        canceled = await client.delete(
            f"/api/scheduled-messages/{message_id}", params={"tenant_id": "T1"}
        )
        again = await client.delete(
            f"/api/scheduled-messages/{message_id}", params={"tenant_id": "T1"}
        )

    assert canceled.status_code == 200
    assert canceled.json() == {"id": message_id, "status": "canceled", "outcome": "canceled"}
    assert again.status_code == 200
    assert again.json()["outcome"] == "already_final"
    assert dispatcher.armed_ids() == []
    assert registry.get(message_id).status.value == "canceled"
    assert gateway.sent == []


async def test_cancel_is_scoped_to_owning_tenant(wired) -> None:
    _, registry, dispatcher = wired
    async with _client() as client:
        created = await client.post(
            "/api/scheduled-messages",
            json={"tenant_id": "T1", "channel_id": "C1", "text": "mine", "send_at": _in(1000)},
        )
        message_id = created.json()["id"]

        foreign = await client.delete(
            f"/api/scheduled-messages/{message_id}", params={"tenant_id": "T2"}
        )
        missing = await client.delete(
            "/api/scheduled-messages/does-not-exist", params={"tenant_id": "T1"}
        )
        foreign_get = await client.get(
            f"/api/scheduled-messages/{message_id}", params={"tenant_id": "T2"}
        )

    assert foreign.status_code == 404
    assert missing.status_code == 404
    assert foreign_get.status_code == 404
    assert registry.get(message_id).status.value == "scheduled"
    await dispatcher.shutdown()


async def test_list_scheduled_messages_in_creation_order(wired) -> None:
    _, _, dispatcher = wired
    async with _client() as client:
        ids = []
        for text in ("first", "second"):
            created = await client.post(
                "/api/scheduled-messages",
                json={"tenant_id": "T1", "channel_id": "C1", "text": text, "send_at": _in(1000)},
            )
            ids.append(created.json()["id"])
        await client.post(
            "/api/scheduled-messages",
            json={"tenant_id": "T2", "channel_id": "C1", "text": "other", "send_at": _in(1000)},
        )

        listed = await client.get("/api/scheduled-messages", params={"tenant_id": "T1"})

    body = listed.json()["scheduled"]
    assert [item["id"] for item in body] == ids
    assert [item["text"] for item in body] == ["first", "second"]
    assert all(item["status"] == "scheduled" for item in body)
    await dispatcher.shutdown()


async def test_schedule_rejects_past_send_at(wired) -> None:
    _, registry, _ = wired
    async with _client() as client:
        response = await client.post(
            "/api/scheduled-messages",
            json={"tenant_id": "T1", "channel_id": "C1", "text": "hi", "send_at": _in(-5)},
        )
    assert response.status_code == 400
    assert registry.list_by_tenant("T1") == []


async def test_schedule_requires_connected_workspace(wired) -> None:
    async with _client() as client:
        response = await client.post(
            "/api/scheduled-messages",
            json={"tenant_id": "T404", "channel_id": "C1", "text": "hi", "send_at": _in(60)},
        )
    assert response.status_code == 401


async def test_schedule_validates_payload(wired) -> None:
    async with _client() as client:
        response = await client.post(
            "/api/scheduled-messages",
            json={"tenant_id": "T1", "channel_id": "C1", "text": "", "send_at": _in(60)},
        )
    assert response.status_code == 422


async def test_send_message_now(wired) -> None:
    gateway, _, _ = wired
    async with _client() as client:
        ok = await client.post(
            "/api/messages", json={"tenant_id": "T1", "channel_id": "C1", "text": "now"}
        )
        broken = await client.post(
            "/api/messages", json={"tenant_id": "T1", "channel_id": "C-broken", "text": "now"}
        )
        unknown = await client.post(
            "/api/messages", json={"tenant_id": "T9", "channel_id": "C1", "text": "now"}
        )

    assert ok.status_code == 200
    assert ok.json() == {"channel_id": "C1", "ts": "1.0"}
    assert broken.status_code == 502
    assert unknown.status_code == 401
    assert gateway.sent == [("T1", "C1", "now")]


async def test_list_channels(wired) -> None:
    gateway, _, _ = wired
    async with _client() as client:
        ok = await client.get("/api/channels", params={"tenant_id": "T1"})
        unknown = await client.get("/api/channels", params={"tenant_id": "T9"})
        gateway.channels_error = SlackAPIError("conversations.list", "ratelimited")
        failing = await client.get("/api/channels", params={"tenant_id": "T1"})

    assert ok.status_code == 200
    assert ok.json()["channels"][0]["id"] == "C1"
    assert unknown.status_code == 401
    assert failing.status_code == 502


async def test_lifespan_reconciles_and_stops_dispatcher() -> None:
    from app import dependencies

    events: list[str] = []

    class FakeReconciler:
        def reconcile(self):
            events.append("reconcile")

    class FakeDispatcher:
        async def shutdown(self):
            events.append("shutdown")

    app.dependency_overrides.update(
        {
            dependencies.get_schedule_reconciler: lambda: FakeReconciler(),
            dependencies.get_message_dispatcher: lambda: FakeDispatcher(),
        }
    )
    try:
        async with lifespan(app):
            assert events == ["reconcile"]
    finally:
        app.dependency_overrides.clear()

    assert events == ["reconcile", "shutdown"]


async def test_cors_headers_for_browser_calls() -> None:
    async with _client() as client:
        simple = await client.get(
            "/api/health", headers={"origin": "https://app.example.com"}
        )
        preflight = await client.options(
            "/api/scheduled-messages",
            headers={
                "origin": "https://app.example.com",
                "access-control-request-method": "POST",
                "access-control-request-headers": "content-type",
            },
        )

    assert simple.headers["access-control-allow-origin"] == "*"
    assert preflight.status_code == 200
    assert preflight.headers["access-control-allow-origin"] == "*"


async def test_cors_origin_follows_frontend_base_url() -> None:
    from app.core.config import AppSettings

    settings = AppSettings(FRONTEND_BASE_URL="https://app.example.com/oauth/success")

    assert settings.cors_origins() == ["https://app.example.com"]
