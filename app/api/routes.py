"""
FastAPI routes for the Slack message scheduler.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from http import HTTPStatus
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from app.clients.slack_auth import OAuthTokenExchangeError
from app.clients.slack_web import SlackAPIError
from app.dependencies import (
    get_app_settings,
    get_delivery_gateway,
    get_oauth_state_encoder,
    get_scheduling_service,
    get_slack_oauth_client,
    get_slack_token_service,
)
from app.schemas import (
    CancelMessageResponse,
    ChannelListResponse,
    OAuthCallbackPayload,
    OAuthConnectionResult,
    ScheduleMessageRequest,
    ScheduleMessageResponse,
    ScheduledMessageList,
    SendMessageRequest,
    SendMessageResponse,
)
from app.models.messages import ScheduledMessage
from app.services import (
    CredentialNotFoundError,
    DeliveryError,
    MessageNotFoundError,
    ScheduleInPastError,
    TokenRefreshError,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _not_connected(tenant_id: str) -> HTTPException:
    return HTTPException(
        status_code=HTTPStatus.UNAUTHORIZED,
        detail=f"Slack workspace {tenant_id} is not connected.",
    )


def _message_not_found() -> HTTPException:
    return HTTPException(
        status_code=HTTPStatus.NOT_FOUND, detail="Scheduled message not found."
    )


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/auth/slack/authorize", status_code=HTTPStatus.OK)
async def start_slack_oauth_flow(
    request: Request,
    oauth_client: Annotated[Any, Depends(get_slack_oauth_client)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    redirect_to: str | None = Query(
        default=None,
        description="Optional URL to redirect back to on successful installation.",
    ),
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the Slack consent screen.",
    ),
) -> Any:
    """
    Kick off the OAuth flow by generating a state token and authorization URL.
    """
    state_payload = {
        "nonce": uuid.uuid4().hex,
        "redirect_to": redirect_to,
        "issued_at": datetime.now(timezone.utc).isoformat(),
    }
    state = state_encoder.encode(state_payload)
    authorization_url = oauth_client.build_authorization_url(state=state)

    accept_header = request.headers.get("accept", "")
    wants_html = "text/html" in accept_header.lower()
    if redirect or wants_html:
        return RedirectResponse(url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT)

    return {"authorization_url": authorization_url, "state": state}


@router.post(
    "/auth/slack/callback",
    response_model=OAuthConnectionResult,
    status_code=HTTPStatus.OK,
)
async def handle_slack_oauth_callback(
    payload: OAuthCallbackPayload,
    oauth_client: Annotated[Any, Depends(get_slack_oauth_client)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    token_service: Annotated[Any, Depends(get_slack_token_service)],
    settings: Annotated[Any, Depends(get_app_settings)],
) -> OAuthConnectionResult:
    """Complete the OAuth exchange and store the workspace credential."""
    state_data = state_encoder.decode(payload.state)

    issued_at_raw = state_data.get("issued_at")
    if not issued_at_raw:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Missing issued_at in state token.",
        )

    try:
        issued_at = datetime.fromisoformat(issued_at_raw)
    except ValueError as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Invalid issued_at in state token.",
        ) from exc

    if issued_at.tzinfo is None:
        issued_at = issued_at.replace(tzinfo=timezone.utc)

    now = datetime.now(timezone.utc)
    if now - issued_at > timedelta(seconds=settings.oauth.state_ttl_seconds):
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="OAuth state token has expired."
        )

    try:
        grant = await oauth_client.exchange_authorization_code(payload.code)
    except OAuthTokenExchangeError as exc:
        logger.warning("Slack OAuth exchange failed: %s", exc)
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Failed to exchange authorization code.",
        ) from exc

    if not grant.team_id:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Slack did not return a team identifier.",
        )

    token_service.store_grant(grant.team_id, grant)

    return OAuthConnectionResult(
        tenant_id=grant.team_id,
        team_name=grant.team_name,
        redirect_to=state_data.get("redirect_to"),
    )


@router.get("/auth/slack/callback", status_code=HTTPStatus.OK)
async def handle_slack_oauth_callback_get(
    request: Request,
    oauth_client: Annotated[Any, Depends(get_slack_oauth_client)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    token_service: Annotated[Any, Depends(get_slack_token_service)],
    settings: Annotated[Any, Depends(get_app_settings)],
    state: str = Query(..., description="OAuth state token."),
    code: str = Query(..., description="Authorization code returned by Slack."),
    redirect: bool = Query(
        default=False,
        description="When true, redirect browser clients instead of returning JSON.",
    ),
) -> Response:
    payload = OAuthCallbackPayload(state=state, code=code)
    result = await handle_slack_oauth_callback(
        payload=payload,
        oauth_client=oauth_client,
        state_encoder=state_encoder,
        token_service=token_service,
        settings=settings,
    )

    redirect_target = result.redirect_to or settings.frontend_base_url
    accept_header = request.headers.get("accept", "")
    wants_html = "text/html" in accept_header.lower()
    if redirect_target and (redirect or wants_html):
        return RedirectResponse(url=str(redirect_target), status_code=HTTPStatus.TEMPORARY_REDIRECT)
    return JSONResponse(result.model_dump())


@router.get("/channels", response_model=ChannelListResponse, status_code=HTTPStatus.OK)
async def list_channels(
    gateway: Annotated[Any, Depends(get_delivery_gateway)],
    tenant_id: str = Query(..., min_length=1, description="Connected Slack team id."),
) -> ChannelListResponse:
    """List channels visible to the workspace's bot token."""
    try:
        channels = await gateway.list_channels(tenant_id)
    except CredentialNotFoundError as exc:
        raise _not_connected(tenant_id) from exc
    except (TokenRefreshError, SlackAPIError) as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_GATEWAY, detail=str(exc)) from exc
    return ChannelListResponse(channels=channels)


@router.post("/messages", response_model=SendMessageResponse, status_code=HTTPStatus.OK)
async def send_message(
    payload: SendMessageRequest,
    gateway: Annotated[Any, Depends(get_delivery_gateway)],
) -> SendMessageResponse:
    """Post a message immediately."""
    try:
        result = await gateway.send(payload.tenant_id, payload.channel_id, payload.text)
    except DeliveryError as exc:
        if isinstance(exc.__cause__, CredentialNotFoundError):
            raise _not_connected(payload.tenant_id) from exc
        raise HTTPException(status_code=HTTPStatus.BAD_GATEWAY, detail=str(exc)) from exc
    return SendMessageResponse(channel_id=result.channel_id, ts=result.ts)


@router.post(
    "/scheduled-messages",
    response_model=ScheduleMessageResponse,
    status_code=HTTPStatus.CREATED,
)
async def schedule_message(
    payload: ScheduleMessageRequest,
    scheduler: Annotated[Any, Depends(get_scheduling_service)],
    token_service: Annotated[Any, Depends(get_slack_token_service)],
) -> ScheduleMessageResponse:
    """Persist a message for delivery at ``send_at`` and arm its timer."""
    try:
        token_service.get(payload.tenant_id)
    except CredentialNotFoundError as exc:
        raise _not_connected(payload.tenant_id) from exc

    try:
        message = scheduler.schedule(
            tenant_id=payload.tenant_id,
            channel_id=payload.channel_id,
            text=payload.text,
            send_at=payload.send_at,
        )
    except ScheduleInPastError as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc)) from exc
    return ScheduleMessageResponse(id=message.id, status=message.status)


@router.get(
    "/scheduled-messages",
    response_model=ScheduledMessageList,
    status_code=HTTPStatus.OK,
)
async def list_scheduled_messages(
    scheduler: Annotated[Any, Depends(get_scheduling_service)],
    tenant_id: str = Query(..., min_length=1),
) -> ScheduledMessageList:
    """List every scheduled message of a tenant in creation order."""
    return ScheduledMessageList(scheduled=scheduler.list(tenant_id))


@router.get(
    "/scheduled-messages/{message_id}",
    response_model=ScheduledMessage,
    status_code=HTTPStatus.OK,
)
async def get_scheduled_message(
    message_id: str,
    scheduler: Annotated[Any, Depends(get_scheduling_service)],
    tenant_id: str = Query(..., min_length=1),
) -> ScheduledMessage:
    try:
        return scheduler.get(tenant_id, message_id)
    except MessageNotFoundError as exc:
        raise _message_not_found() from exc


@router.delete(
    "/scheduled-messages/{message_id}",
    response_model=CancelMessageResponse,
    status_code=HTTPStatus.OK,
)
async def cancel_scheduled_message(
    message_id: str,
    scheduler: Annotated[Any, Depends(get_scheduling_service)],
    tenant_id: str = Query(..., min_length=1),
) -> CancelMessageResponse:
    """Cancel a pending message; canceling a finished one is a no-op."""
    try:
        result = scheduler.cancel(tenant_id, message_id)
    except MessageNotFoundError as exc:
        raise _message_not_found() from exc
    return CancelMessageResponse(
        id=result.message.id,
        status=result.message.status,
        outcome=result.outcome.value,
    )


__all__ = ["router"]
