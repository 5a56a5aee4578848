"""Telephony provider integration.

This module provides:
- Call-start webhook returning TwiML (Twilio) or LaML (SignalWire) that connects
  the call to a bidirectional media stream.
- The media stream WebSocket (``/<provider>-media``) that bridges the call to the
  realtime translation backend.
"""

from __future__ import annotations

import logging
from xml.sax.saxutils import escape

from fastapi import APIRouter, Depends, HTTPException, Request, Response, WebSocket

from api.dependencies import get_session_store, get_translation_client
from bridge.errors import WebhookSignatureError
from bridge.legs import WebSocketCallerLeg
from bridge.relay import CallBridge, TranslationClient
from bridge.store import SessionStore
from config.settings import get_settings
from integrations.twilio_client import get_provider_config, verify_webhook

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["telephony"])

# WebSocket close code for a policy violation (unrecognized media path).
POLICY_VIOLATION = 1008


def _markup_response(xml: str) -> Response:
    # Twilio and SignalWire both expect application/xml
    return Response(content=xml, media_type="application/xml")


def _to_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url.removeprefix("https://")
    if http_url.startswith("http://"):
        return "ws://" + http_url.removeprefix("http://")
    return http_url


def _markup_connect_stream(*, stream_url: str) -> str:
    stream = escape(stream_url, {'"': "&quot;"})
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        "<Connect>"
        f"<Stream url=\"{stream}\" />"
        "</Connect>"
        "</Response>"
    )


def _stream_url(request: Request) -> str:
    settings = get_settings()
    if settings.public_base_url:
        return _to_ws_url(settings.public_base_url.rstrip("/") + settings.media_path)
    host = request.headers.get("host") or request.url.netloc
    return f"wss://{host}{settings.media_path}"


def _webhook_url(request: Request) -> str:
    settings = get_settings()
    if settings.public_base_url:
        return f"{settings.public_base_url.rstrip('/')}{request.url.path}"
    return str(request.url)


@router.post("/incoming-call")
async def incoming_call(request: Request) -> Response:
    settings = get_settings()
    form = await request.form()
    call_sid = str(form.get("CallSid") or "").strip() or "unknown"

    if settings.validate_webhook_signature:
        params = {key: str(value) for key, value in form.items()}
        try:
            verify_webhook(
                get_provider_config(settings),
                url=_webhook_url(request),
                params=params,
                headers=request.headers,
            )
        except WebhookSignatureError as exc:
            LOGGER.warning("Rejected call-start webhook for %s: %s", call_sid, exc.detail)
            raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc

    stream_url = _stream_url(request)
    LOGGER.info("Incoming %s call %s; streaming to %s", settings.telephony_provider, call_sid, stream_url)
    return _markup_response(_markup_connect_stream(stream_url=stream_url))


@router.websocket("/{provider}-media")
async def media_stream(
    websocket: WebSocket,
    provider: str,
    store: SessionStore = Depends(get_session_store),
    client: TranslationClient = Depends(get_translation_client),
) -> None:
    settings = get_settings()
    if provider != settings.telephony_provider:
        LOGGER.warning("Invalid WebSocket path: %s", websocket.url.path)
        await websocket.close(code=POLICY_VIOLATION)
        return

    await websocket.accept()
    bridge = CallBridge(WebSocketCallerLeg(websocket), client, store, settings=settings)
    await bridge.run()
