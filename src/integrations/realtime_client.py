"""Client for the realtime speech-translation backend.

Session setup is two steps:
1. Negotiation: one HTTP request that provisions a backend session and returns its id.
2. Streaming: a long-lived WebSocket that carries audio both ways, configured
   with a single ``session.update`` event right after it opens.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlencode

import httpx
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException
from websockets.protocol import State

from bridge.errors import BackendConnectError, LegClosedError, NegotiationFailedError
from config.settings import Settings, get_settings

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionDescriptor:
    session_id: str
    model: str | None = None
    expires_at: int | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


class BackendLeg:
    """Backend leg backed by a ``websockets`` client connection."""

    def __init__(self, connection: ClientConnection) -> None:
        self._connection = connection

    @property
    def is_open(self) -> bool:
        return self._connection.state is State.OPEN

    async def receive_text(self) -> str | None:
        try:
            message = await self._connection.recv()
        except ConnectionClosedOK:
            return None
        except ConnectionClosed as exc:
            LOGGER.warning("Backend connection lost: %s", exc)
            return None
        if isinstance(message, bytes):
            return message.decode("utf-8", errors="replace")
        return message

    async def send_json(self, message: dict[str, Any]) -> None:
        try:
            await self._connection.send(json.dumps(message))
        except ConnectionClosed as exc:
            raise LegClosedError(f"backend send failed: {exc}") from exc

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self._connection.state in (State.CLOSING, State.CLOSED):
            return
        await self._connection.close(code=code, reason=reason)


class RealtimeTranslationClient:
    """Negotiates and opens interpreter sessions against the realtime API."""

    def __init__(self, settings: Settings | None = None, *, http_client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings or get_settings()
        self._http_client = http_client

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._settings.openai_api_key}",
            "OpenAI-Beta": self._settings.realtime_beta_header,
        }

    def _modalities(self) -> list[str]:
        if self._settings.include_text_modality:
            return ["audio", "text"]
        return ["audio"]

    async def negotiate(self) -> SessionDescriptor:
        settings = self._settings
        if not settings.openai_api_key:
            raise NegotiationFailedError("OPENAI_API_KEY is not configured")

        body = {
            "model": settings.realtime_model,
            "voice": settings.voice,
            "instructions": settings.instructions,
            "modalities": self._modalities(),
        }

        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    settings.realtime_session_url,
                    json=body,
                    headers=self._headers(),
                    timeout=settings.negotiation_timeout_seconds,
                )
            else:
                async with httpx.AsyncClient(timeout=settings.negotiation_timeout_seconds) as client:
                    response = await client.post(
                        settings.realtime_session_url,
                        json=body,
                        headers=self._headers(),
                    )
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as exc:
            raise NegotiationFailedError(f"negotiation timed out: {exc}") from exc
        except httpx.HTTPStatusError as exc:
            raise NegotiationFailedError(
                f"negotiation returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise NegotiationFailedError(f"negotiation request failed: {exc}") from exc
        except ValueError as exc:
            raise NegotiationFailedError("negotiation response is not JSON") from exc

        session_id = data.get("id") if isinstance(data, dict) else None
        if not isinstance(session_id, str) or not session_id:
            raise NegotiationFailedError("negotiation response has no session id")

        LOGGER.info("Negotiated backend session %s", session_id)
        return SessionDescriptor(
            session_id=session_id,
            model=data.get("model"),
            expires_at=data.get("expires_at"),
            raw=data,
        )

    def stream_url(self) -> str:
        base = self._settings.realtime_ws_url
        sep = "&" if "?" in base else "?"
        return f"{base}{sep}{urlencode({'model': self._settings.realtime_model})}"

    async def connect(self) -> BackendLeg:
        url = self.stream_url()
        try:
            connection = await connect(
                url,
                additional_headers=self._headers(),
                open_timeout=self._settings.backend_connect_timeout_seconds,
                ping_interval=20,
                ping_timeout=20,
            )
        except (OSError, TimeoutError, WebSocketException) as exc:
            raise BackendConnectError(f"could not open {url}: {exc}") from exc

        LOGGER.info("Connected to translation backend %s", url)
        return BackendLeg(connection)

    def build_session_update(self) -> dict[str, Any]:
        settings = self._settings
        return {
            "type": "session.update",
            "session": {
                "modalities": self._modalities(),
                "instructions": settings.instructions,
                "voice": settings.voice,
                "input_audio_format": settings.input_audio_format,
                "output_audio_format": settings.output_audio_format,
                "input_audio_transcription": {"model": settings.transcription_model},
                "turn_detection": {
                    "type": settings.vad_type,
                    "threshold": settings.vad_threshold,
                    "prefix_padding_ms": settings.vad_prefix_padding_ms,
                    "silence_duration_ms": settings.vad_silence_duration_ms,
                },
            },
        }
