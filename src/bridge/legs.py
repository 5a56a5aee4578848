from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState

from bridge.errors import LegClosedError, ProtocolViolationError

LOGGER = logging.getLogger(__name__)


class Leg(Protocol):
    """One side of the bridge: a duplex stream of JSON text messages."""

    @property
    def is_open(self) -> bool:  # pragma: no cover - protocol stub
        ...

    async def receive_text(self) -> str | None:
        """Return the next message, or ``None`` once the peer has closed.

        Raises ``ProtocolViolationError`` for a frame that carries no text.
        """

    async def send_json(self, message: dict[str, Any]) -> None:
        """Write one message; raise ``LegClosedError`` if the leg is gone."""

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the leg. Safe to call more than once."""


class WebSocketCallerLeg:
    """Caller leg backed by the provider's media stream WebSocket."""

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket
        self._closed = False

    @property
    def is_open(self) -> bool:
        return (
            not self._closed
            and self._websocket.client_state == WebSocketState.CONNECTED
            and self._websocket.application_state == WebSocketState.CONNECTED
        )

    async def receive_text(self) -> str | None:
        if self._closed:
            return None
        message = await self._websocket.receive()
        if message["type"] == "websocket.disconnect":
            self._closed = True
            return None
        text = message.get("text")
        if text is None:
            raise ProtocolViolationError("non-text frame on caller stream")
        return text

    async def send_json(self, message: dict[str, Any]) -> None:
        if not self.is_open:
            raise LegClosedError("caller leg is closed")
        try:
            await self._websocket.send_text(json.dumps(message))
        except (WebSocketDisconnect, RuntimeError) as exc:
            self._closed = True
            raise LegClosedError(f"caller send failed: {exc}") from exc

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if not self.is_open:
            self._closed = True
            return
        self._closed = True
        try:
            await self._websocket.close(code=code, reason=reason)
        except RuntimeError as exc:
            LOGGER.debug("Caller leg already closed: %s", exc)
