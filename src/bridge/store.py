from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from bridge.legs import Leg
from bridge.session import CallSession

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class RegisteredCall:
    session: CallSession
    caller: Leg
    backend: Leg


@dataclass(slots=True)
class StoreStats:
    setup_failures: int = 0
    midcall_failures: int = 0


class SessionStore:
    """In-memory registry of live calls keyed by backend session id.

    Note: This is a single-process store owned by the application lifespan.
    Entries only locate a call's two legs for cleanup; nothing survives a restart.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._calls: dict[str, RegisteredCall] = {}
        self.stats = StoreStats()

    def __len__(self) -> int:
        return len(self._calls)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._calls

    def get(self, session_id: str) -> RegisteredCall | None:
        return self._calls.get(session_id)

    async def register(self, session_id: str, call: RegisteredCall) -> None:
        async with self._lock:
            if session_id in self._calls:
                LOGGER.warning("Session %s already registered; replacing entry", session_id)
            self._calls[session_id] = call
        LOGGER.info("Registered session %s (%d active)", session_id, len(self._calls))

    async def remove(self, session_id: str) -> RegisteredCall | None:
        async with self._lock:
            call = self._calls.pop(session_id, None)
        if call is not None:
            LOGGER.info("Removed session %s (%d active)", session_id, len(self._calls))
        return call

    def record_setup_failure(self) -> None:
        self.stats.setup_failures += 1

    def record_midcall_failure(self) -> None:
        self.stats.midcall_failures += 1

    async def close_all(self) -> None:
        """Close both legs of every registered call, e.g. on shutdown."""

        async with self._lock:
            calls = list(self._calls.items())
            self._calls.clear()

        for session_id, call in calls:
            LOGGER.info("Closing session %s on shutdown", session_id)
            await call.backend.close(code=1001, reason="shutdown")
            await call.caller.close(code=1001, reason="shutdown")
