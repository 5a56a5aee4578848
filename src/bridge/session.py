from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone

from bridge.state import ReadinessGate, ReadyState


def _new_call_id() -> str:
    return secrets.token_hex(6)


@dataclass(slots=True)
class CallSession:
    """Mutable per-call state. Only the owning CallBridge's handlers change it."""

    gate: ReadinessGate
    call_id: str = field(default_factory=_new_call_id)
    session_id: str | None = None
    stream_id: str | None = None
    call_sid: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    # Diagnostics only.
    frames_from_caller: int = 0
    frames_forwarded: int = 0
    frames_dropped: int = 0
    frames_to_caller: int = 0

    @property
    def ready_state(self) -> ReadyState:
        return self.gate.state

    def summary(self) -> dict[str, object]:
        return {
            "call_id": self.call_id,
            "session_id": self.session_id,
            "stream_id": self.stream_id,
            "state": self.ready_state.value,
            "frames_from_caller": self.frames_from_caller,
            "frames_forwarded": self.frames_forwarded,
            "frames_dropped": self.frames_dropped,
            "frames_to_caller": self.frames_to_caller,
        }
