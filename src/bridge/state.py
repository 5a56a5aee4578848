"""Readiness gate for a call's translation session.

Caller audio may only be forwarded to the backend while the gate is ``READY``.
The transition methods below are the only code that changes the state.
"""

from __future__ import annotations

import logging
from enum import Enum

from bridge.errors import InvalidTransitionError

LOGGER = logging.getLogger(__name__)


class ReadyState(str, Enum):
    NEGOTIATING = "negotiating"
    CONNECTING = "connecting"
    CONFIGURING = "configuring"
    READY = "ready"
    CLOSING = "closing"
    CLOSED = "closed"


_FORWARD: dict[ReadyState, ReadyState] = {
    ReadyState.NEGOTIATING: ReadyState.CONNECTING,
    ReadyState.CONNECTING: ReadyState.CONFIGURING,
    ReadyState.CONFIGURING: ReadyState.READY,
}


class ReadinessGate:
    """Explicit state machine for one translation session.

    ``require_ack`` selects whether ``READY`` waits for the backend to
    acknowledge the configuration (``session.updated``) or is entered as soon
    as the socket is open and the configuration has been sent.
    """

    def __init__(self, *, require_ack: bool = True) -> None:
        self._state = ReadyState.NEGOTIATING
        self._require_ack = require_ack

    @property
    def state(self) -> ReadyState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is ReadyState.READY

    @property
    def is_closed(self) -> bool:
        return self._state is ReadyState.CLOSED

    @property
    def is_terminating(self) -> bool:
        return self._state in (ReadyState.CLOSING, ReadyState.CLOSED)

    def negotiated(self) -> None:
        self._advance(ReadyState.NEGOTIATING)

    def socket_opened(self) -> None:
        self._advance(ReadyState.CONNECTING)
        if not self._require_ack:
            self._advance(ReadyState.CONFIGURING)

    def configuration_acknowledged(self) -> None:
        if self._state is ReadyState.READY or self.is_terminating:
            # Repeated session.updated, or an ack racing teardown.
            return
        self._advance(ReadyState.CONFIGURING)

    def begin_closing(self) -> None:
        if self.is_terminating:
            return
        self._set(ReadyState.CLOSING)

    def close(self) -> None:
        if self._state is ReadyState.CLOSED:
            return
        self._set(ReadyState.CLOSED)

    def _advance(self, expected: ReadyState) -> None:
        if self._state is not expected:
            raise InvalidTransitionError(
                f"cannot leave {expected.value}: gate is {self._state.value}"
            )
        self._set(_FORWARD[expected])

    def _set(self, target: ReadyState) -> None:
        LOGGER.debug("Readiness %s -> %s", self._state.value, target.value)
        self._state = target
