"""Domain-specific exceptions for the call bridge.

These exceptions are safe to import from API layers without pulling in the network clients.
"""

from __future__ import annotations


class BridgeError(Exception):
    default_detail: str = "Bridge error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class SetupError(BridgeError):
    default_detail = "Translation session setup failed."


class NegotiationFailedError(SetupError):
    default_detail = "Session negotiation failed."


class BackendConnectError(SetupError):
    default_detail = "Could not connect to the translation backend."


class ProtocolViolationError(BridgeError):
    default_detail = "Malformed or out-of-order message."


class LegClosedError(BridgeError):
    default_detail = "Call leg is closed."


class BackpressureError(BridgeError):
    default_detail = "Outbound queue overflow."


class InvalidTransitionError(BridgeError):
    default_detail = "Invalid readiness transition."


class WebhookSignatureError(BridgeError):
    status_code: int = 403
    default_detail = "Invalid webhook signature."
