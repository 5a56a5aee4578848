"""Provider webhook signature validation.

Twilio signs webhooks with ``X-Twilio-Signature``; SignalWire's LaML endpoints use the
same HMAC scheme keyed by the project signing key and send ``X-SignalWire-Signature``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from twilio.request_validator import RequestValidator

from bridge.errors import WebhookSignatureError
from config.settings import Settings, get_settings


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    account: str | None
    signing_secret: str | None
    signature_headers: tuple[str, ...]
    space_url: str | None = None

    @property
    def label(self) -> str:
        parts = [self.name, self.account or "no account"]
        if self.space_url:
            parts.append(self.space_url)
        return "/".join(parts)


def get_provider_config(settings: Settings | None = None) -> ProviderConfig:
    settings = settings or get_settings()
    if settings.telephony_provider == "signalwire":
        return ProviderConfig(
            name="signalwire",
            account=settings.signalwire_project_id,
            signing_secret=settings.signalwire_signing_key,
            signature_headers=("X-SignalWire-Signature", "X-Twilio-Signature"),
            space_url=settings.signalwire_space_url,
        )
    return ProviderConfig(
        name="twilio",
        account=settings.twilio_account_sid,
        signing_secret=settings.twilio_auth_token,
        signature_headers=("X-Twilio-Signature",),
    )


def build_request_validator(cfg: ProviderConfig) -> RequestValidator:
    if not cfg.signing_secret:
        raise WebhookSignatureError(f"No signing secret configured for {cfg.name} webhooks.")
    return RequestValidator(cfg.signing_secret)


def verify_webhook(
    cfg: ProviderConfig,
    *,
    url: str,
    params: Mapping[str, str],
    headers: Mapping[str, str],
) -> None:
    """Raise ``WebhookSignatureError`` unless the request carries a valid signature."""

    signature = next((headers[h] for h in cfg.signature_headers if headers.get(h)), None)
    if not signature:
        raise WebhookSignatureError("Missing webhook signature.")

    validator = build_request_validator(cfg)
    if not validator.validate(url, dict(params), signature):
        raise WebhookSignatureError()
