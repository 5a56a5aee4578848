from __future__ import annotations

import pytest

from bridge.errors import WebhookSignatureError
from config.settings import Settings
from integrations.twilio_client import build_request_validator, get_provider_config, verify_webhook


def test_twilio_config_carries_account_and_token():
    cfg = get_provider_config(
        Settings(_env_file=None, twilio_account_sid="AC123", twilio_auth_token="secret")
    )

    assert cfg.name == "twilio"
    assert cfg.account == "AC123"
    assert cfg.signing_secret == "secret"
    assert cfg.signature_headers == ("X-Twilio-Signature",)
    assert cfg.label == "twilio/AC123"


def test_signalwire_config_carries_project_and_space():
    cfg = get_provider_config(
        Settings(
            _env_file=None,
            telephony_provider="signalwire",
            signalwire_project_id="proj-1",
            signalwire_signing_key="key",
            signalwire_space_url="example.signalwire.com",
        )
    )

    assert cfg.account == "proj-1"
    assert cfg.signing_secret == "key"
    assert cfg.signature_headers[0] == "X-SignalWire-Signature"
    assert cfg.label == "signalwire/proj-1/example.signalwire.com"


def test_missing_signing_secret_is_a_signature_error():
    cfg = get_provider_config(Settings(_env_file=None))

    with pytest.raises(WebhookSignatureError) as exc_info:
        build_request_validator(cfg)
    assert exc_info.value.status_code == 403

    with pytest.raises(WebhookSignatureError):
        verify_webhook(
            cfg,
            url="https://bridge.example.com/incoming-call",
            params={"CallSid": "CA1"},
            headers={"X-Twilio-Signature": "abc"},
        )
