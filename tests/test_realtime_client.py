from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from bridge.errors import BackendConnectError, NegotiationFailedError
from config.settings import Settings
from integrations.realtime_client import RealtimeTranslationClient


def _negotiate(settings: Settings, handler):
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = RealtimeTranslationClient(settings, http_client=http)
            return await client.negotiate()

    return asyncio.run(scenario())


def test_negotiation_sends_bearer_and_returns_session_id(settings):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["beta"] = request.headers["OpenAI-Beta"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "sess_123", "model": "gpt-4o-realtime", "expires_at": 1700000000})

    descriptor = _negotiate(settings, handler)

    assert descriptor.session_id == "sess_123"
    assert descriptor.expires_at == 1700000000
    assert seen["auth"] == "Bearer test-key"
    assert seen["beta"] == "realtime=v1"
    assert seen["body"]["model"] == settings.realtime_model
    assert seen["body"]["voice"] == "verse"
    assert "English" in seen["body"]["instructions"] and "Spanish" in seen["body"]["instructions"]


@pytest.mark.parametrize(
    "handler",
    [
        lambda request: httpx.Response(401, json={"error": {"message": "bad key"}}),
        lambda request: httpx.Response(200, json={"object": "realtime.session"}),
        lambda request: httpx.Response(200, content=b"<html>"),
    ],
    ids=["http-error", "missing-id", "not-json"],
)
def test_negotiation_failures_are_setup_errors(settings, handler):
    with pytest.raises(NegotiationFailedError):
        _negotiate(settings, handler)


def test_negotiation_timeout_is_a_setup_error(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(NegotiationFailedError, match="timed out"):
        _negotiate(settings, handler)


def test_negotiation_requires_api_key():
    settings = Settings(_env_file=None, openai_api_key="")
    client = RealtimeTranslationClient(settings)

    with pytest.raises(NegotiationFailedError, match="OPENAI_API_KEY"):
        asyncio.run(client.negotiate())


def test_session_update_declares_audio_and_text(settings):
    event = RealtimeTranslationClient(settings).build_session_update()

    assert event["type"] == "session.update"
    session = event["session"]
    assert session["modalities"] == ["audio", "text"]
    assert session["voice"] == "verse"
    assert session["input_audio_format"] == "g711_ulaw"
    assert session["output_audio_format"] == "g711_ulaw"
    assert session["input_audio_transcription"] == {"model": "whisper-1"}
    assert session["turn_detection"] == {
        "type": "server_vad",
        "threshold": 0.5,
        "prefix_padding_ms": 300,
        "silence_duration_ms": 200,
    }


def test_session_update_audio_only_variant():
    settings = Settings(_env_file=None, openai_api_key="k", include_text_modality=False, interpreter_instructions="Only translate.")
    session = RealtimeTranslationClient(settings).build_session_update()["session"]

    assert session["modalities"] == ["audio"]
    assert session["instructions"] == "Only translate."


def test_stream_url_carries_model(settings):
    url = RealtimeTranslationClient(settings).stream_url()
    assert url == "wss://api.openai.com/v1/realtime?model=gpt-4o-realtime-preview-2024-12-17"


def test_connect_failure_is_a_setup_error():
    settings = Settings(
        _env_file=None,
        openai_api_key="k",
        realtime_ws_url="ws://127.0.0.1:9/v1/realtime",
        backend_connect_timeout_seconds=2.0,
    )
    client = RealtimeTranslationClient(settings)

    with pytest.raises(BackendConnectError):
        asyncio.run(client.connect())
