"""Wire format helpers for both legs.

Caller leg: provider media stream events tagged by ``event``.
Backend leg: realtime events tagged by ``type``.
Audio payloads are opaque base64 strings and are never decoded here.
"""

from __future__ import annotations

import json
from typing import Any

from bridge.errors import ProtocolViolationError

SESSION_CREATED = "session.created"
SESSION_UPDATED = "session.updated"
SPEECH_STARTED = "input_audio_buffer.speech_started"
SPEECH_STOPPED = "input_audio_buffer.speech_stopped"
RESPONSE_DONE = "response.done"
ERROR = "error"

# Older and newer realtime revisions name the translated-audio chunk differently.
AUDIO_DELTA_TYPES = frozenset(
    {
        "response.audio.delta",
        "response.output_audio.delta",
        "output_audio_chunk.delta",
    }
)


def _parse_object(text: str | bytes) -> dict[str, Any]:
    try:
        message = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ProtocolViolationError(f"invalid JSON: {exc}") from exc
    if not isinstance(message, dict):
        raise ProtocolViolationError(f"expected a JSON object, got {type(message).__name__}")
    return message


def parse_caller_message(text: str | bytes) -> dict[str, Any]:
    return _parse_object(text)


def parse_backend_event(text: str | bytes) -> dict[str, Any]:
    return _parse_object(text)


def media_payload(message: dict[str, Any]) -> str | None:
    media = message.get("media") or {}
    if not isinstance(media, dict):
        return None
    payload = media.get("payload")
    if isinstance(payload, str) and payload:
        return payload
    return None


def media_track(message: dict[str, Any]) -> str | None:
    media = message.get("media") or {}
    if isinstance(media, dict):
        track = media.get("track")
        if isinstance(track, str):
            return track
    return None


def start_stream_sid(message: dict[str, Any]) -> tuple[str | None, str | None]:
    """Return ``(streamSid, callSid)`` from a ``start`` event."""

    start = message.get("start") or {}
    if not isinstance(start, dict):
        start = {}
    stream_sid = start.get("streamSid") or message.get("streamSid")
    call_sid = start.get("callSid")
    return (
        stream_sid if isinstance(stream_sid, str) and stream_sid else None,
        call_sid if isinstance(call_sid, str) and call_sid else None,
    )


def caller_media_frame(stream_id: str, payload: str) -> dict[str, Any]:
    return {"event": "media", "streamSid": stream_id, "media": {"payload": payload}}


def append_audio(payload: str) -> dict[str, Any]:
    return {"type": "input_audio_buffer.append", "audio": payload}


def commit_audio() -> dict[str, Any]:
    return {"type": "input_audio_buffer.commit"}


def create_response() -> dict[str, Any]:
    return {"type": "response.create"}
