"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

from fastapi.requests import HTTPConnection

from bridge.store import SessionStore
from config.settings import get_settings
from integrations.realtime_client import RealtimeTranslationClient


def get_session_store(connection: HTTPConnection) -> SessionStore:
    return connection.app.state.session_store


def get_translation_client() -> RealtimeTranslationClient:
    return RealtimeTranslationClient(get_settings())
