from __future__ import annotations

import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any, Callable

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from bridge.errors import BackendConnectError, LegClosedError, NegotiationFailedError  # noqa: E402
from config.settings import Settings, get_settings  # noqa: E402
from integrations.realtime_client import SessionDescriptor  # noqa: E402


class FakeLeg:
    """In-memory leg: tests push inbound messages, inspect what was sent."""

    def __init__(self) -> None:
        self.inbox: asyncio.Queue[str | None] = asyncio.Queue()
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self.close_code: int | None = None

    @property
    def is_open(self) -> bool:
        return not self.closed

    def feed(self, message: dict[str, Any] | str) -> None:
        self.inbox.put_nowait(message if isinstance(message, str) else json.dumps(message))

    def hang_up(self) -> None:
        self.inbox.put_nowait(None)

    async def receive_text(self) -> str | None:
        if self.closed:
            return None
        message = await self.inbox.get()
        if message is None:
            self.closed = True
        return message

    async def send_json(self, message: dict[str, Any]) -> None:
        if self.closed:
            raise LegClosedError("fake leg closed")
        self.sent.append(message)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.closed:
            return
        self.closed = True
        self.close_code = code
        self.inbox.put_nowait(None)

    def sent_of_type(self, type_: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m.get("type") == type_]


class FakeTranslationClient:
    def __init__(
        self,
        session_id: str = "s1",
        *,
        fail_negotiation: bool = False,
        fail_connect: bool = False,
        hold_negotiation: bool = False,
    ) -> None:
        self.session_id = session_id
        self.fail_negotiation = fail_negotiation
        self.fail_connect = fail_connect
        self.backend = FakeLeg()
        self.negotiations = 0
        self.release_negotiation = asyncio.Event() if hold_negotiation else None

    async def negotiate(self) -> SessionDescriptor:
        self.negotiations += 1
        if self.release_negotiation is not None:
            await self.release_negotiation.wait()
        if self.fail_negotiation:
            raise NegotiationFailedError("negotiation returned HTTP 500")
        return SessionDescriptor(session_id=self.session_id)

    async def connect(self) -> FakeLeg:
        if self.fail_connect:
            raise BackendConnectError("connection refused")
        return self.backend

    def build_session_update(self) -> dict[str, Any]:
        return {"type": "session.update", "session": {"modalities": ["audio", "text"]}}


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture()
def settings() -> Settings:
    return Settings(_env_file=None, openai_api_key="test-key")


@pytest.fixture(scope="session")
def app():
    os.environ["OPENAI_API_KEY"] = "test-key"
    os.environ["TELEPHONY_PROVIDER"] = "twilio"
    os.environ.pop("PUBLIC_BASE_URL", None)
    get_settings.cache_clear()

    import importlib

    # Ensure clean import with the test settings.
    sys.modules.pop("main", None)

    main = importlib.import_module("main")
    return main.app


@pytest.fixture()
def configure(monkeypatch: pytest.MonkeyPatch):
    """Override environment settings for one test."""

    def _configure(**values: str) -> Settings:
        for key, value in values.items():
            monkeypatch.setenv(key.upper(), value)
        get_settings.cache_clear()
        return get_settings()

    yield _configure
    get_settings.cache_clear()
