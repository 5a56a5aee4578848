"""Bidirectional relay and lifecycle coordination for one phone call.

Task layout per call (all on the server's event loop):
- ``caller-reader``  consumes caller events from the moment the stream is accepted
- ``caller-writer``  drains translated frames to the caller, in order
- ``setup``          negotiates and opens the backend session
- ``backend-reader`` consumes backend events once connected
- ``backend-writer`` drains append events to the backend, in order

Whichever task sees its leg end first runs the teardown, which closes the
other leg and drops the registry entry.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any, Protocol

from bridge import events
from bridge.errors import BackpressureError, LegClosedError, ProtocolViolationError, SetupError
from bridge.legs import Leg
from bridge.session import CallSession
from bridge.state import ReadinessGate
from bridge.store import RegisteredCall, SessionStore
from config.settings import Settings, get_settings

LOGGER = logging.getLogger(__name__)


class TranslationClient(Protocol):
    async def negotiate(self) -> Any:  # pragma: no cover - protocol stub
        ...

    async def connect(self) -> Leg:  # pragma: no cover - protocol stub
        ...

    def build_session_update(self) -> dict[str, Any]:  # pragma: no cover - protocol stub
        ...


class CallBridge:
    def __init__(
        self,
        caller: Leg,
        client: TranslationClient,
        store: SessionStore,
        *,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._caller = caller
        self._client = client
        self._store = store
        self._backend: Leg | None = None

        self.session = CallSession(gate=ReadinessGate(require_ack=self._settings.require_session_ack))

        self._to_caller: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self._settings.max_pending_frames)
        self._to_backend: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self._settings.max_pending_frames)
        self._tasks: set[asyncio.Task] = set()
        self._closing = False
        self._closed = asyncio.Event()

    @property
    def backend(self) -> Leg | None:
        return self._backend

    async def run(self) -> None:
        """Drive the call until either leg ends."""

        LOGGER.info("Call %s: caller stream accepted", self.session.call_id)
        self._spawn(self._read_caller(), "caller-reader")
        self._spawn(self._drain(self._to_caller, self._caller, "caller"), "caller-writer")
        self._spawn(self._establish(), "setup")

        try:
            await self._closed.wait()
        except asyncio.CancelledError:
            await self._teardown("cancelled")
            raise
        finally:
            pending = [task for task in self._tasks if task is not asyncio.current_task()]
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        LOGGER.info("Call %s finished: %s", self.session.call_id, self.session.summary())

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=f"{name}:{self.session.call_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # -- setup ---------------------------------------------------------------

    async def _establish(self) -> None:
        gate = self.session.gate
        try:
            descriptor = await self._client.negotiate()
            self.session.session_id = descriptor.session_id
            gate.negotiated()

            connecting = asyncio.ensure_future(self._client.connect())
            try:
                backend = await asyncio.shield(connecting)
            except asyncio.CancelledError:
                await self._abandon_connect(connecting)
                raise
            self._backend = backend
            await backend.send_json(self._client.build_session_update())
        except (SetupError, LegClosedError) as exc:
            LOGGER.error("Call %s: setup failure, caller never bridged: %s", self.session.call_id, exc)
            self._store.record_setup_failure()
            await self._teardown("setup failed", code=1011)
            return

        await self._store.register(
            descriptor.session_id,
            RegisteredCall(session=self.session, caller=self._caller, backend=backend),
        )
        gate.socket_opened()
        LOGGER.info(
            "Call %s: backend session %s open, state=%s",
            self.session.call_id,
            descriptor.session_id,
            gate.state.value,
        )

        self._spawn(self._read_backend(backend), "backend-reader")
        self._spawn(self._drain(self._to_backend, backend, "backend"), "backend-writer")

    async def _abandon_connect(self, connecting: asyncio.Future) -> None:
        """Close a backend socket whose handshake outlived the call."""

        try:
            backend = await connecting
        except (SetupError, LegClosedError) as exc:
            LOGGER.debug("Call %s: abandoned backend connect failed: %s", self.session.call_id, exc)
            return
        LOGGER.info("Call %s: closing backend opened after teardown", self.session.call_id)
        await backend.close(code=1000, reason="call ended during setup")

    # -- caller leg ----------------------------------------------------------

    async def _read_caller(self) -> None:
        reason = "caller closed"
        try:
            while not self._closing:
                try:
                    text = await self._caller.receive_text()
                except ProtocolViolationError as exc:
                    LOGGER.warning("Call %s: ignoring caller frame: %s", self.session.call_id, exc)
                    continue
                if text is None:
                    break
                await self.handle_caller_message(text)
        except Exception:
            LOGGER.exception("Call %s: caller leg failed", self.session.call_id)
            reason = "caller error"
        await self._teardown(reason)

    async def handle_caller_message(self, text: str) -> None:
        try:
            message = events.parse_caller_message(text)
        except ProtocolViolationError as exc:
            LOGGER.warning("Call %s: ignoring caller message: %s", self.session.call_id, exc)
            return

        event = message.get("event")
        if event == "media":
            await self._on_caller_media(message)
        elif event == "start":
            self._on_start(message)
        elif event == "stop":
            LOGGER.info("Call %s: caller stream stopped", self.session.call_id)
            await self._teardown("caller stop")
        else:
            LOGGER.debug("Call %s: caller event %s", self.session.call_id, event)

    def _on_start(self, message: dict[str, Any]) -> None:
        stream_id, call_sid = events.start_stream_sid(message)
        if stream_id is None:
            LOGGER.warning("Call %s: start event without streamSid", self.session.call_id)
            return
        self.session.stream_id = stream_id
        self.session.call_sid = call_sid or self.session.call_sid
        LOGGER.info("Call %s: stream %s started (callSid=%s)", self.session.call_id, stream_id, call_sid)

    async def _on_caller_media(self, message: dict[str, Any]) -> None:
        session = self.session
        track = events.media_track(message)
        if track and track != "inbound":
            return
        session.frames_from_caller += 1

        payload = events.media_payload(message)
        if payload is None:
            LOGGER.warning("Call %s: media event without payload", session.call_id)
            return
        if session.stream_id is None:
            LOGGER.warning("Call %s: media before start; frame ignored", session.call_id)
            return
        if not session.gate.is_open:
            session.frames_dropped += 1
            LOGGER.debug("Call %s: gate %s, dropping caller frame", session.call_id, session.ready_state.value)
            return

        if await self._enqueue(self._to_backend, events.append_audio(payload), "backend"):
            session.frames_forwarded += 1

    # -- backend leg ---------------------------------------------------------

    async def _read_backend(self, backend: Leg) -> None:
        reason = "backend closed"
        try:
            while not self._closing:
                text = await backend.receive_text()
                if text is None:
                    break
                await self.handle_backend_event(text)
        except Exception:
            LOGGER.exception("Call %s: backend leg failed", self.session.call_id)
            reason = "backend error"
        if not self._closing and self._caller.is_open:
            LOGGER.error("Call %s: mid-call failure, caller lost translation (%s)", self.session.call_id, reason)
            self._store.record_midcall_failure()
        await self._teardown(reason)

    async def handle_backend_event(self, text: str) -> None:
        session = self.session
        try:
            event = events.parse_backend_event(text)
        except ProtocolViolationError as exc:
            LOGGER.warning("Call %s: ignoring backend message: %s", session.call_id, exc)
            return

        event_type = event.get("type")
        if event_type in events.AUDIO_DELTA_TYPES:
            await self._relay_delta(event)
        elif event_type == events.SESSION_CREATED:
            created = event.get("session")
            backend_session = created.get("id") if isinstance(created, dict) else None
            LOGGER.info("Call %s: backend session created (%s)", session.call_id, backend_session)
        elif event_type == events.SESSION_UPDATED:
            session.gate.configuration_acknowledged()
            LOGGER.info("Call %s: backend configured, state=%s", session.call_id, session.ready_state.value)
        elif event_type == events.SPEECH_STARTED:
            LOGGER.info("Call %s: speech started", session.call_id)
        elif event_type == events.SPEECH_STOPPED:
            LOGGER.info("Call %s: speech stopped", session.call_id)
            if self._settings.manual_turn_taking and session.gate.is_open:
                await self._enqueue(self._to_backend, events.commit_audio(), "backend")
                await self._enqueue(self._to_backend, events.create_response(), "backend")
        elif event_type == events.RESPONSE_DONE:
            LOGGER.debug("Call %s: response done", session.call_id)
        elif event_type == events.ERROR:
            LOGGER.error("Call %s: backend error event: %s", session.call_id, event.get("error"))
        else:
            LOGGER.debug("Call %s: backend event %s", session.call_id, event_type)

    async def _relay_delta(self, event: dict[str, Any]) -> None:
        session = self.session
        payload = event.get("delta")
        if not isinstance(payload, str) or not payload:
            LOGGER.warning("Call %s: audio delta without payload", session.call_id)
            return
        if session.stream_id is None:
            LOGGER.warning("Call %s: translated audio before stream start; dropped", session.call_id)
            return
        if not self._caller.is_open:
            return
        if await self._enqueue(self._to_caller, events.caller_media_frame(session.stream_id, payload), "caller"):
            session.frames_to_caller += 1

    # -- outbound queues -----------------------------------------------------

    async def _enqueue(self, queue: asyncio.Queue[dict[str, Any]], message: dict[str, Any], leg_name: str) -> bool:
        if self._closing:
            return False
        try:
            queue.put_nowait(message)
        except asyncio.QueueFull:
            exc = BackpressureError(f"{leg_name} queue exceeded {queue.maxsize} frames")
            LOGGER.error("Call %s: %s", self.session.call_id, exc)
            await self._teardown(exc.detail, code=1011)
            return False
        return True

    async def _drain(self, queue: asyncio.Queue[dict[str, Any]], leg: Leg, leg_name: str) -> None:
        try:
            while True:
                message = await queue.get()
                if not leg.is_open:
                    break
                await leg.send_json(message)
        except LegClosedError as exc:
            LOGGER.info("Call %s: %s", self.session.call_id, exc)
        except Exception:
            LOGGER.exception("Call %s: %s writer failed", self.session.call_id, leg_name)
        await self._teardown(f"{leg_name} write failed")

    # -- lifecycle -----------------------------------------------------------

    async def _teardown(self, reason: str, *, code: int = 1000) -> None:
        if self._closing:
            return
        self._closing = True
        session = self.session
        session.gate.begin_closing()
        LOGGER.info("Call %s: tearing down (%s)", session.call_id, reason)

        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()

        try:
            if self._backend is not None and self._backend.is_open:
                await self._backend.close(code=code, reason=reason)
        except Exception:
            LOGGER.exception("Call %s: closing backend leg failed", session.call_id)
        finally:
            try:
                if self._caller.is_open:
                    await self._caller.close(code=code, reason=reason)
            except Exception:
                LOGGER.exception("Call %s: closing caller leg failed", session.call_id)

            if session.session_id is not None:
                await self._store.remove(session.session_id)
            session.gate.close()
            self._closed.set()
