"""Per-connection websocket session.

Protocol:
    Client -> Server (text frames):
        get_config          re-send the current configuration
        anything else       logged and ignored

    Server -> Client (text frames):
        {...}                                       JSON-serialized config
        {"error": "Configuration not available."}   no config fetched yet

Lifecycle: STARTING -> ACTIVE -> STOPPING -> STOPPED. The session registers
with the hub before reading the initial snapshot, so a broadcast racing the
connect is at worst delivered twice. Deregistration runs on every exit path.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from enum import Enum
from typing import TYPE_CHECKING

import anyio
import anyio.abc
from pydantic import BaseModel
from starlette.websockets import WebSocket, WebSocketDisconnect

from confsync.errors import ProtocolError, SessionSerializationError, TransportSetupError

if TYPE_CHECKING:
    from confsync.hub import Hub
    from confsync.shared import SharedConfig

log = logging.getLogger(__name__)

GET_CONFIG_COMMAND = "get_config"
UNAVAILABLE_MESSAGE = json.dumps({"error": "Configuration not available."})

# Close codes (RFC 6455 section 7.4.1).
CLOSE_INVALID_PAYLOAD = 1007
CLOSE_INTERNAL_ERROR = 1011

_session_ids = itertools.count(1)


class SessionState(str, Enum):
    STARTING = "STARTING"
    ACTIVE = "ACTIVE"
    STOPPING = "STOPPING"
    STOPPED = "STOPPED"


def encode_config(config: BaseModel | None) -> str:
    """Serialize one outbound frame. ``None`` encodes the unavailable marker."""
    if config is None:
        return UNAVAILABLE_MESSAGE
    try:
        return config.model_dump_json()
    except (ValueError, TypeError, AttributeError) as e:
        raise SessionSerializationError(f"failed to serialize config: {e}") from e


class ClientSession:
    """One websocket client: initial sync, command replies and hub deliveries.

    Every outbound frame goes through ``_outbox`` and a single sender task,
    so the hub never waits on this client's socket and frames reach the
    client in the order they were queued.
    """

    def __init__(
        self,
        websocket: WebSocket,
        hub: Hub,
        shared: SharedConfig,
    ) -> None:
        self.session_id = next(_session_ids)
        self._ws = websocket
        self._hub = hub
        self._shared = shared
        self._state = SessionState.STARTING
        self._outbox: asyncio.Queue[BaseModel | None] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._sent = 0

    def __repr__(self) -> str:
        return f"ClientSession(id={self.session_id}, state={self._state.value})"

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def sent(self) -> int:
        return self._sent

    # -- Hub side ----------------------------------------------------------

    def deliver(self, config: BaseModel) -> None:
        """Queue a broadcast config. Safe to call from any thread; never blocks."""
        if self._state is not SessionState.ACTIVE or self._loop is None:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._outbox.put_nowait(config)
        else:
            self._loop.call_soon_threadsafe(self._outbox.put_nowait, config)

    # -- Lifecycle ---------------------------------------------------------

    async def run(self) -> None:
        """Accept the websocket and serve it until the transport goes away."""
        await self._accept()
        try:
            self._activate()
            await self._serve()
        finally:
            self._stop()

    async def _accept(self) -> None:
        try:
            await self._ws.accept()
        except Exception as e:
            self._state = SessionState.STOPPED
            raise TransportSetupError(f"websocket accept failed: {e!r}") from e

    def _activate(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._state = SessionState.ACTIVE
        self._hub.register(self)
        self._queue_current()

    def _stop(self) -> None:
        if self._state is SessionState.STOPPED:
            return
        self._state = SessionState.STOPPING
        self._hub.deregister(self)
        self._state = SessionState.STOPPED
        log.debug("session %d: stopped after %d frame(s)", self.session_id, self._sent)

    async def _serve(self) -> None:
        failure: list[SessionSerializationError | ProtocolError] = []

        async def until_done(loop, tg: anyio.abc.TaskGroup) -> None:
            # Whichever side finishes first ends the session.
            try:
                await loop()
            except (SessionSerializationError, ProtocolError) as e:
                failure.append(e)
            finally:
                tg.cancel_scope.cancel()

        async with anyio.create_task_group() as tg:
            tg.start_soon(until_done, self._receive_loop, tg)
            tg.start_soon(until_done, self._send_loop, tg)

        if failure:
            await self._fail(failure[0])

    async def _fail(self, exc: SessionSerializationError | ProtocolError) -> None:
        if isinstance(exc, SessionSerializationError):
            log.error("session %d: %s; closing", self.session_id, exc)
            await self._close(CLOSE_INTERNAL_ERROR)
        else:
            log.error("session %d: websocket protocol error: %s", self.session_id, exc)
            await self._close(CLOSE_INVALID_PAYLOAD)

    async def _close(self, code: int) -> None:
        try:
            await self._ws.close(code=code)
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            log.debug("session %d: close(%d) ignored: %r", self.session_id, code, e)

    # -- Inbound -----------------------------------------------------------

    async def _receive_loop(self) -> None:
        while True:
            message = await self._ws.receive()
            if message["type"] == "websocket.disconnect":
                log.debug(
                    "session %d: client disconnected (code=%s)",
                    self.session_id,
                    message.get("code"),
                )
                return
            text = self._decode(message)
            if text is not None:
                self._handle_text(text)

    @staticmethod
    def _decode(message: dict) -> str | None:
        text = message.get("text")
        if text is not None:
            return text
        data = message.get("bytes")
        if data is None:
            return None
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolError(f"binary frame is not valid UTF-8 ({len(data)} bytes)") from e

    def _handle_text(self, text: str) -> None:
        if text == GET_CONFIG_COMMAND:
            self._queue_current()
        else:
            log.warning(
                "session %d: received unexpected text message: %r",
                self.session_id,
                text[:200],
            )

    def _queue_current(self) -> None:
        self._outbox.put_nowait(self._shared.read())

    # -- Outbound ----------------------------------------------------------

    async def _send_loop(self) -> None:
        while True:
            config = await self._outbox.get()
            frame = encode_config(config)
            try:
                await self._ws.send_text(frame)
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                log.debug("session %d: send failed, transport gone: %r", self.session_id, e)
                return
            self._sent += 1
