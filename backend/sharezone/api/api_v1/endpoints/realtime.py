"""
Real-time zone channel over WebSocket.

Clients connect to ``/zones/{zone_id}/ws?username=...`` after joining the
zone over HTTP. Server events arrive as ``{"event": ..., "payload": ...}``;
clients may send ``chat_message`` (payload ``{"text": ...}``) and
``leave_zone``. Admission failures are reported with an ``error`` event and
a close code of 4000 plus the matching HTTP status.
"""

import asyncio
import json
import logging
import uuid
from typing import Any, Callable, Dict, Optional, Tuple

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session
from starlette.websockets import WebSocketState

from sharezone.core.exceptions import ValidationFailed, ZoneError
from sharezone.services import BroadcastHub, ChatService, ZoneRegistry

logger = logging.getLogger(__name__)

router = APIRouter()

CLOSE_CODE_BASE = 4000


class WebSocketConnection:
    """
    Hub-facing handle for one socket. `send` and `close` may be called from
    any thread; the socket itself is only touched by `pump` on its own loop.
    """

    def __init__(self, websocket: WebSocket, loop: asyncio.AbstractEventLoop):
        self.id = uuid.uuid4().hex
        self.websocket = websocket
        self._loop = loop
        self._outbox: "asyncio.Queue[Tuple[str, Any]]" = asyncio.Queue()

    def send(self, message: Dict[str, Any]) -> None:
        self._loop.call_soon_threadsafe(self._outbox.put_nowait, ("send", message))

    def close(self, code: int, reason: str) -> None:
        self._loop.call_soon_threadsafe(self._outbox.put_nowait, ("close", (code, reason)))

    async def pump(self) -> None:
        while True:
            kind, item = await self._outbox.get()
            if kind == "close":
                code, reason = item
                await self.websocket.close(code=code, reason=reason)
                return
            await self.websocket.send_json(item)


def _error_event(exc: ZoneError) -> Dict[str, Any]:
    return {"event": "error", "payload": exc.to_dict()}


def _admit(session_factory: Callable[[], Session], registry: ZoneRegistry, zone_id: str, username: Optional[str]):
    db = session_factory()
    try:
        return registry.check_participant(db, zone_id, username)
    finally:
        db.close()


def _post_chat(
    session_factory: Callable[[], Session], chat: ChatService, zone_id: str, username: str, text: Optional[str]
) -> None:
    db = session_factory()
    try:
        chat.post_message(db, zone_id, username=username, text=text)
    finally:
        db.close()


async def _read_events(websocket: WebSocket, connection: WebSocketConnection, zone_id: str, username: str) -> None:
    state = websocket.app.state
    while True:
        try:
            raw = await websocket.receive_text()
        except WebSocketDisconnect:
            return

        try:
            data = json.loads(raw)
        except ValueError:
            connection.send(_error_event(ValidationFailed("Messages must be JSON")))
            continue

        event = data.get("event") if isinstance(data, dict) else None
        payload = data.get("payload") if isinstance(data, dict) else None
        if not isinstance(payload, dict):
            payload = {}

        if event == "leave_zone":
            return
        if event == "chat_message":
            try:
                await run_in_threadpool(
                    _post_chat, state.session_factory, state.chat, zone_id, username, payload.get("text")
                )
            except ZoneError as e:
                connection.send(_error_event(e))
            continue

        connection.send(_error_event(ValidationFailed(f"Unknown event: {event!r}")))


@router.websocket("/{zone_id}/ws")
async def zone_channel(websocket: WebSocket, zone_id: str, username: Optional[str] = None):
    state = websocket.app.state
    hub: BroadcastHub = state.hub

    try:
        zone = await run_in_threadpool(_admit, state.session_factory, state.registry, zone_id, username)
    except ZoneError as e:
        await websocket.accept()
        await websocket.send_json(_error_event(e))
        await websocket.close(code=CLOSE_CODE_BASE + e.status_code, reason=e.code)
        return

    username = username.strip()
    await websocket.accept()
    connection = WebSocketConnection(websocket, asyncio.get_running_loop())
    hub.join(zone.id, username, connection)

    # A kick or delete that landed before join had no connection to close
    try:
        await run_in_threadpool(_admit, state.session_factory, state.registry, zone.id, username)
    except ZoneError as e:
        logger.info("Connection %s refused after join to zone %s: %s", connection.id, zone.id, e.code)
        if hub.leave(zone.id, connection):
            connection.send(_error_event(e))
            connection.close(CLOSE_CODE_BASE + e.status_code, e.code)
        await connection.pump()
        return

    reader = asyncio.create_task(_read_events(websocket, connection, zone.id, username))
    pump = asyncio.create_task(connection.pump())
    try:
        done, _ = await asyncio.wait({reader, pump}, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.warning(
                    "Channel %s of zone %s failed", connection.id, zone.id, exc_info=task.exception()
                )
    finally:
        reader.cancel()
        pump.cancel()
        hub.leave(zone.id, connection)
        if (websocket.application_state == WebSocketState.CONNECTED
                and websocket.client_state == WebSocketState.CONNECTED):
            await websocket.close()
