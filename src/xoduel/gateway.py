"""FastAPI application exposing the game over a WebSocket."""

from __future__ import annotations

import asyncio
import json
import uuid
from dataclasses import dataclass
from typing import Annotated, Dict, Literal, Optional, Union

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .config import Settings, get_settings
from .coordinator import Coordinator, Notification
from .errors import GameError
from .logging_config import configure_logging, get_logger
from .registry import RoomRegistry

logger = get_logger(__name__)


# ---------- Inbound intents ----------


class _Intent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CreateRoomIntent(_Intent):
    type: Literal["create-room"]
    display_name: str = Field(alias="displayName")


class JoinRoomIntent(_Intent):
    type: Literal["join-room"]
    code: str
    display_name: str = Field(alias="displayName")


class SubmitMoveIntent(_Intent):
    """Range is checked by the coordinator so it can answer ``IllegalCell``."""

    type: Literal["submit-move"]
    cell_index: int = Field(alias="cellIndex", strict=True)


class SendChatIntent(_Intent):
    type: Literal["send-chat"]
    text: str


class RequestRematchIntent(_Intent):
    type: Literal["request-rematch"]


class AcceptRematchIntent(_Intent):
    type: Literal["accept-rematch"]


class LeaveRoomIntent(_Intent):
    type: Literal["leave-room"]


Intent = Annotated[
    Union[
        CreateRoomIntent,
        JoinRoomIntent,
        SubmitMoveIntent,
        SendChatIntent,
        RequestRematchIntent,
        AcceptRematchIntent,
        LeaveRoomIntent,
    ],
    Field(discriminator="type"),
]
INTENT_ADAPTER: TypeAdapter[Intent] = TypeAdapter(Intent)


# ---------- Outbound delivery ----------

# None tells the writer task to stop.
OutboundQueue = asyncio.Queue[Optional[Dict[str, object]]]


@dataclass
class _Outbox:
    loop: asyncio.AbstractEventLoop
    queue: OutboundQueue


class ConnectionHub:
    """Maps connection ids to their outbound queues.

    The coordinator calls :meth:`deliver` synchronously, possibly from a
    worker thread; messages are scheduled onto the owning loop in order.
    """

    def __init__(self) -> None:
        self._outboxes: Dict[str, _Outbox] = {}

    def register(self) -> str:
        connection_id = uuid.uuid4().hex
        self._outboxes[connection_id] = _Outbox(
            loop=asyncio.get_running_loop(), queue=asyncio.Queue()
        )
        return connection_id

    def unregister(self, connection_id: str) -> None:
        outbox = self._outboxes.pop(connection_id, None)
        if outbox is not None:
            outbox.loop.call_soon_threadsafe(outbox.queue.put_nowait, None)

    def queue_for(self, connection_id: str) -> OutboundQueue:
        return self._outboxes[connection_id].queue

    def deliver(self, notification: Notification) -> None:
        outbox = self._outboxes.get(notification.recipient)
        if outbox is None:
            logger.debug(
                "Dropping notification for closed connection",
                connection=notification.recipient,
                event=notification.event,
            )
            return
        outbox.loop.call_soon_threadsafe(
            outbox.queue.put_nowait, notification.as_message()
        )

    def send(self, connection_id: str, event: str, **payload: object) -> None:
        self.deliver(Notification(recipient=connection_id, event=event, payload=payload))


async def _pump(websocket: WebSocket, queue: OutboundQueue) -> None:
    while True:
        message = await queue.get()
        if message is None:
            return
        try:
            await websocket.send_json(message)
        except WebSocketDisconnect:
            return
        except Exception:
            # the socket is gone; the reader side tears the room down
            logger.debug("Outbound send failed", exc_info=True)
            return


async def _read_frame(websocket: WebSocket) -> object:
    """Next inbound payload, or None when the frame is not JSON text."""

    frame = await websocket.receive()
    if frame["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(frame.get("code", 1000), frame.get("reason"))
    text = frame.get("text")
    if text is None:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def _dispatch(coordinator: Coordinator, connection_id: str, intent: _Intent) -> None:
    if isinstance(intent, CreateRoomIntent):
        coordinator.create_room(connection_id, intent.display_name)
    elif isinstance(intent, JoinRoomIntent):
        coordinator.join_room(connection_id, intent.code, intent.display_name)
    elif isinstance(intent, SubmitMoveIntent):
        coordinator.submit_move(connection_id, intent.cell_index)
    elif isinstance(intent, SendChatIntent):
        coordinator.send_chat(connection_id, intent.text)
    elif isinstance(intent, RequestRematchIntent):
        coordinator.request_rematch(connection_id)
    elif isinstance(intent, AcceptRematchIntent):
        coordinator.accept_rematch(connection_id)
    elif isinstance(intent, LeaveRoomIntent):
        coordinator.disconnect(connection_id)


def handle_message(
    coordinator: Coordinator, hub: ConnectionHub, connection_id: str, message: object
) -> None:
    """Validate one inbound payload and run it, reporting rejections to the sender."""

    try:
        intent = INTENT_ADAPTER.validate_python(message)
    except ValidationError as exc:
        logger.warning(
            "Malformed intent", connection=connection_id, errors=exc.error_count()
        )
        intent_type = message.get("type") if isinstance(message, dict) else None
        hub.send(
            connection_id,
            "error",
            intent=intent_type if isinstance(intent_type, str) else None,
            code="InvalidIntent",
            reason="Malformed or unknown intent",
        )
        return

    try:
        _dispatch(coordinator, connection_id, intent)
    except GameError as exc:
        logger.info(
            "Intent rejected",
            connection=connection_id,
            intent=intent.type,
            code=exc.code,
        )
        if isinstance(intent, JoinRoomIntent):
            hub.send(connection_id, "join-error", code=exc.code, reason=exc.reason)
        else:
            hub.send(
                connection_id,
                "error",
                intent=intent.type,
                code=exc.code,
                reason=exc.reason,
            )


# ---------- Application ----------


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the app with its own registry, coordinator and connection hub."""

    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.json_logs)

    app = FastAPI(
        title="xoduel", description="Two-player tic-tac-toe rooms over WebSocket"
    )
    registry = RoomRegistry()
    hub = ConnectionHub()
    coordinator = Coordinator(registry, hub.deliver)
    app.state.registry = registry
    app.state.hub = hub
    app.state.coordinator = coordinator

    @app.get("/healthz")
    async def healthz() -> Dict[str, object]:
        return {"status": "ok", "rooms": len(registry)}

    @app.get("/api/room/{code}")
    async def inspect_room(code: str) -> Dict[str, object]:
        snapshot = coordinator.snapshot(code)
        if snapshot is None:
            raise HTTPException(status_code=404, detail="Room not found")
        return snapshot

    @app.websocket("/ws")
    async def play(websocket: WebSocket) -> None:
        await websocket.accept()
        connection_id = hub.register()
        writer = asyncio.create_task(_pump(websocket, hub.queue_for(connection_id)))
        logger.info("Client connected", connection=connection_id)
        hub.send(connection_id, "connected", connectionId=connection_id)

        try:
            while True:
                message = await _read_frame(websocket)
                handle_message(coordinator, hub, connection_id, message)
        except WebSocketDisconnect:
            pass
        finally:
            coordinator.disconnect(connection_id)
            hub.unregister(connection_id)
            await writer
            logger.info("Client disconnected", connection=connection_id)

    return app
