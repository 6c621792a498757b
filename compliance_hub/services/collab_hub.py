import json
import uuid
from typing import Any, Callable, Dict, Optional

import structlog
from pydantic import ValidationError
from starlette.requests import HTTPConnection
from starlette.websockets import WebSocket

from ..schemas.realtime import (
    INBOUND_TYPES,
    AuthMessage,
    BroadcastMessage,
    ChatMessage,
    Envelope,
    PresenceMessage,
    SubscribeMessage,
    UnsubscribeMessage,
    inbound_adapter,
    now_ms,
)
from .message_history import MessageHistory
from .presence import PresenceTracker
from .subscriptions import Connection, SubscriptionRegistry, entity_key, parse_entity_key


logger = structlog.get_logger(__name__)


def stamp(frame: dict) -> dict:
    frame.setdefault("id", str(uuid.uuid4()))
    frame.setdefault("timestamp", now_ms())
    return frame


class CollaborationHub:
    """
    Live channel per entity key: subscriptions, chat history, presence and fan-out.

    Every method runs on the event loop without awaiting, so the registry and
    history are never observed half-updated. Delivery only enqueues onto each
    connection's outbox; the connection's writer does the socket I/O.
    """

    def __init__(self, history_capacity: int = 100, history_max_keys: int = 1000, outbox_size: int = 256) -> None:
        self.registry = SubscriptionRegistry()
        self.history = MessageHistory(capacity=history_capacity, max_keys=history_max_keys)
        self.presence = PresenceTracker(self.registry)
        self.outbox_size = outbox_size
        self._handlers: Dict[str, Callable[[Connection, Any], None]] = {
            "auth": self._on_auth,
            "subscribe": self._on_subscribe,
            "unsubscribe": self._on_unsubscribe,
            "chat": self._on_chat,
            "presence": self._on_presence,
            "broadcast": self._on_broadcast,
        }

    # Connection lifecycle

    def connect(self, websocket: Optional[WebSocket] = None) -> Connection:
        conn = Connection(websocket, outbox_size=self.outbox_size)
        self.registry.add_connection(conn)
        logger.info("ws_connected", connection_id=conn.id, connections=len(self.registry))
        conn.send(Envelope(type="info", message="Connected to collaboration server").to_wire())
        return conn

    def disconnect(self, conn: Connection) -> None:
        if conn not in self.registry:
            return
        conn.closed = True
        keys = self.registry.remove_connection(conn)
        for key in keys:
            entity, entity_id = parse_entity_key(key)
            leave = Envelope(
                type="presence",
                action="leave",
                entity=entity,
                entity_id=entity_id,
                user_id=conn.user_id,
                user_name=conn.display_name,
            )
            self.broadcast(key, leave.to_wire())
        logger.info("ws_disconnected", connection_id=conn.id, user_id=conn.user_id, released=len(keys))

    # Fan-out

    def broadcast(self, key: str, frame: dict) -> int:
        """Deliver a frame to every open subscriber of ``key``. Chat frames are kept in history first."""
        stamp(frame)
        if frame.get("type") == "chat":
            self.history.append(key, frame)
        delivered = 0
        for conn in self.registry.subscribers_of(key):
            if conn.send(frame):
                delivered += 1
        return delivered

    def publish(self, entity: str, entity_id: int, action: str, data: Any = None, user_id: Optional[int] = None) -> int:
        """Push a generic update for an entity from outside the socket layer (e.g. a REST mutation)."""
        frame = Envelope(type="broadcast", entity=entity, entity_id=entity_id, action=action, data=data, user_id=user_id)
        return self.broadcast(entity_key(entity, entity_id), frame.to_wire())

    def snapshot(self, entity: str, entity_id: int) -> dict:
        key = entity_key(entity, entity_id)
        return {
            "entity": entity,
            "entityId": entity_id,
            "history": self.history.get(key),
            "users": self.presence.active_users(key),
        }

    # Inbound frames

    def handle_text(self, conn: Connection, text: str) -> None:
        try:
            payload = json.loads(text)
        except ValueError:
            logger.warning("ws_invalid_json", connection_id=conn.id, user_id=conn.user_id)
            self._error(conn, "Invalid JSON")
            return
        if not isinstance(payload, dict):
            logger.warning("ws_invalid_frame", connection_id=conn.id, user_id=conn.user_id)
            self._error(conn, "Message must be a JSON object")
            return

        kind = payload.get("type")
        if not isinstance(kind, str) or kind not in INBOUND_TYPES:
            logger.warning("ws_unknown_type", connection_id=conn.id, user_id=conn.user_id, frame_type=str(kind))
            self._error(conn, f"Unknown message type: {kind}")
            return

        try:
            message = inbound_adapter.validate_python(payload)
        except ValidationError as e:
            fields = sorted({".".join(str(p) for p in err["loc"][1:]) or kind for err in e.errors()})
            logger.warning("ws_invalid_message", connection_id=conn.id, frame_type=kind, fields=fields)
            self._error(conn, f"Invalid {kind} message: {', '.join(fields)}")
            return

        self._handlers[kind](conn, message)

    def _on_auth(self, conn: Connection, message: AuthMessage) -> None:
        conn.user_id = message.user_id
        if message.user_name:
            conn.user_name = message.user_name
        logger.info("ws_authenticated", connection_id=conn.id, user_id=conn.user_id)
        conn.send(Envelope(type="authenticated", user_id=conn.user_id, user_name=conn.display_name).to_wire())

    def _on_subscribe(self, conn: Connection, message: SubscribeMessage) -> None:
        key = entity_key(message.entity, message.entity_id)
        added = self.registry.subscribe(conn, message.entity, message.entity_id)
        logger.info("ws_subscribed", connection_id=conn.id, user_id=conn.user_id, entity_key=key, new=added)
        scope = {"entity": message.entity, "entity_id": message.entity_id}
        conn.send(Envelope(type="subscribed", **scope).to_wire())
        # history before users: clients rebuild the thread before the roster
        conn.send(Envelope(type="history", data=self.history.get(key), **scope).to_wire())
        conn.send(Envelope(type="users", data=self.presence.active_users(key), **scope).to_wire())

    def _on_unsubscribe(self, conn: Connection, message: UnsubscribeMessage) -> None:
        key = entity_key(message.entity, message.entity_id)
        removed = self.registry.unsubscribe(conn, message.entity, message.entity_id)
        logger.info("ws_unsubscribed", connection_id=conn.id, user_id=conn.user_id, entity_key=key, removed=removed)
        conn.send(Envelope(type="unsubscribed", entity=message.entity, entity_id=message.entity_id).to_wire())

    def _on_chat(self, conn: Connection, message: ChatMessage) -> None:
        self._relay(conn, message)

    def _on_presence(self, conn: Connection, message: PresenceMessage) -> None:
        self._relay(conn, message)

    def _on_broadcast(self, conn: Connection, message: BroadcastMessage) -> None:
        self.broadcast(entity_key(message.entity, message.entity_id), message.to_wire())

    def _relay(self, conn: Connection, message) -> None:
        frame = message.to_wire()
        frame.setdefault("userId", conn.user_id)
        frame.setdefault("userName", conn.display_name)
        self.broadcast(entity_key(message.entity, message.entity_id), frame)

    def _error(self, conn: Connection, text: str) -> None:
        conn.send(Envelope(type="error", message=text).to_wire())


def get_hub(conn: HTTPConnection) -> CollaborationHub:
    return conn.app.state.hub
