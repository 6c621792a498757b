import asyncio
import uuid
from typing import Dict, List, Optional, Tuple

import structlog
from starlette.websockets import WebSocket, WebSocketState

from ..schemas.realtime import now_ms


logger = structlog.get_logger(__name__)


def entity_key(entity_type: str, entity_id: int) -> str:
    return f"{entity_type}:{entity_id}"


def parse_entity_key(key: str) -> Tuple[str, int]:
    entity_type, _, raw_id = key.rpartition(":")
    return entity_type, int(raw_id)


class Connection:
    """One live socket: who is on it, what it follows, and what is waiting to be written to it."""

    def __init__(self, websocket: Optional[WebSocket] = None, outbox_size: int = 256) -> None:
        self.id = str(uuid.uuid4())
        self.websocket = websocket
        self.user_id = 0
        self.user_name: Optional[str] = None
        # entity key -> joined at (epoch ms)
        self.subscriptions: Dict[str, int] = {}
        self.outbox: asyncio.Queue = asyncio.Queue(maxsize=outbox_size)
        self.closed = False

    @property
    def display_name(self) -> str:
        return self.user_name or f"User {self.user_id}"

    @property
    def is_open(self) -> bool:
        if self.closed:
            return False
        ws = self.websocket
        if ws is None:
            return True
        return ws.client_state == WebSocketState.CONNECTED and ws.application_state == WebSocketState.CONNECTED

    def send(self, frame: dict) -> bool:
        """Queue a frame for the writer. Never blocks; returns False if the frame was dropped."""
        if not self.is_open:
            return False
        try:
            self.outbox.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning("ws_outbox_full", connection_id=self.id, user_id=self.user_id, frame_type=frame.get("type"))
            return False
        return True

    async def pump(self) -> None:
        """Drain the outbox to the socket in order until the peer goes away."""
        while True:
            frame = await self.outbox.get()
            try:
                await self.websocket.send_json(frame)
            except Exception as e:
                self.closed = True
                logger.info("ws_send_failed", connection_id=self.id, user_id=self.user_id, error=str(e))
                return


class SubscriptionRegistry:
    def __init__(self) -> None:
        self._connections: Dict[str, Connection] = {}
        # entity key -> connection id -> connection
        self._by_key: Dict[str, Dict[str, Connection]] = {}

    @property
    def connections(self) -> List[Connection]:
        return list(self._connections.values())

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, conn: Connection) -> bool:
        return conn.id in self._connections

    def add_connection(self, conn: Connection) -> None:
        self._connections[conn.id] = conn

    def remove_connection(self, conn: Connection) -> List[str]:
        """Forget a connection and every key it followed; returns those keys."""
        self._connections.pop(conn.id, None)
        keys = list(conn.subscriptions)
        for key in keys:
            self._drop(key, conn)
        conn.subscriptions.clear()
        return keys

    def subscribe(self, conn: Connection, entity_type: str, entity_id: int) -> bool:
        key = entity_key(entity_type, entity_id)
        if key in conn.subscriptions:
            return False
        conn.subscriptions[key] = now_ms()
        self._by_key.setdefault(key, {})[conn.id] = conn
        return True

    def unsubscribe(self, conn: Connection, entity_type: str, entity_id: int) -> bool:
        key = entity_key(entity_type, entity_id)
        if conn.subscriptions.pop(key, None) is None:
            return False
        self._drop(key, conn)
        return True

    def subscribers_of(self, key: str) -> List[Connection]:
        return list(self._by_key.get(key, {}).values())

    def active_keys(self) -> List[str]:
        return list(self._by_key)

    def _drop(self, key: str, conn: Connection) -> None:
        subscribers = self._by_key.get(key)
        if subscribers is None:
            return
        subscribers.pop(conn.id, None)
        if not subscribers:
            self._by_key.pop(key, None)
