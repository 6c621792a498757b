"""
Wire models for the collaboration WebSocket.

Inbound frames are a closed union discriminated on ``type``; each variant
carries only the fields that kind of frame requires, so routing never sees a
frame without its entity key. Outbound frames use ``Envelope``.
"""
import time
import uuid
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


def now_ms() -> int:
    return int(time.time() * 1000)


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: Optional[str] = None
    timestamp: Optional[int] = None
    user_id: Optional[int] = None
    user_name: Optional[str] = None
    data: Optional[Any] = None

    def to_wire(self) -> dict:
        """Serialize with camelCase keys, stamping ``id`` and ``timestamp`` if absent."""
        frame = self.model_dump(by_alias=True, exclude_none=True)
        frame.setdefault("id", str(uuid.uuid4()))
        frame.setdefault("timestamp", now_ms())
        return frame


class EntityScoped(WireModel):
    entity: str = Field(min_length=1)
    entity_id: int


class AuthMessage(WireModel):
    type: Literal["auth"]
    user_id: int = 0


class SubscribeMessage(EntityScoped):
    type: Literal["subscribe"]


class UnsubscribeMessage(EntityScoped):
    type: Literal["unsubscribe"]


class ChatMessage(EntityScoped):
    type: Literal["chat"]
    message: str = Field(min_length=1)


class PresenceMessage(EntityScoped):
    type: Literal["presence"]
    action: Literal["join", "leave"]


class BroadcastMessage(EntityScoped):
    type: Literal["broadcast"]
    action: str = Field(min_length=1)


InboundMessage = Annotated[
    Union[AuthMessage, SubscribeMessage, UnsubscribeMessage, ChatMessage, PresenceMessage, BroadcastMessage],
    Field(discriminator="type"),
]

inbound_adapter = TypeAdapter(InboundMessage)

INBOUND_TYPES = frozenset({"auth", "subscribe", "unsubscribe", "chat", "presence", "broadcast"})


class Envelope(WireModel):
    """Server -> client frame (info|authenticated|subscribed|unsubscribed|history|users|error|presence|broadcast)."""
    type: str
    entity: Optional[str] = None
    entity_id: Optional[int] = None
    action: Optional[str] = None
    message: Optional[str] = None


class ActiveUser(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_id: int
    user_name: str
    joined_at: int
