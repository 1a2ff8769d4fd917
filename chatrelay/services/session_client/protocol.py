"""External session client protocol and data types.

The chat-network connection itself (browser automation, crypto, the network
protocol) lives behind ``SessionClient``. The service only sees lifecycle
events, inbound messages and a handful of request/response operations.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from chatrelay.core.signals import LifecycleSignal

GROUP_SUFFIX = "@g.us"

SignalListener = Callable[["LifecycleSignal"], None]


def serialized_id(raw: Any) -> str | None:
    """Flatten a network id to its string form.

    Message and chat ids may arrive as objects such as
    ``{"fromMe": false, "remote": "...", "id": "...", "_serialized": "..."}``.
    """
    if isinstance(raw, dict):
        raw = raw.get("_serialized") or raw.get("id")
    if raw is None or raw == "":
        return None
    return str(raw)


class MediaKind(str, Enum):
    """Media types reported by the chat network."""

    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    DOCUMENT = "document"
    VOICE_NOTE = "ptt"
    STICKER = "sticker"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str | None) -> MediaKind:
        """Map a raw network type to a kind; unknown types become OTHER."""
        try:
            return cls(value)
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True, slots=True)
class InboundMessage:
    """A single inbound chat message.

    ``media_kind`` is set iff ``has_media``; ``text_body`` is only
    meaningful for text messages.
    """

    sender_id: str
    is_self_originated: bool = False
    has_media: bool = False
    media_kind: MediaKind | None = None
    text_body: str = ""
    message_id: str | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> InboundMessage:
        """Create from a bridge message payload."""
        has_media = bool(data.get("hasMedia", False))
        return cls(
            sender_id=str(data.get("from", "")),
            is_self_originated=bool(data.get("fromMe", False)),
            has_media=has_media,
            media_kind=MediaKind.parse(data.get("type")) if has_media else None,
            text_body="" if has_media else str(data.get("body") or ""),
            message_id=serialized_id(data.get("id")),
        )


@dataclass(frozen=True, slots=True)
class ChatInfo:
    """One chat in the roster."""

    id: str
    user: str
    name: str = ""
    is_group: bool = False
    unread_count: int = 0

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> ChatInfo:
        """Create from a bridge chat payload."""
        raw_id = data.get("id")
        chat_id = serialized_id(raw_id) or ""
        user = data.get("user") or (raw_id.get("user") if isinstance(raw_id, dict) else None)
        user = user or chat_id.split("@", 1)[0]
        return cls(
            id=chat_id,
            user=str(user),
            name=str(data.get("name") or ""),
            is_group=bool(data.get("isGroup", False)) or chat_id.endswith(GROUP_SUFFIX),
            unread_count=int(data.get("unreadCount") or 0),
        )


class SessionClient(Protocol):
    """Protocol for the external session client."""

    def subscribe(self, listener: SignalListener) -> None:
        """Register the callback receiving lifecycle signals and messages."""
        ...

    async def start(self) -> None:
        """Open the underlying transport."""
        ...

    async def close(self) -> None:
        """Close the underlying transport."""
        ...

    async def initialize(self) -> None:
        """Start (or restart) the chat session."""
        ...

    async def destroy(self) -> None:
        """Tear the chat session down."""
        ...

    async def query_state(self) -> str:
        """Return the session's raw reported state."""
        ...

    async def list_chats(self) -> list[ChatInfo]:
        """List every chat known to the session."""
        ...

    async def fetch_messages(self, chat_id: str, limit: int) -> list[InboundMessage]:
        """Fetch the ``limit`` most recent messages of a chat, oldest first."""
        ...

    async def mark_seen(self, chat_id: str) -> None:
        """Mark a chat as read."""
        ...

    async def send_message(self, recipient: str, body: str) -> None:
        """Send a text message to a chat address."""
        ...
