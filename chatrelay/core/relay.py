"""Inbound message relay to the business backend.

Both message sources (the live stream and the unread drain run on every
``ready``) go through ``MessageRelay.relay`` so they share one
classification.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from chatrelay.logging_config import get_logger, mask_phone
from chatrelay.observability.metrics import record_relay
from chatrelay.services.backend import BackendError
from chatrelay.services.session_client.exceptions import SessionClientError
from chatrelay.services.session_client.protocol import InboundMessage, MediaKind

if TYPE_CHECKING:
    from chatrelay.core.state import SessionStateView
    from chatrelay.services.backend import BackendClient
    from chatrelay.services.session_client.protocol import SessionClient

logger: Any = get_logger(__name__)

MEDIA_LABELS = {
    MediaKind.IMAGE: "Image",
    MediaKind.AUDIO: "Audio",
    MediaKind.VIDEO: "Vidéo",
    MediaKind.DOCUMENT: "Document",
    MediaKind.VOICE_NOTE: "Voice Message",
    MediaKind.STICKER: "Sticker",
}
OTHER_MEDIA_LABEL = "Other media"


class RelayOutcome(str, Enum):
    """What happened to one inbound message."""

    RELAYED = "relayed"
    SELF_ORIGINATED = "self_originated"
    EMPTY = "empty"
    DUPLICATE = "duplicate"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class RelayResult:
    outcome: RelayOutcome
    sender_id: str
    body: str | None = None
    error: str | None = None


@dataclass
class DrainReport:
    """Result of one unread drain."""

    results: list[RelayResult] = field(default_factory=list)
    chats_drained: int = 0
    chat_errors: dict[str, str] = field(default_factory=dict)
    interrupted: bool = False


def media_label(kind: MediaKind | None) -> str:
    """Human-readable label standing in for media content."""
    if kind is None:
        return OTHER_MEDIA_LABEL
    return MEDIA_LABELS.get(kind, OTHER_MEDIA_LABEL)


def message_body(message: InboundMessage) -> str | None:
    """Body to relay for a message, or None if there is nothing to send."""
    if message.has_media:
        return media_label(message.media_kind)
    text = message.text_body.strip()
    return text or None


class MessageRelay:
    """Forwards each inbound message to the webhook at most once per ready cycle."""

    def __init__(self, backend: BackendClient) -> None:
        self._backend = backend
        self._relayed_ids: set[str] = set()

    def begin_cycle(self) -> None:
        """Forget message ids from the previous ready cycle."""
        self._relayed_ids.clear()

    async def relay(self, message: InboundMessage) -> RelayResult:
        if message.is_self_originated:
            return RelayResult(RelayOutcome.SELF_ORIGINATED, message.sender_id)

        body = message_body(message)
        if body is None:
            return RelayResult(RelayOutcome.EMPTY, message.sender_id)

        if message.message_id:
            if message.message_id in self._relayed_ids:
                return RelayResult(RelayOutcome.DUPLICATE, message.sender_id, body)
            self._relayed_ids.add(message.message_id)

        try:
            await self._backend.post_message(message.sender_id, body)
        except BackendError as e:
            return RelayResult(RelayOutcome.FAILED, message.sender_id, body, error=str(e))

        return RelayResult(RelayOutcome.RELAYED, message.sender_id, body)

    async def _relay_isolated(self, message: InboundMessage) -> RelayResult:
        """Relay one drained message; a malformed one fails alone."""
        try:
            return await self.relay(message)
        except Exception as e:
            return RelayResult(RelayOutcome.FAILED, message.sender_id, error=repr(e))

    async def drain_unread(
        self,
        client: SessionClient,
        view: SessionStateView,
    ) -> DrainReport:
        """Relay every unread message of every private chat, then mark it seen.

        Chats are processed one after the other; a chat is marked seen only
        after all of its unread messages went through the relay. Stops early
        if the session leaves Ready.
        """
        report = DrainReport()
        chats = await client.list_chats()

        for chat in chats:
            if chat.is_group or chat.unread_count <= 0:
                continue
            if not view.is_ready:
                report.interrupted = True
                break

            try:
                messages = await client.fetch_messages(chat.id, chat.unread_count)
                for message in messages[-chat.unread_count :]:
                    report.results.append(await self._relay_isolated(message))
                await client.mark_seen(chat.id)
            except SessionClientError as e:
                report.chat_errors[chat.id] = str(e)
                continue

            report.chats_drained += 1

        return report


def log_relay_result(result: RelayResult, source: str) -> None:
    """Log and count a relay result."""
    record_relay(source, result.outcome.value)
    sender = mask_phone(result.sender_id)

    if result.outcome == RelayOutcome.RELAYED:
        logger.info(f"Relayed message from {sender} ({source})")
    elif result.outcome == RelayOutcome.FAILED:
        logger.error(f"Webhook failed for message from {sender} ({source}): {result.error}")
    else:
        logger.debug(f"Dropped message from {sender} ({source}): {result.outcome.value}")
