"""Broadcast dispatch: one message, many recipients, sent one by one."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from chatrelay.logging_config import get_logger, mask_phone
from chatrelay.observability.metrics import record_send

if TYPE_CHECKING:
    from chatrelay.services.session_client.protocol import SessionClient

logger: Any = get_logger(__name__)

NON_DIGITS_RE = re.compile(r"\D")


class BroadcastValidationError(ValueError):
    """Raised when a broadcast request is missing its message or recipients."""


def normalize_recipient(raw: str, *, country_code: str = "212", suffix: str = "@c.us") -> str:
    """Turn a raw phone string into a chat address.

    "+212 6 12-34-56-78" -> "212612345678@c.us"
    "0612345678"         -> "212612345678@c.us"
    """
    number = raw[: -len(suffix)] if suffix and raw.endswith(suffix) else raw
    digits = NON_DIGITS_RE.sub("", number)
    if digits.startswith("00"):
        digits = digits[2:]
    elif digits.startswith("0") and country_code:
        digits = country_code + digits[1:]
    return digits + suffix


@dataclass
class BroadcastJob:
    """One broadcast request and its per-recipient outcome."""

    message_body: str
    recipients: list[str]
    sent: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def sent_count(self) -> int:
        return len(self.sent)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    def to_response(self) -> dict[str, Any]:
        return {
            "sentCount": self.sent_count,
            "failedCount": self.failed_count,
            "sent": self.sent,
            "failed": self.failed,
        }


class BroadcastDispatcher:
    """Sends a message to each recipient sequentially, in input order.

    No phase check happens here: sends attempted while the session is not
    Ready fail individually and end up in ``failed``.
    """

    def __init__(
        self,
        client: SessionClient,
        *,
        country_code: str = "212",
        suffix: str = "@c.us",
    ) -> None:
        self._client = client
        self._country_code = country_code
        self._suffix = suffix

    def normalize(self, raw: str) -> str:
        return normalize_recipient(raw, country_code=self._country_code, suffix=self._suffix)

    def prepare(self, message: str | None, recipients: list[str] | None) -> BroadcastJob:
        """Validate a request before any send.

        Raises:
            BroadcastValidationError: If the message or recipient list is empty.
        """
        if not message or not recipients:
            raise BroadcastValidationError("Message et contacts requis.")
        return BroadcastJob(message_body=message, recipients=list(recipients))

    async def send_one(self, raw: str, body: str) -> bool:
        address = self.normalize(raw)
        try:
            await self._client.send_message(address, body)
        except Exception as e:
            logger.warning(f"Send to {mask_phone(address)} failed: {e}")
            record_send(False)
            return False
        record_send(True)
        return True

    async def dispatch(self, job: BroadcastJob) -> BroadcastJob:
        for raw in job.recipients:
            if await self.send_one(raw, job.message_body):
                job.sent.append(raw)
            else:
                job.failed.append(raw)

        logger.info(f"Broadcast finished: {job.sent_count} sent, {job.failed_count} failed")
        return job
