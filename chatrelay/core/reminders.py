"""Payment reminders for clients with an outstanding balance."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from chatrelay.config import DEFAULT_REMINDER_TEMPLATE
from chatrelay.logging_config import get_logger
from chatrelay.services.backend import BackendError

if TYPE_CHECKING:
    from chatrelay.core.broadcast import BroadcastDispatcher
    from chatrelay.services.backend import BackendClient

logger: Any = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class PaymentReminder:
    client_phone: str
    client_name: str
    balance_remaining: str
    tour_title: str

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> PaymentReminder:
        """Create from a backend row.

        Raises:
            ValueError: If the row has no phone number.
        """
        phone = str(data.get("client_phone") or "").strip()
        if not phone:
            raise ValueError("missing client_phone")
        return cls(
            client_phone=phone,
            client_name=str(data.get("client_name") or ""),
            balance_remaining=str(data.get("balance_remaining") or "0"),
            tour_title=str(data.get("tour_title") or ""),
        )

    def render(self, template: str = DEFAULT_REMINDER_TEMPLATE) -> str:
        return template.format(
            client_name=self.client_name,
            balance_remaining=self.balance_remaining,
            tour_title=self.tour_title,
        )


@dataclass
class ReminderReport:
    sent: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: int = 0
    error: str | None = None


class PaymentReminderJob:
    """Fetches the reminder list and sends one message per client."""

    def __init__(
        self,
        backend: BackendClient,
        dispatcher: BroadcastDispatcher,
        template: str = DEFAULT_REMINDER_TEMPLATE,
    ) -> None:
        self._backend = backend
        self._dispatcher = dispatcher
        self._template = template

    async def run(self) -> ReminderReport:
        report = ReminderReport()

        try:
            rows = await self._backend.fetch_payment_reminders()
        except BackendError as e:
            report.error = str(e)
            logger.error(f"Payment reminders: could not fetch list: {e}")
            return report

        for row in rows:
            try:
                reminder = PaymentReminder.from_payload(row)
            except (ValueError, AttributeError) as e:
                report.skipped += 1
                logger.warning(f"Payment reminders: skipping row: {e}")
                continue

            if await self._dispatcher.send_one(reminder.client_phone, reminder.render(self._template)):
                report.sent.append(reminder.client_phone)
            else:
                report.failed.append(reminder.client_phone)

        logger.info(
            f"Payment reminders: {len(report.sent)} sent, {len(report.failed)} failed, "
            f"{report.skipped} skipped"
        )
        return report
