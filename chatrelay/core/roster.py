"""Roster synchronization: push every private chat to the backend."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from chatrelay.logging_config import get_logger
from chatrelay.observability.metrics import record_roster_sync
from chatrelay.services.backend import BackendError
from chatrelay.services.session_client.exceptions import SessionClientError

if TYPE_CHECKING:
    from chatrelay.core.state import SessionStateView
    from chatrelay.services.backend import BackendClient
    from chatrelay.services.session_client.protocol import ChatInfo, SessionClient

logger: Any = get_logger(__name__)

SYNC_DIRECTION = "sync"


class SessionNotReadyError(RuntimeError):
    """Raised when an operation needs a Ready session."""


@dataclass(frozen=True, slots=True)
class ContactRecord:
    number: str
    direction: str = SYNC_DIRECTION

    @classmethod
    def from_chat(cls, chat: ChatInfo) -> ContactRecord:
        return cls(number=chat.user)

    def to_payload(self) -> dict[str, str]:
        return {"number": self.number, "direction": self.direction}


@dataclass(frozen=True, slots=True)
class SyncResult:
    contact_count: int
    pushed: bool
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RosterSynchronizer:
    """Builds the full contact list and pushes it in one batch.

    There is no diffing: every run resends everything and the backend
    upserts.
    """

    def __init__(
        self,
        client: SessionClient,
        backend: BackendClient,
        view: SessionStateView,
    ) -> None:
        self._client = client
        self._backend = backend
        self._view = view

    async def sync(self) -> SyncResult:
        """Run one sync.

        Raises:
            SessionNotReadyError: If the session is not Ready.
        """
        if not self._view.is_ready:
            raise SessionNotReadyError("Session is not ready")

        try:
            chats = await self._client.list_chats()
        except SessionClientError as e:
            return SyncResult(contact_count=0, pushed=False, error=f"list chats: {e}")

        contacts = [ContactRecord.from_chat(c) for c in chats if not c.is_group]
        if not contacts:
            return SyncResult(contact_count=0, pushed=False)

        try:
            await self._backend.push_contacts([c.to_payload() for c in contacts])
        except BackendError as e:
            return SyncResult(contact_count=len(contacts), pushed=False, error=str(e))

        return SyncResult(contact_count=len(contacts), pushed=True)

    async def run_scheduled(self) -> None:
        """Timer entry point: sync if Ready and log the outcome."""
        if not self._view.is_ready:
            logger.debug("Skipping roster sync: session not ready")
            return
        log_sync_result(await self.sync())


def log_sync_result(result: SyncResult) -> None:
    if result.error:
        record_roster_sync("failed")
        logger.error(f"Roster sync failed: {result.error}")
    elif not result.pushed:
        record_roster_sync("empty", 0)
        logger.info("Roster sync: no contacts to push")
    else:
        record_roster_sync("pushed", result.contact_count)
        logger.info(f"Roster sync: {result.contact_count} contacts pushed")
