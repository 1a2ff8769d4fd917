"""Session state for the single chat-network connection.

The lifecycle manager owns the only mutable ``SessionState``; every other
component gets a ``SessionStateView`` and can only read from it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SessionPhase(str, Enum):
    """Connection phases of the external session."""

    DISCONNECTED = "disconnected"
    AWAITING_SCAN = "awaiting_scan"  # QR issued, waiting for the phone
    AUTHENTICATED_PENDING_READY = "authenticated_pending_ready"
    READY = "ready"
    RECONNECTING = "reconnecting"


@dataclass
class SessionState:
    """Process-lifetime state of the external session."""

    phase: SessionPhase = SessionPhase.DISCONNECTED
    qr_payload: str | None = None
    ready_watchdog_deadline: float | None = None  # loop time
    reconnect_in_flight: bool = False

    def reset(self) -> None:
        """Back to Disconnected with no transient data."""
        self.phase = SessionPhase.DISCONNECTED
        self.qr_payload = None
        self.ready_watchdog_deadline = None
        self.reconnect_in_flight = False


class SessionStateView:
    """Query-only accessor over a ``SessionState``.

    Reads always go to the live state, so callers never hold a stale copy.
    """

    __slots__ = ("_state",)

    def __init__(self, state: SessionState) -> None:
        self._state = state

    @property
    def phase(self) -> SessionPhase:
        return self._state.phase

    @property
    def qr_payload(self) -> str | None:
        return self._state.qr_payload

    @property
    def ready_watchdog_deadline(self) -> float | None:
        return self._state.ready_watchdog_deadline

    @property
    def reconnect_in_flight(self) -> bool:
        return self._state.reconnect_in_flight

    @property
    def is_ready(self) -> bool:
        return self._state.phase == SessionPhase.READY

    @property
    def is_authenticated(self) -> bool:
        return self._state.phase in (
            SessionPhase.AUTHENTICATED_PENDING_READY,
            SessionPhase.READY,
        )

    @property
    def has_qr(self) -> bool:
        return self._state.qr_payload is not None
