"""Prometheus metrics for the chat relay.

Provides metrics for monitoring session health, relay throughput and
outbound sends.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, generate_latest
from prometheus_client.exposition import CONTENT_TYPE_LATEST

from chatrelay.core.state import SessionPhase

# =============================================================================
# Counters
# =============================================================================

LIFECYCLE_SIGNALS = Counter(
    "chatrelay_lifecycle_signals_total",
    "Lifecycle signals processed by the session manager",
    ["signal"],
)

SESSION_RESTARTS = Counter(
    "chatrelay_session_restarts_total",
    "Forced or scheduled session re-initializations",
    ["reason"],
)

RELAY_TOTAL = Counter(
    "chatrelay_relay_total",
    "Inbound messages handled by the relay",
    ["source", "outcome"],
)

ROSTER_SYNC_TOTAL = Counter(
    "chatrelay_roster_sync_total",
    "Roster sync runs",
    ["outcome"],
)

BROADCAST_SENDS = Counter(
    "chatrelay_broadcast_sends_total",
    "Outbound per-recipient sends",
    ["result"],
)

# =============================================================================
# Gauges
# =============================================================================

SESSION_PHASE = Gauge(
    "chatrelay_session_phase",
    "Current session phase (1 for the active phase)",
    ["phase"],
)

ROSTER_CONTACTS = Gauge(
    "chatrelay_roster_contacts",
    "Contacts pushed by the last roster sync",
)

# =============================================================================
# Helper Functions
# =============================================================================


def record_phase(phase: SessionPhase) -> None:
    """Set the one-hot phase gauge."""
    for candidate in SessionPhase:
        SESSION_PHASE.labels(phase=candidate.value).set(1 if candidate == phase else 0)


def record_relay(source: str, outcome: str) -> None:
    RELAY_TOTAL.labels(source=source, outcome=outcome).inc()


def record_roster_sync(outcome: str, contact_count: int | None = None) -> None:
    ROSTER_SYNC_TOTAL.labels(outcome=outcome).inc()
    if contact_count is not None:
        ROSTER_CONTACTS.set(contact_count)


def record_send(success: bool) -> None:
    BROADCAST_SENDS.labels(result="sent" if success else "failed").inc()


def get_metrics() -> bytes:
    """Generate Prometheus metrics output.

    Returns:
        Metrics in Prometheus text exposition format.
    """
    return generate_latest()


def get_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST
