"""Observability module for metrics."""

from chatrelay.observability.metrics import (
    BROADCAST_SENDS,
    LIFECYCLE_SIGNALS,
    RELAY_TOTAL,
    ROSTER_SYNC_TOTAL,
    SESSION_PHASE,
    SESSION_RESTARTS,
    record_phase,
    record_relay,
    record_roster_sync,
    record_send,
)

__all__ = [
    "LIFECYCLE_SIGNALS",
    "SESSION_PHASE",
    "SESSION_RESTARTS",
    "RELAY_TOTAL",
    "ROSTER_SYNC_TOTAL",
    "BROADCAST_SENDS",
    "record_phase",
    "record_relay",
    "record_roster_sync",
    "record_send",
]
