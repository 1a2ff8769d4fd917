"""Lifecycle signals consumed by the session lifecycle manager.

External signals come from the session client; internal ones are raised by
the manager's own timers; manual commands come from the HTTP surface and
carry a future resolved once the command has been applied.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chatrelay.services.session_client.protocol import InboundMessage


@dataclass(frozen=True, slots=True)
class QrReceived:
    payload: str


@dataclass(frozen=True, slots=True)
class Authenticated:
    pass


@dataclass(frozen=True, slots=True)
class AuthFailure:
    message: str = ""


@dataclass(frozen=True, slots=True)
class Ready:
    pass


@dataclass(frozen=True, slots=True)
class Disconnected:
    reason: str = ""


@dataclass(frozen=True, slots=True)
class StateChanged:
    state: str


@dataclass(frozen=True, slots=True)
class MessageReceived:
    message: InboundMessage


# Internal


@dataclass(frozen=True, slots=True)
class ReadyTimeout:
    """Raised by the readiness watchdog; stale if the deadline has moved."""

    deadline: float


@dataclass(frozen=True, slots=True)
class ReinitializeDue:
    reason: str


# Manual


@dataclass(eq=False, slots=True)
class ManualReset:
    """Operator disconnect; ``clear_credentials`` makes it a clear-session."""

    clear_credentials: bool = False
    done: asyncio.Future[None] | None = field(default=None)


LifecycleSignal = (
    QrReceived
    | Authenticated
    | AuthFailure
    | Ready
    | Disconnected
    | StateChanged
    | MessageReceived
    | ReadyTimeout
    | ReinitializeDue
    | ManualReset
)


def signal_name(signal: LifecycleSignal) -> str:
    """Metric/log label for a signal."""
    return {
        QrReceived: "qr",
        Authenticated: "authenticated",
        AuthFailure: "auth_failure",
        Ready: "ready",
        Disconnected: "disconnected",
        StateChanged: "state_changed",
        MessageReceived: "message",
        ReadyTimeout: "ready_timeout",
        ReinitializeDue: "reinitialize",
        ManualReset: "manual_reset",
    }[type(signal)]
