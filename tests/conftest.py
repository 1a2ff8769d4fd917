"""Shared pytest fixtures for chatrelay tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable, Generator
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from chatrelay.config import Settings
from chatrelay.core.lifecycle import SessionLifecycleManager
from chatrelay.core.signals import Disconnected, LifecycleSignal
from chatrelay.services.backend import BackendClient
from chatrelay.services.session_client import (
    ChatInfo,
    CredentialStore,
    InboundMessage,
    SessionClientError,
)


def build_settings(**overrides) -> Settings:
    """Create a Settings object with safe test defaults (short timers)."""
    base = {
        "backend_webhook_url": "http://backend.test/webhook",
        "backend_sync_contacts_url": "http://backend.test/sync-contacts",
        "backend_reminders_url": "http://backend.test/relance-payer",
        "bridge_url": "ws://127.0.0.1:1",
        "ready_watchdog_seconds": 0.2,
        "roster_sync_interval_seconds": 60,
        "reconnect_delay_seconds": 0.05,
        "restart_delay_seconds": 0.05,
        "destroy_retry_delay_seconds": 0.01,
    }
    base.update(overrides)
    return Settings(**base)


@pytest.fixture
def settings_factory(tmp_path: Path) -> Callable[..., Settings]:
    """Return a factory to build Settings with overrides."""

    def factory(**overrides) -> Settings:
        overrides.setdefault("session_auth_dir", str(tmp_path / "auth"))
        return build_settings(**overrides)

    return factory


@pytest.fixture
def settings(settings_factory: Callable[..., Settings]) -> Settings:
    """Default Settings fixture."""
    return settings_factory()


# =============================================================================
# Collaborator Fakes
# =============================================================================


class FakeSessionClient:
    """In-memory session client recording every call."""

    def __init__(self) -> None:
        self.listeners: list = []
        self.calls: list[str] = []
        self.chats: list[ChatInfo] = []
        self.messages: dict[str, list[InboundMessage]] = {}
        self.sent: list[tuple[str, str]] = []
        self.state = "CONNECTED"
        self.state_error: Exception | None = None
        self.destroy_failures = 0
        self.fail_send_to: set[str] = set()
        self.fail_fetch_for: set[str] = set()
        self.disconnect_on_destroy = False
        self.started = False
        self.closed = False

    def subscribe(self, listener) -> None:
        self.listeners.append(listener)

    def emit(self, signal: LifecycleSignal) -> None:
        for listener in self.listeners:
            listener(signal)

    @property
    def initialize_count(self) -> int:
        return self.calls.count("initialize")

    @property
    def destroy_count(self) -> int:
        return self.calls.count("destroy")

    async def start(self) -> None:
        self.started = True

    async def close(self) -> None:
        self.closed = True

    async def initialize(self) -> None:
        self.calls.append("initialize")

    async def destroy(self) -> None:
        self.calls.append("destroy")
        if self.destroy_failures > 0:
            self.destroy_failures -= 1
            raise SessionClientError("destroy failed")
        if self.disconnect_on_destroy:
            self.emit(Disconnected("destroyed"))

    async def query_state(self) -> str:
        if self.state_error is not None:
            raise self.state_error
        return self.state

    async def list_chats(self) -> list[ChatInfo]:
        self.calls.append("list_chats")
        return list(self.chats)

    async def fetch_messages(self, chat_id: str, limit: int) -> list[InboundMessage]:
        self.calls.append(f"fetch:{chat_id}:{limit}")
        if chat_id in self.fail_fetch_for:
            raise SessionClientError(f"cannot fetch {chat_id}")
        return self.messages.get(chat_id, [])[-limit:]

    async def mark_seen(self, chat_id: str) -> None:
        self.calls.append(f"seen:{chat_id}")

    async def send_message(self, recipient: str, body: str) -> None:
        self.calls.append(f"send:{recipient}")
        if recipient in self.fail_send_to:
            raise SessionClientError(f"cannot send to {recipient}")
        self.sent.append((recipient, body))


def text_message(sender: str, body: str, message_id: str | None = None) -> InboundMessage:
    return InboundMessage(sender_id=sender, text_body=body, message_id=message_id)


def private_chat(user: str, unread: int = 0) -> ChatInfo:
    return ChatInfo(id=f"{user}@c.us", user=user, unread_count=unread)


def group_chat(group_id: str, unread: int = 0) -> ChatInfo:
    return ChatInfo(id=f"{group_id}@g.us", user=group_id, is_group=True, unread_count=unread)


@pytest.fixture
def fake_client() -> FakeSessionClient:
    return FakeSessionClient()


@pytest.fixture
def fake_backend() -> AsyncMock:
    """Backend client mock; every call succeeds unless told otherwise."""
    backend = AsyncMock(spec=BackendClient)
    backend.fetch_payment_reminders.return_value = []
    return backend


# =============================================================================
# Lifecycle Manager Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def manager(
    fake_client: FakeSessionClient,
    fake_backend: AsyncMock,
    settings: Settings,
) -> AsyncGenerator[SessionLifecycleManager, None]:
    """A started lifecycle manager wired to the fakes."""
    mgr = SessionLifecycleManager(
        fake_client,
        fake_backend,
        settings,
        credentials=CredentialStore(settings.session_auth_dir),
    )
    await mgr.start()
    await mgr.wait_idle()
    yield mgr
    await mgr.stop()


async def emit(manager: SessionLifecycleManager, client: FakeSessionClient, *signals) -> None:
    """Emit signals from the fake client and wait until they are handled."""
    for signal in signals:
        client.emit(signal)
    await manager.wait_idle()


# =============================================================================
# FastAPI Test Client Fixtures
# =============================================================================


@pytest.fixture
def test_client(
    settings: Settings,
    fake_client: FakeSessionClient,
    fake_backend: AsyncMock,
) -> Generator:
    """FastAPI TestClient running the app against the fakes."""
    from fastapi.testclient import TestClient

    from chatrelay.main import create_app

    app = create_app(settings, session_client=fake_client, backend=fake_backend)

    with TestClient(app) as client:
        yield client


@pytest.fixture
def drive(test_client) -> Callable[..., None]:
    """Feed signals to the running app's manager from a sync test."""

    def _drive(*signals: LifecycleSignal) -> None:
        manager = test_client.app.state.manager

        async def _emit() -> None:
            for signal in signals:
                manager.submit(signal)
            await manager.wait_idle()

        test_client.portal.call(_emit)

    return _drive


@pytest.fixture
def run_in_app(test_client) -> Callable:
    """Run a coroutine function on the app's event loop."""

    def _run(fn, *args):
        return test_client.portal.call(fn, *args)

    return _run
