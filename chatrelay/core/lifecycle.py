"""Session lifecycle manager.

Owns the only mutable ``SessionState`` and reacts to lifecycle signals one
at a time:

- qr:            -> AwaitingScan, keep the QR payload
- authenticated: -> AuthenticatedPendingReady, arm the readiness watchdog
- ready:         -> Ready, drain unread messages, start the roster sync timer
- auth_failure:  -> Disconnected, no automatic restart
- disconnected:  -> Disconnected, schedule one re-initialization
- watchdog:      stuck after authentication -> destroy + initialize

Live messages go through a separate intake queue that is only released once
the unread drain of the current ready cycle has finished.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, Any

from chatrelay.config import Settings, get_settings
from chatrelay.core.broadcast import BroadcastDispatcher
from chatrelay.core.relay import MessageRelay, log_relay_result
from chatrelay.core.reminders import PaymentReminderJob, ReminderReport
from chatrelay.core.roster import RosterSynchronizer, SyncResult, log_sync_result
from chatrelay.core.scheduling import ScheduledTask
from chatrelay.core.signals import (
    Authenticated,
    AuthFailure,
    Disconnected,
    LifecycleSignal,
    ManualReset,
    MessageReceived,
    QrReceived,
    Ready,
    ReadyTimeout,
    ReinitializeDue,
    StateChanged,
    signal_name,
)
from chatrelay.core.state import SessionPhase, SessionState, SessionStateView
from chatrelay.logging_config import get_logger, mask_phone
from chatrelay.observability.metrics import (
    LIFECYCLE_SIGNALS,
    SESSION_RESTARTS,
    record_phase,
    record_relay,
)
from chatrelay.services.session_client.credentials import CredentialStore

if TYPE_CHECKING:
    from chatrelay.services.backend import BackendClient
    from chatrelay.services.session_client.protocol import InboundMessage, SessionClient

logger: Any = get_logger(__name__)


class SessionLifecycleManager:
    """Drives the single external session through its lifecycle."""

    def __init__(
        self,
        client: SessionClient,
        backend: BackendClient,
        settings: Settings | None = None,
        *,
        credentials: CredentialStore | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._client = client
        self._backend = backend
        self._credentials = credentials or CredentialStore(self._settings.session_auth_dir)

        self._state = SessionState()
        self.view = SessionStateView(self._state)

        self.relay = MessageRelay(backend)
        self.roster = RosterSynchronizer(client, backend, self.view)
        self.broadcast = BroadcastDispatcher(
            client,
            country_code=self._settings.default_country_code,
            suffix=self._settings.address_suffix,
        )
        self.reminders = PaymentReminderJob(
            backend, self.broadcast, self._settings.reminder_template
        )

        self._signals: asyncio.Queue[LifecycleSignal] = asyncio.Queue()
        self._intake: asyncio.Queue[InboundMessage] = asyncio.Queue(
            maxsize=self._settings.intake_queue_size
        )
        self._intake_open = asyncio.Event()

        self._watchdog = ScheduledTask("ready-watchdog")
        self._sync_timer = ScheduledTask("roster-sync")
        self._reinit_timer = ScheduledTask("reinitialize")

        self._drain_task: asyncio.Task[None] | None = None
        self._signal_task: asyncio.Task[None] | None = None
        self._intake_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[Any]] = set()

        client.subscribe(self.submit)

    # =========================================================================
    # Public API
    # =========================================================================

    @property
    def client(self) -> SessionClient:
        return self._client

    @property
    def phase(self) -> SessionPhase:
        return self._state.phase

    @property
    def watchdog_armed(self) -> bool:
        return self._watchdog.armed

    @property
    def sync_timer_armed(self) -> bool:
        return self._sync_timer.armed

    @property
    def reinitialize_pending(self) -> bool:
        return self._reinit_timer.armed

    def submit(self, signal: LifecycleSignal) -> None:
        """Queue a signal. Safe to call from any callback on the loop."""
        if isinstance(signal, MessageReceived):
            try:
                self._intake.put_nowait(signal.message)
            except asyncio.QueueFull:
                record_relay("live", "dropped")
                logger.warning(
                    f"Intake full, dropping message from {mask_phone(signal.message.sender_id)}"
                )
        else:
            self._signals.put_nowait(signal)

    async def start(self, *, initialize: bool = True) -> None:
        """Start the signal consumers and the client transport."""
        if self._signal_task is not None:
            return
        record_phase(self._state.phase)
        self._signal_task = asyncio.create_task(self._consume_signals(), name="lifecycle-signals")
        self._intake_task = asyncio.create_task(self._consume_messages(), name="message-intake")
        await self._client.start()
        if initialize:
            self.submit(ReinitializeDue(reason="startup"))

    async def stop(self) -> None:
        """Cancel timers and consumers, then close the client transport."""
        for timer in (self._watchdog, self._sync_timer, self._reinit_timer):
            await timer.wait_disarmed()

        tasks = [self._signal_task, self._intake_task, self._drain_task, *self._background]
        for task in tasks:
            if task is not None and not task.done():
                task.cancel()
        for task in tasks:
            if task is not None:
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        self._signal_task = self._intake_task = self._drain_task = None
        self._background.clear()
        await self._client.close()

    async def wait_idle(self) -> None:
        """Wait until queued signals are handled and the current drain is over."""
        await self._signals.join()
        if self._drain_task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._drain_task
        if self._intake_open.is_set():
            await self._intake.join()

    async def disconnect(self) -> None:
        """Tear the session down and restart it after a short delay.

        Raises:
            Exception: Whatever the second failed ``destroy()`` raised.
        """
        await self._submit_manual(clear_credentials=False)

    async def clear_session(self) -> None:
        """Like ``disconnect`` but also drop stored credentials first."""
        await self._submit_manual(clear_credentials=True)

    async def sync_roster(self) -> SyncResult:
        """Run a roster sync now.

        Raises:
            SessionNotReadyError: If the session is not Ready.
        """
        result = await self.roster.sync()
        log_sync_result(result)
        return result

    def send_payment_reminders(self) -> asyncio.Task[ReminderReport]:
        """Start the payment reminder job in the background."""
        return self._spawn(self.reminders.run(), "payment-reminders")

    async def query_client_state(self) -> str:
        return await self._client.query_state()

    # =========================================================================
    # Consumers
    # =========================================================================

    async def _consume_signals(self) -> None:
        while True:
            signal = await self._signals.get()
            try:
                LIFECYCLE_SIGNALS.labels(signal=signal_name(signal)).inc()
                await self._handle(signal)
                record_phase(self._state.phase)
            except Exception as e:
                logger.exception(f"Error handling {signal_name(signal)} signal: {e}")
            finally:
                self._signals.task_done()

    async def _consume_messages(self) -> None:
        while True:
            message = await self._intake.get()
            try:
                await self._intake_open.wait()
                log_relay_result(await self.relay.relay(message), "live")
            except Exception as e:
                logger.exception(f"Error relaying live message: {e}")
            finally:
                self._intake.task_done()

    async def _handle(self, signal: LifecycleSignal) -> None:
        if isinstance(signal, QrReceived):
            self._on_qr(signal)
        elif isinstance(signal, Authenticated):
            self._on_authenticated()
        elif isinstance(signal, Ready):
            self._on_ready()
        elif isinstance(signal, AuthFailure):
            self._on_auth_failure(signal)
        elif isinstance(signal, Disconnected):
            self._on_disconnected(signal)
        elif isinstance(signal, StateChanged):
            logger.info(f"Session state changed: {signal.state}")
        elif isinstance(signal, ReadyTimeout):
            await self._on_ready_timeout(signal)
        elif isinstance(signal, ReinitializeDue):
            await self._on_reinitialize_due(signal)
        elif isinstance(signal, ManualReset):
            await self._on_manual_reset(signal)

    # =========================================================================
    # Signal handlers
    # =========================================================================

    def _on_qr(self, signal: QrReceived) -> None:
        logger.info("QR code received, waiting for scan")
        self._disarm_watchdog()
        self._stop_ready_activity()
        self._state.phase = SessionPhase.AWAITING_SCAN
        self._state.qr_payload = signal.payload

    def _on_authenticated(self) -> None:
        logger.info("Authenticated, waiting for ready...")
        self._stop_ready_activity()
        self._state.phase = SessionPhase.AUTHENTICATED_PENDING_READY
        self._state.qr_payload = None
        self._arm_watchdog()

    def _on_ready(self) -> None:
        logger.info("Session ready")
        self._disarm_watchdog()
        self._stop_ready_activity()
        self._state.phase = SessionPhase.READY
        self._state.qr_payload = None

        self.relay.begin_cycle()
        self._drain_task = self._spawn(self._drain_then_resume(), "unread-drain")
        self._sync_timer.arm(
            0,
            self.roster.run_scheduled,
            interval=self._settings.roster_sync_interval_seconds,
        )

    def _on_auth_failure(self, signal: AuthFailure) -> None:
        logger.error(f"Authentication failed: {signal.message}")
        self._disarm_watchdog()
        self._stop_ready_activity()
        self._reinit_timer.disarm()
        self._state.reset()

    def _on_disconnected(self, signal: Disconnected) -> None:
        logger.warning(f"Disconnected: {signal.reason}")
        self._disarm_watchdog()
        self._stop_ready_activity()
        self._state.phase = SessionPhase.DISCONNECTED
        self._state.qr_payload = None

        if self._state.reconnect_in_flight:
            logger.debug("Re-initialization already scheduled")
            return

        delay = self._settings.reconnect_delay_seconds
        self._state.reconnect_in_flight = True
        self._reinit_timer.arm(delay, lambda: self.submit(ReinitializeDue(reason="reconnect")))
        logger.info(f"Reconnecting in {delay:g} seconds")

    async def _on_ready_timeout(self, signal: ReadyTimeout) -> None:
        if (
            self._state.phase != SessionPhase.AUTHENTICATED_PENDING_READY
            or self._state.ready_watchdog_deadline != signal.deadline
        ):
            logger.debug("Ignoring stale readiness watchdog")
            return

        logger.warning("Stuck after authentication (no ready). Forcing re-initialization...")
        self._state.ready_watchdog_deadline = None
        self._state.phase = SessionPhase.RECONNECTING
        # Held until the queued re-initialize runs, so the disconnected
        # emitted by destroy() does not schedule a second one
        self._state.reconnect_in_flight = True

        try:
            await self._safe_destroy()
        except Exception as e:
            logger.error(f"Could not destroy stalled session: {e}")
            self._state.reset()
            return

        self.submit(ReinitializeDue(reason="stalled"))

    async def _on_reinitialize_due(self, signal: ReinitializeDue) -> None:
        if signal.reason != "startup":
            if not self._state.reconnect_in_flight:
                logger.debug(f"Ignoring cancelled re-initialization ({signal.reason})")
                return
            logger.info(f"Re-initializing session ({signal.reason})...")
            SESSION_RESTARTS.labels(reason=signal.reason).inc()
            self._state.phase = SessionPhase.RECONNECTING

        await self._initialize()
        self._state.reconnect_in_flight = False

    async def _on_manual_reset(self, signal: ManualReset) -> None:
        try:
            if signal.clear_credentials:
                logger.info("Clearing stored session credentials...")
                self._credentials.clear()
            await self._safe_destroy()
        except Exception as e:
            logger.error(f"Manual reset failed: {e}")
            if signal.done is not None and not signal.done.done():
                signal.done.set_exception(e)
            return

        self._disarm_watchdog()
        self._stop_ready_activity()
        self._state.reset()

        self._state.reconnect_in_flight = True
        self._reinit_timer.arm(
            self._settings.restart_delay_seconds,
            lambda: self.submit(ReinitializeDue(reason="manual")),
        )
        logger.info("Session torn down by operator")

        if signal.done is not None and not signal.done.done():
            signal.done.set_result(None)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _submit_manual(self, *, clear_credentials: bool) -> None:
        done: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self.submit(ManualReset(clear_credentials=clear_credentials, done=done))
        await done

    def _arm_watchdog(self) -> None:
        delay = self._settings.ready_watchdog_seconds
        deadline = asyncio.get_running_loop().time() + delay
        self._state.ready_watchdog_deadline = deadline
        self._watchdog.arm(delay, lambda: self.submit(ReadyTimeout(deadline=deadline)))

    def _disarm_watchdog(self) -> None:
        self._watchdog.disarm()
        self._state.ready_watchdog_deadline = None

    def _stop_ready_activity(self) -> None:
        """Stop everything that only makes sense while Ready."""
        self._sync_timer.disarm()
        self._intake_open.clear()
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()
        self._drain_task = None

    async def _drain_then_resume(self) -> None:
        try:
            report = await self.relay.drain_unread(self._client, self.view)
        except Exception as e:
            logger.error(f"Unread drain failed: {e}")
        else:
            for result in report.results:
                log_relay_result(result, "drain")
            for chat_id, error in report.chat_errors.items():
                logger.error(f"Unread drain failed for chat {chat_id}: {error}")
            logger.info(
                f"Unread drain done: {len(report.results)} messages "
                f"from {report.chats_drained} chats"
            )

        if self.view.is_ready:
            self._intake_open.set()

    async def _safe_destroy(self) -> None:
        """Destroy the client, retrying once after a delay."""
        try:
            await self._client.destroy()
        except Exception as e:
            delay = self._settings.destroy_retry_delay_seconds
            logger.warning(f"Destroy failed, retrying in {delay:g}s: {e}")
            await asyncio.sleep(delay)
            await self._client.destroy()

    async def _initialize(self) -> None:
        try:
            await self._client.initialize()
        except Exception as e:
            logger.error(f"Session initialize failed: {e}")
            if self._state.phase == SessionPhase.RECONNECTING:
                self._state.phase = SessionPhase.DISCONNECTED

    def _spawn(self, coro, name: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task
