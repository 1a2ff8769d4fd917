"""Session client speaking to a chat-network bridge over WebSocket.

The bridge process runs the browser-automation engine and exposes it as
JSON frames:

- events: ``{"type": "qr" | "authenticated" | "auth_failure" | "ready" |
  "disconnected" | "state_changed" | "message", ...}``
- requests: ``{"type": "request", "id", "method", "params"}``
- responses: ``{"type": "response", "id", "ok", "result" | "error"}``
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import uuid
from typing import Any

import websockets

from chatrelay.config import Settings, get_settings
from chatrelay.core.signals import (
    Authenticated,
    AuthFailure,
    Disconnected,
    LifecycleSignal,
    MessageReceived,
    QrReceived,
    Ready,
    StateChanged,
)
from chatrelay.logging_config import get_logger
from chatrelay.services.session_client.exceptions import (
    BridgeNotConnectedError,
    BridgeRequestError,
    BridgeTimeoutError,
)
from chatrelay.services.session_client.protocol import ChatInfo, InboundMessage, SignalListener

logger: Any = get_logger(__name__)


def parse_event(data: dict[str, Any]) -> LifecycleSignal | None:
    """Translate a bridge event frame into a lifecycle signal."""
    msg_type = data.get("type")

    if msg_type == "qr":
        return QrReceived(payload=str(data.get("qr", "")))
    if msg_type == "authenticated":
        return Authenticated()
    if msg_type == "auth_failure":
        return AuthFailure(message=str(data.get("message", "")))
    if msg_type == "ready":
        return Ready()
    if msg_type == "disconnected":
        return Disconnected(reason=str(data.get("reason", "")))
    if msg_type == "state_changed":
        return StateChanged(state=str(data.get("state", "")))
    if msg_type == "message":
        payload = data.get("message")
        if not isinstance(payload, dict):
            return None
        return MessageReceived(message=InboundMessage.from_payload(payload))
    return None


class BridgeSessionClient:
    """``SessionClient`` implementation backed by a bridge WebSocket."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._listeners: list[SignalListener] = []
        self._ws: Any = None
        self._connected = asyncio.Event()
        self._running = False
        self._loop_task: asyncio.Task[None] | None = None
        self._pending: dict[str, tuple[str, asyncio.Future[Any]]] = {}
        self._send_lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._connected.is_set()

    def subscribe(self, listener: SignalListener) -> None:
        self._listeners.append(listener)

    def _emit(self, signal: LifecycleSignal) -> None:
        for listener in list(self._listeners):
            try:
                listener(signal)
            except Exception as e:
                logger.error(f"Signal listener failed: {e}")

    async def start(self) -> None:
        """Start the socket loop in the background."""
        if self._loop_task is not None:
            return
        self._running = True
        self._loop_task = asyncio.create_task(self._run(), name="bridge-socket")

    async def close(self) -> None:
        self._running = False
        if self._ws is not None:
            with contextlib.suppress(Exception):
                await self._ws.close()
        if self._loop_task is not None:
            self._loop_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._loop_task
            self._loop_task = None
        self._fail_pending("Bridge client closed")

    async def _run(self) -> None:
        bridge_url = self._settings.bridge_url
        logger.info(f"Connecting to chat bridge at {bridge_url}...")

        while self._running:
            try:
                async with websockets.connect(bridge_url, max_size=None) as ws:
                    self._ws = ws
                    self._connected.set()
                    logger.info("Connected to chat bridge")

                    async for raw in ws:
                        try:
                            self._handle_frame(raw)
                        except Exception as e:
                            logger.error(f"Error handling bridge frame: {e}")

                logger.warning("Chat bridge closed the connection")
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning(f"Chat bridge connection error: {e}")
            finally:
                was_connected = self._connected.is_set()
                self._connected.clear()
                self._ws = None
                self._fail_pending("Bridge connection closed")
                if was_connected and self._running:
                    self._emit(Disconnected(reason="bridge connection lost"))

            if self._running:
                delay = self._settings.bridge_reconnect_seconds
                logger.info(f"Reconnecting to chat bridge in {delay:g} seconds...")
                await asyncio.sleep(delay)

    def _handle_frame(self, raw: str | bytes) -> None:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Invalid JSON from bridge: {str(raw)[:100]}")
            return
        if not isinstance(data, dict):
            return

        if data.get("type") == "response":
            self._resolve_pending(data)
            return

        signal = parse_event(data)
        if signal is None:
            logger.debug(f"Ignoring bridge frame type={data.get('type')!r}")
            return
        self._emit(signal)

    def _resolve_pending(self, data: dict[str, Any]) -> None:
        pending = self._pending.get(str(data.get("id")))
        if pending is None:
            return
        method, future = pending
        if future.done():
            return
        if data.get("ok"):
            future.set_result(data.get("result"))
        else:
            future.set_exception(
                BridgeRequestError(
                    method,
                    str(data.get("error") or "bridge request failed"),
                )
            )

    def _fail_pending(self, reason: str) -> None:
        for _, future in self._pending.values():
            if not future.done():
                future.set_exception(BridgeNotConnectedError(reason))
        self._pending.clear()

    async def _request(self, method: str, params: dict[str, Any] | None = None) -> Any:
        timeout = self._settings.bridge_request_timeout_seconds
        try:
            await asyncio.wait_for(self._connected.wait(), timeout=timeout)
        except TimeoutError as e:
            raise BridgeNotConnectedError("Chat bridge is not connected") from e

        ws = self._ws
        if ws is None:
            raise BridgeNotConnectedError("Chat bridge is not connected")

        request_id = uuid.uuid4().hex
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = (method, future)
        frame = {"type": "request", "id": request_id, "method": method, "params": params or {}}

        try:
            async with self._send_lock:
                await ws.send(json.dumps(frame))
            return await asyncio.wait_for(future, timeout=timeout)
        except TimeoutError as e:
            raise BridgeTimeoutError(f"{method} timed out after {timeout:g}s") from e
        except websockets.ConnectionClosed as e:
            raise BridgeNotConnectedError(f"{method}: bridge connection closed") from e
        finally:
            self._pending.pop(request_id, None)

    async def initialize(self) -> None:
        await self._request("initialize")

    async def destroy(self) -> None:
        await self._request("destroy")

    async def query_state(self) -> str:
        return str(await self._request("getState"))

    async def list_chats(self) -> list[ChatInfo]:
        result = await self._request("getChats") or []
        return [ChatInfo.from_payload(c) for c in result if isinstance(c, dict)]

    async def fetch_messages(self, chat_id: str, limit: int) -> list[InboundMessage]:
        result = await self._request("fetchMessages", {"chatId": chat_id, "limit": limit}) or []
        return [InboundMessage.from_payload(m) for m in result if isinstance(m, dict)]

    async def mark_seen(self, chat_id: str) -> None:
        await self._request("sendSeen", {"chatId": chat_id})

    async def send_message(self, recipient: str, body: str) -> None:
        await self._request("sendMessage", {"to": recipient, "body": body})
