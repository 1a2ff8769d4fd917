"""Business backend client: message webhook, roster push, reminder query."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import aiohttp


class BackendError(RuntimeError):
    """Raised when a backend call fails (network error or non-2xx)."""


@dataclass(slots=True)
class BackendClient:
    """Talks to the downstream business backend over HTTP."""

    webhook_url: str
    sync_contacts_url: str
    reminders_url: str
    auth_token: str | None = None
    timeout_seconds: float = 10

    _session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> BackendClient:
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def open(self) -> None:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    def _headers(self) -> dict[str, str]:
        headers = {}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    async def _request(self, method: str, url: str, *, json: Any = None) -> Any:
        if not self._session:
            raise BackendError("Client session not initialized")

        try:
            async with self._session.request(
                method, url, json=json, headers=self._headers()
            ) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    raise BackendError(f"{method} {url} failed: {resp.status} {body[:200]}")
                if resp.content_type == "application/json":
                    return await resp.json()
                return await resp.text()
        except aiohttp.ClientError as e:
            raise BackendError(f"{method} {url} failed: {type(e).__name__}: {e}") from e
        except TimeoutError as e:
            raise BackendError(f"{method} {url} timed out") from e

    async def post_message(self, sender_number: str, message_body: str) -> Any:
        """Relay one inbound message to the webhook."""
        return await self._request(
            "POST",
            self.webhook_url,
            json={"sender_number": sender_number, "message_body": message_body},
        )

    async def push_contacts(self, contacts: list[dict[str, str]]) -> Any:
        """Push the full roster in one batch."""
        return await self._request("POST", self.sync_contacts_url, json=contacts)

    async def fetch_payment_reminders(self) -> list[dict[str, Any]]:
        """List clients who should receive a payment reminder."""
        data = await self._request("GET", self.reminders_url)
        if not isinstance(data, list):
            raise BackendError(f"GET {self.reminders_url} returned {type(data).__name__}")
        return data
