"""Tests for session status and control endpoints."""

from __future__ import annotations

import asyncio
from pathlib import Path

from conftest import private_chat

from chatrelay.core.signals import Authenticated, QrReceived, Ready
from chatrelay.services.backend import BackendError
from chatrelay.services.session_client import SessionClientError


class TestStatus:
    """Tests for GET /whatsapp-status."""

    def test_initial_status(self, test_client) -> None:
        """Test a fresh process reports nothing connected."""
        response = test_client.get("/whatsapp-status")

        assert response.status_code == 200
        data = response.json()
        assert data["connected"] is False
        assert data["authenticated"] is False
        assert data["hasQR"] is False
        assert data["qr"] is None
        assert data["phase"] == "disconnected"

    def test_status_with_qr(self, test_client, drive) -> None:
        """Test the QR is returned as an image data URL while awaiting a scan."""
        drive(QrReceived("2@scan-me"))

        data = test_client.get("/whatsapp-status").json()

        assert data["connected"] is False
        assert data["hasQR"] is True
        assert data["qr"].startswith("data:image/svg+xml;base64,")

    def test_status_when_ready(self, test_client, drive) -> None:
        """Test a ready session reports connected and authenticated."""
        drive(QrReceived("2@scan-me"), Authenticated(), Ready())

        data = test_client.get("/whatsapp-status").json()

        assert data["connected"] is True
        assert data["authenticated"] is True
        assert data["hasQR"] is False
        assert data["qr"] is None


class TestDiagnose:
    """Tests for GET /whatsapp-diagnose."""

    def test_reports_client_state(self, test_client, drive) -> None:
        """Test the raw client state is included."""
        drive(Ready())

        response = test_client.get("/whatsapp-diagnose")

        assert response.status_code == 200
        data = response.json()
        assert data["clientState"] == "CONNECTED"
        assert data["isClientReady"] is True
        assert data["isConnected"] is True

    def test_query_failure_surfaces(self, test_client, fake_client) -> None:
        """Test a failing state query returns 500 with the known flags."""
        fake_client.state_error = SessionClientError("page crashed")

        response = test_client.get("/whatsapp-diagnose")

        assert response.status_code == 500
        data = response.json()
        assert data["clientState"] == "error"
        assert "page crashed" in data["error"]
        assert data["isConnected"] is False


class TestDisconnect:
    """Tests for POST /whatsapp-disconnect and /whatsapp-clear-session."""

    def test_disconnect(self, test_client, fake_client, drive) -> None:
        """Test disconnect tears the session down."""
        drive(Ready())

        response = test_client.post("/whatsapp-disconnect")

        assert response.status_code == 200
        assert response.json() == {"status": "disconnected"}
        assert fake_client.destroy_count == 1
        assert test_client.get("/whatsapp-status").json()["connected"] is False

    def test_disconnect_failure(self, test_client, fake_client) -> None:
        """Test a destroy failing twice returns 500 with the error."""
        fake_client.destroy_failures = 2

        response = test_client.post("/whatsapp-disconnect")

        assert response.status_code == 500
        assert "destroy failed" in response.json()["error"]

    def test_clear_session(self, test_client, fake_client, settings, drive, run_in_app) -> None:
        """Test clear-session drops credentials and the next QR is scannable."""
        auth_dir = Path(settings.session_auth_dir)
        auth_dir.mkdir(parents=True)
        (auth_dir / "creds.json").write_text("{}")

        response = test_client.post("/whatsapp-clear-session")

        assert response.status_code == 200
        assert not auth_dir.exists()

        run_in_app(asyncio.sleep, 0.1)
        assert fake_client.initialize_count == 2

        drive(QrReceived("2@fresh"))
        data = test_client.get("/whatsapp-status").json()
        assert data["connected"] is False
        assert data["hasQR"] is True


class TestSyncContacts:
    """Tests for GET /whatsapp-sync-contacts."""

    def test_not_ready(self, test_client, fake_backend) -> None:
        """Test the manual sync is refused outside Ready."""
        response = test_client.get("/whatsapp-sync-contacts")

        assert response.status_code == 400
        fake_backend.push_contacts.assert_not_awaited()

    def test_sync(self, test_client, fake_client, fake_backend, drive) -> None:
        """Test a ready session pushes its private chats."""
        fake_client.chats = [private_chat("212611111111"), private_chat("212622222222")]
        drive(Ready())

        response = test_client.get("/whatsapp-sync-contacts")

        assert response.status_code == 200
        assert response.json() == {"status": "Contacts synced", "contacts": 2, "pushed": True}
        assert fake_backend.push_contacts.await_args.args[0] == [
            {"number": "212611111111", "direction": "sync"},
            {"number": "212622222222", "direction": "sync"},
        ]

    def test_backend_failure(self, test_client, fake_client, fake_backend, drive) -> None:
        """Test a backend failure maps to 502."""
        fake_client.chats = [private_chat("212611111111")]
        fake_backend.push_contacts.side_effect = BackendError("sync endpoint down")
        drive(Ready())

        response = test_client.get("/whatsapp-sync-contacts")

        assert response.status_code == 502
        assert response.json() == {"error": "sync endpoint down"}
