"""Session status and control endpoints.

Paths are kept from the original bridge so existing dashboards and cron jobs
keep working:
- GET  /whatsapp-status
- GET  /whatsapp-diagnose
- POST /whatsapp-disconnect
- POST /whatsapp-clear-session
- GET  /whatsapp-sync-contacts
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from chatrelay.api.dependencies import Manager
from chatrelay.core.roster import SessionNotReadyError
from chatrelay.logging_config import get_logger
from chatrelay.services.qr import render_qr_data_url

logger: Any = get_logger(__name__)

router = APIRouter()


# =============================================================================
# Response Schemas
# =============================================================================


class StatusResponse(BaseModel):
    """Best-effort view of the session."""

    connected: bool
    authenticated: bool
    hasQR: bool
    qr: str | None = None
    phase: str


class DiagnoseResponse(BaseModel):
    isConnected: bool
    isAuthenticated: bool
    hasQR: bool
    isClientReady: bool
    clientState: str | None
    phase: str
    error: str | None = None


class CommandResponse(BaseModel):
    status: str


class SyncContactsResponse(BaseModel):
    status: str
    contacts: int
    pushed: bool


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/whatsapp-status", response_model=StatusResponse)
async def whatsapp_status(manager: Manager) -> StatusResponse:
    """Current session status, with the QR code as a data URL while awaiting a scan."""
    view = manager.view
    qr = render_qr_data_url(view.qr_payload) if view.qr_payload else None
    return StatusResponse(
        connected=view.is_ready,
        authenticated=view.is_authenticated,
        hasQR=view.has_qr,
        qr=qr,
        phase=view.phase.value,
    )


@router.get("/whatsapp-diagnose", response_model=DiagnoseResponse)
async def whatsapp_diagnose(manager: Manager) -> DiagnoseResponse | JSONResponse:
    """Status flags plus the state reported by the session client itself.

    Returns 500 with ``clientState: "error"`` when the client cannot be
    queried; the known flags are still included.
    """
    view = manager.view
    flags = {
        "isConnected": view.is_ready,
        "isAuthenticated": view.is_authenticated,
        "hasQR": view.has_qr,
        "isClientReady": view.is_ready,
        "phase": view.phase.value,
    }

    try:
        client_state = await manager.query_client_state()
    except Exception as e:
        logger.error(f"Diagnose: could not query client state: {e}")
        body = DiagnoseResponse(**flags, clientState="error", error=str(e))
        return JSONResponse(status_code=500, content=body.model_dump())

    return DiagnoseResponse(**flags, clientState=client_state)


@router.post("/whatsapp-disconnect", response_model=CommandResponse)
async def whatsapp_disconnect(manager: Manager) -> CommandResponse | JSONResponse:
    """Tear the session down; it re-initializes by itself shortly after."""
    try:
        await manager.disconnect()
    except Exception as e:
        logger.error(f"Disconnect failed: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})
    return CommandResponse(status="disconnected")


@router.post("/whatsapp-clear-session", response_model=CommandResponse)
async def whatsapp_clear_session(manager: Manager) -> CommandResponse | JSONResponse:
    """Drop stored credentials and restart; the next cycle needs a fresh scan."""
    try:
        await manager.clear_session()
    except Exception as e:
        logger.error(f"Clear session failed: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})
    return CommandResponse(status="session cleared")


@router.get("/whatsapp-sync-contacts", response_model=SyncContactsResponse)
async def whatsapp_sync_contacts(manager: Manager) -> SyncContactsResponse | JSONResponse:
    """Run a roster sync now.

    Returns:
        400 if the session is not Ready, 502 if listing chats or the backend
        push failed.
    """
    try:
        result = await manager.sync_roster()
    except SessionNotReadyError:
        return JSONResponse(status_code=400, content={"error": "WhatsApp client not ready"})

    if not result.ok:
        return JSONResponse(status_code=502, content={"error": result.error})

    return SyncContactsResponse(
        status="Contacts synced" if result.pushed else "No contacts to sync",
        contacts=result.contact_count,
        pushed=result.pushed,
    )
