"""Outbound messaging endpoints.

- GET  /send-relance-payer: payment reminders, answered before sending
- POST /relance-pub: broadcast one message to a list of numbers
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from chatrelay.api.dependencies import Manager
from chatrelay.core.broadcast import BroadcastValidationError
from chatrelay.logging_config import get_logger

logger: Any = get_logger(__name__)

router = APIRouter()


class BroadcastRequest(BaseModel):
    """Broadcast payload. Both fields are validated by the dispatcher."""

    message: str | None = None
    contacts: list[str] | None = Field(default=None)


class BroadcastResponse(BaseModel):
    sentCount: int
    failedCount: int
    sent: list[str]
    failed: list[str]


class AcceptedResponse(BaseModel):
    status: str


@router.get("/send-relance-payer", response_model=AcceptedResponse)
async def send_payment_reminders(manager: Manager) -> AcceptedResponse:
    """Start the payment reminder job and return immediately."""
    manager.send_payment_reminders()
    logger.info("Payment reminder job started")
    return AcceptedResponse(status="Relance paiement en cours")


@router.post("/relance-pub", response_model=BroadcastResponse)
async def broadcast(
    payload: BroadcastRequest,
    manager: Manager,
) -> BroadcastResponse | JSONResponse:
    """Send a message to every contact, one after the other.

    Returns 400 before any send if the message or the contact list is empty.
    Individual send failures are reported in ``failed``.
    """
    dispatcher = manager.broadcast
    try:
        job = dispatcher.prepare(payload.message, payload.contacts)
    except BroadcastValidationError as e:
        return JSONResponse(status_code=400, content={"message": str(e)})

    job = await dispatcher.dispatch(job)
    return BroadcastResponse(**job.to_response())
