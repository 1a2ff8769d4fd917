"""Liveness check.

Provides:
- GET /ping: fixed acknowledgment with the server time
"""

from datetime import UTC, datetime

from fastapi import APIRouter
from pydantic import BaseModel

router = APIRouter()


class PingResponse(BaseModel):
    """Liveness check response."""

    status: str
    timestamp: str


@router.get("/ping", response_model=PingResponse)
async def ping() -> PingResponse:
    """Liveness check.

    Always answers while the process is up, whatever the session phase.
    """
    return PingResponse(
        status="Server is running",
        timestamp=datetime.now(UTC).isoformat(),
    )
