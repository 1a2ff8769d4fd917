"""Request-scoped dependencies shared by the route modules."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from chatrelay.core.lifecycle import SessionLifecycleManager


def get_manager(request: Request) -> SessionLifecycleManager:
    """Return the lifecycle manager created by the application lifespan."""
    manager = getattr(request.app.state, "manager", None)
    if manager is None:
        raise HTTPException(status_code=503, detail="Session manager not started")
    return manager


Manager = Annotated[SessionLifecycleManager, Depends(get_manager)]
