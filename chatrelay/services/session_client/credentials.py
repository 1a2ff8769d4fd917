"""Persisted session credentials on disk."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Any

from chatrelay.logging_config import get_logger

logger: Any = get_logger(__name__)


class CredentialStore:
    """Directory where the session engine keeps its login state."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def clear(self) -> bool:
        """Delete stored credentials. Returns True if anything was removed."""
        if not self.path.exists():
            return False
        shutil.rmtree(self.path)
        logger.info(f"Session credentials removed from {self.path}")
        return True
