"""Render session QR payloads as data URLs for the status endpoint."""

from __future__ import annotations

import base64
from functools import lru_cache
from typing import Any

import qrcode
from qrcode.image.svg import SvgImage

from chatrelay.logging_config import get_logger

logger: Any = get_logger(__name__)


@lru_cache(maxsize=4)
def render_qr_data_url(payload: str) -> str | None:
    """Encode a QR payload as an SVG ``data:`` URL.

    Returns None if the payload cannot be rendered.
    """
    try:
        img = qrcode.make(payload, image_factory=SvgImage)
        svg = img.to_string()
        if isinstance(svg, str):
            svg = svg.encode("utf-8")
    except Exception as e:
        logger.error(f"QR render failed: {e}")
        return None
    return "data:image/svg+xml;base64," + base64.b64encode(svg).decode("ascii")
