# qr_service.py
# Renders coupon codes as PNG data URLs.

import asyncio
import base64
import io
import logging

import qrcode

from config import settings
from errors import DependencyFailure

log = logging.getLogger(__name__)


def render_qr_data_url(payload: str) -> str:
    """Blocking render; returns ``data:image/png;base64,...``."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=8,
        border=2,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    image = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"


async def generate_qr_code(payload: str, timeout: float = None) -> str:
    """Render off the event loop, bounded by QR_RENDER_TIMEOUT_SECONDS."""
    timeout = timeout if timeout is not None else settings.QR_RENDER_TIMEOUT_SECONDS
    try:
        return await asyncio.wait_for(asyncio.to_thread(render_qr_data_url, payload), timeout=timeout)
    except asyncio.TimeoutError as e:
        log.warning(f"QR rendering timed out after {timeout}s")
        raise DependencyFailure("QR rendering timed out", code="qr_timeout") from e
    except Exception as e:
        log.exception("QR rendering failed")
        raise DependencyFailure("QR rendering failed", code="qr_failed") from e
