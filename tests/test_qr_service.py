import base64
import time

import pytest

import qr_service
from errors import DependencyFailure
from qr_service import generate_qr_code, render_qr_data_url


def test_render_produces_png_data_url():
    url = render_qr_data_url("COUPON-1234-5678-9ABC")
    prefix = "data:image/png;base64,"
    assert url.startswith(prefix)
    assert base64.b64decode(url[len(prefix):]).startswith(b"\x89PNG")


async def test_slow_render_times_out(monkeypatch):
    monkeypatch.setattr(qr_service, "render_qr_data_url", lambda payload: time.sleep(0.5))

    with pytest.raises(DependencyFailure) as exc:
        await generate_qr_code("COUPON-1234-5678-9ABC", timeout=0.05)
    assert exc.value.code == "qr_timeout"


async def test_render_errors_become_dependency_failures(monkeypatch):
    def broken(payload):
        raise ValueError("bad payload")

    monkeypatch.setattr(qr_service, "render_qr_data_url", broken)

    with pytest.raises(DependencyFailure) as exc:
        await generate_qr_code("COUPON-1234-5678-9ABC")
    assert exc.value.code == "qr_failed"
