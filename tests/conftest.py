from __future__ import annotations

import io

import pytest
from PIL import Image

from tracker.config import TrackerSettings


@pytest.fixture
def settings() -> TrackerSettings:
    return TrackerSettings()


@pytest.fixture
def png_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4), color=(200, 30, 30)).save(buffer, format="PNG")
    return buffer.getvalue()
