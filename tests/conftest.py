"""
Shared pytest fixtures.

Every test that touches the database gets a clean temporary DATA_DIR via the
`tmp_data_dir` fixture so tests are fully isolated from each other and from
the real data/scanner.db. Images are generated on the fly with Pillow.
"""
from __future__ import annotations

import io
import sys
from pathlib import Path

import pytest
import pytest_asyncio

# ── Make the project root importable without installing the package ────────────
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture(autouse=True)
def tmp_data_dir(tmp_path_factory, monkeypatch):
    """
    Redirect DATA_DIR to a fresh tmp directory for every test.
    This gives each test a clean SQLite file and prevents cross-test pollution.
    """
    data = tmp_path_factory.mktemp("data")
    monkeypatch.setenv("DATA_DIR", str(data))

    # Patch the module-level DB_PATH that was already computed at import time
    import database
    monkeypatch.setattr(database, "DB_PATH", str(data / "scanner.db"))
    monkeypatch.setattr(database, "_DATA_DIR", data)

    # Also reset the internal lock so tests don't share state
    import asyncio
    monkeypatch.setattr(database, "_lock", asyncio.Lock())

    import config
    monkeypatch.setattr(config, "DATA_DIR", str(data))

    yield data


@pytest.fixture(autouse=True)
def clean_settings_env(monkeypatch):
    """Settings defaults must not depend on the developer's shell or .env."""
    for name in ("COMPANY_NAME", "ALLOWED_LOCATIONS", "STRICT_LOCATION_MODE", "BUSINESS_TYPE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def no_api_key(monkeypatch):
    import config
    for name in config.API_KEY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def api_key(no_api_key, monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "test-gemini-key")
    return "test-gemini-key"


def make_image_bytes(size=(640, 480), mode="RGB", fmt="PNG", color=(200, 30, 30)) -> bytes:
    from PIL import Image

    if mode == "RGBA" and len(color) == 3:
        color = (*color, 128)
    buf = io.BytesIO()
    Image.new(mode, size, color).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def image_bytes():
    """Factory fixture: image_bytes((w, h), mode="RGB", fmt="PNG")."""
    return make_image_bytes
