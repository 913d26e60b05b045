from __future__ import annotations

import io
from pathlib import Path

import pytest
from PIL import Image

from medcot.settings import get_settings

_ENV_KEYS = (
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "OPENAI_MODEL",
    "MAX_TOKENS",
    "HUGGINGFACE_API_KEY",
    "HF_TOKEN",
    "HF_INFERENCE_PROVIDER",
    "HF_MODEL",
    "MAX_IMAGE_SIZE",
    "JPEG_QUALITY",
    "REQUEST_TIMEOUT",
    "DEFAULT_PROVIDER",
    "MOCK_PROVIDERS",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    for key in _ENV_KEYS:
        # setenv first so values written by load_dotenv are undone at teardown
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    # keep a developer's .env out of the tests
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def make_image_bytes(size=(64, 48), mode="RGB", fmt="PNG", color=(120, 30, 200)) -> bytes:
    if mode == "RGBA":
        color = (*color[:3], 128)
    elif mode == "L":
        color = color[0]
    img = Image.new(mode, size, color)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()
