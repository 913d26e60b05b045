"""
Environment-driven configuration for the demo.

Provider credentials and model identifiers are read from the process
environment. A `.env` file in the working directory is loaded first (without
overriding variables that are already set) so local runs only need the file.
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, List, Optional, TypeVar

from dotenv import load_dotenv

from .errors import ConfigurationError

T = TypeVar("T")


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Settings for both hosted providers and the image normalizer."""

    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o"
    max_tokens: int = 1000

    hf_api_key: str = ""
    hf_provider: str = "nebius"
    hf_model: str = "llava-hf/llava-1.5-13b-hf"

    max_image_size: int = 1024
    jpeg_quality: float = 0.7
    # None disables the client-side timeout entirely.
    request_timeout: Optional[float] = 120.0

    default_provider: str = "llava"
    mock_providers: bool = False
    log_level: str = "INFO"


def _parse(
    name: str,
    default: str,
    cast: Callable[[str], T],
    check: Callable[[T], bool],
    expected: str,
    problems: List[str],
) -> Optional[T]:
    raw = os.getenv(name, default).strip()
    try:
        value = cast(raw)
    except ValueError:
        problems.append(f"{name}={raw!r} (expected {expected})")
        return None
    if not check(value):
        problems.append(f"{name}={raw!r} (expected {expected})")
        return None
    return value


def _build_settings() -> Settings:
    load_dotenv(".env", override=False)

    problems: List[str] = []
    max_tokens = _parse("MAX_TOKENS", "1000", int, lambda v: v > 0, "a positive integer", problems)
    max_image_size = _parse("MAX_IMAGE_SIZE", "1024", int, lambda v: v > 0, "a positive integer", problems)
    jpeg_quality = _parse("JPEG_QUALITY", "0.7", float, lambda v: 0 < v <= 1, "a number in (0, 1]", problems)
    timeout = _parse("REQUEST_TIMEOUT", "120", float, lambda v: not math.isnan(v), "a number of seconds", problems)
    if problems:
        raise ConfigurationError("Invalid configuration: " + "; ".join(problems))

    return Settings(
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        openai_base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o"),
        max_tokens=max_tokens,
        hf_api_key=os.getenv("HUGGINGFACE_API_KEY") or os.getenv("HF_TOKEN", ""),
        hf_provider=os.getenv("HF_INFERENCE_PROVIDER", "nebius"),
        hf_model=os.getenv("HF_MODEL", "llava-hf/llava-1.5-13b-hf"),
        max_image_size=max_image_size,
        jpeg_quality=jpeg_quality,
        request_timeout=timeout if timeout > 0 else None,
        default_provider=os.getenv("DEFAULT_PROVIDER", "llava").lower(),
        mock_providers=_env_flag("MOCK_PROVIDERS"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached settings instance."""

    return _build_settings()
