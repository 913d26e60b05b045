"""
One upload-and-diagnose cycle as a linear sequence of stages:

    SourceImage -> normalize_image -> Provider.send -> split_response

`DiagnosisSession` holds the state a UI session owns (the provider registry,
the in-flight flag and the last result). Uploads are serialized: a trigger
that arrives while another cycle is running is rejected, not queued.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Dict, Optional

from .errors import BusyError, DiagnosisError
from .image_normalizer import JPEG_QUALITY, MAX_WIDTH, SourceImage, normalize_image
from .providers import Provider
from .result import DiagnosisResult, failure_result, split_response

logger = logging.getLogger(__name__)


class DiagnosisSession:
    """
    Parameters
    ----------
    providers : dict
        Provider key -> Provider instance.
    max_size : int
        Bounding box edge for the normalizer.
    quality : float
        JPEG quality in (0, 1].
    """

    def __init__(
        self,
        providers: Dict[str, Provider],
        max_size: int = MAX_WIDTH,
        quality: float = JPEG_QUALITY,
    ):
        if not providers:
            raise ValueError("At least one provider is required.")
        self.providers = providers
        self.max_size = max_size
        self.quality = quality
        self.last_result: Optional[DiagnosisResult] = None
        self._lock = threading.Lock()

    def __deepcopy__(self, memo) -> "DiagnosisSession":
        # Fresh lock and result; providers hold network clients and are shared.
        return DiagnosisSession(self.providers, self.max_size, self.quality)

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def provider(self, key: str) -> Provider:
        try:
            return self.providers[key]
        except KeyError:
            raise KeyError(f"Unknown provider {key!r}; expected one of {sorted(self.providers)}") from None

    def run(self, source: SourceImage, provider_key: str, prompt: Optional[str] = None) -> DiagnosisResult:
        """Run the full cycle; every `DiagnosisError` comes back as a failure result."""
        provider = self.provider(provider_key)

        if not self._lock.acquire(blocking=False):
            logger.warning("Rejected upload of %s: another diagnosis is in flight", source.name)
            return failure_result(BusyError("诊断进行中，请等待当前请求完成后再试。"), provider=provider.label)

        start = time.perf_counter()
        try:
            normalized = normalize_image(source, self.max_size, self.max_size, self.quality)
            text = provider.send(normalized, prompt or provider.default_prompt)
            result = split_response(text, time.perf_counter() - start, provider=provider.label)
        except DiagnosisError as exc:
            elapsed = time.perf_counter() - start
            logger.warning("Diagnosis via %s failed after %.1fs: %s", provider.key, elapsed, exc)
            result = failure_result(exc, provider=provider.label, elapsed=elapsed)
        finally:
            self._lock.release()

        logger.info("Diagnosis via %s finished in %.1fs (ok=%s)", provider.key, result.elapsed or 0.0, result.ok)
        self.last_result = result
        return result

    def close(self) -> None:
        for provider in self.providers.values():
            provider.close()
