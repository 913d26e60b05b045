"""Errors raised while loading settings or during one upload-and-diagnose cycle.

Every `DiagnosisError` is terminal for the current cycle: it is rendered into the
summary field and the user re-triggers the upload manually.
"""

from __future__ import annotations

from typing import Optional


class ConfigurationError(ValueError):
    """An environment setting has a malformed or out-of-range value."""


class DiagnosisError(RuntimeError):
    """Base class for all user-visible failures."""


class DecodingError(DiagnosisError):
    """The uploaded file could not be decoded as an image."""


class EncodingError(DiagnosisError):
    """Re-encoding the resized image produced no output."""


class NetworkError(DiagnosisError):
    """The request never produced an HTTP response (connectivity, timeout, client error)."""


class AuthError(NetworkError):
    """A provider credential is missing or malformed."""


class BusyError(DiagnosisError):
    """Another upload is still in flight for this session."""


class ProviderError(DiagnosisError):
    """A provider answered with a non-2xx HTTP status."""

    def __init__(self, status_code: int, reason: str = "", body: str = "", provider: Optional[str] = None) -> None:
        self.status_code = status_code
        self.reason = reason or ""
        self.body = body or ""
        self.provider = provider
        super().__init__(f"{status_code} {self.reason}".strip())
