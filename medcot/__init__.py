"""Service layer for the medical image reasoning demo.

This package exposes the image normalizer, the hosted-provider clients and
the upload cycle so the Gradio UI (and tests) can import them without
starting a server. Network clients are only contacted on `Provider.send`.
"""

from .errors import (  # noqa: F401
    AuthError,
    BusyError,
    ConfigurationError,
    DecodingError,
    DiagnosisError,
    EncodingError,
    NetworkError,
    ProviderError,
)
from .image_normalizer import NormalizedImage, SourceImage, fit_within, normalize_image  # noqa: F401
from .pipeline import DiagnosisSession  # noqa: F401
from .providers import (  # noqa: F401
    HuggingFaceProvider,
    MockProvider,
    OpenAIChatProvider,
    Provider,
    build_providers,
    extract_content,
)
from .result import DiagnosisResult, failure_result, split_response  # noqa: F401
from .settings import Settings, get_settings  # noqa: F401
