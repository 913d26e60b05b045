"""Turning provider text (or a failure) into the two display fields."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Optional

from .errors import BusyError, DecodingError, DiagnosisError, EncodingError, NetworkError, ProviderError

EMPTY_CONTENT_PLACEHOLDER = "（无响应内容）"


@dataclass
class DiagnosisResult:
    """Summary headline plus reasoning body shown in the UI."""

    summary: str
    reasoning: str = ""
    provider: Optional[str] = None
    elapsed: Optional[float] = None
    ok: bool = True

    def to_json(self) -> str:
        return json.dumps(self.__dict__, ensure_ascii=False, indent=2)


def format_elapsed(elapsed: float) -> str:
    return f"⏱️ 响应时间：{elapsed:.1f} 秒"


def split_response(text: Optional[str], elapsed: float, provider: Optional[str] = None) -> DiagnosisResult:
    """
    First non-empty line becomes the summary (followed by the elapsed time),
    the remaining non-empty lines joined by newlines become the reasoning.
    """
    content = text or EMPTY_CONTENT_PLACEHOLDER
    lines = [line.rstrip("\r") for line in content.split("\n") if line.strip()]
    if not lines:
        lines = [EMPTY_CONTENT_PLACEHOLDER]

    return DiagnosisResult(
        summary=f"{lines[0]}\n\n{format_elapsed(elapsed)}",
        reasoning="\n".join(lines[1:]),
        provider=provider,
        elapsed=elapsed,
    )


def failure_result(
    exc: DiagnosisError,
    provider: Optional[str] = None,
    elapsed: Optional[float] = None,
) -> DiagnosisResult:
    """Render a terminal error into the summary field; reasoning is cleared."""
    if isinstance(exc, ProviderError):
        summary = f"❌ 请求失败：{exc.status_code} {exc.reason}\n{exc.body}"
    elif isinstance(exc, NetworkError):
        summary = f"⚠️ 网络或Key问题：{exc}"
    elif isinstance(exc, (DecodingError, EncodingError)):
        summary = f"⚠️ 图像处理失败：{exc}"
    elif isinstance(exc, BusyError):
        summary = f"⏳ {exc}"
    else:
        summary = f"⚠️ {exc}"
    return DiagnosisResult(summary=summary, reasoning="", provider=provider, elapsed=elapsed, ok=False)
