"""Tests for the upload-and-diagnose cycle."""

from __future__ import annotations

from typing import List, Optional

import pytest

from medcot.errors import NetworkError, ProviderError
from medcot.image_normalizer import NormalizedImage, SourceImage
from medcot.pipeline import DiagnosisSession
from medcot.providers import Provider

from .conftest import make_image_bytes


class RecordingProvider(Provider):
    def __init__(self, key: str, reply: str = "", error: Optional[Exception] = None):
        super().__init__(key)
        self.reply = reply
        self.error = error
        self.calls: List[tuple] = []

    def send(self, image: NormalizedImage, prompt: str) -> str:
        self.calls.append((image, prompt))
        if self.error is not None:
            raise self.error
        return self.reply


def _source(size=(2048, 1024)) -> SourceImage:
    return SourceImage("chest.png", make_image_bytes(size))


def test_run_normalizes_sends_and_splits() -> None:
    provider = RecordingProvider("llava", reply="肺部未见异常\n建议随访")
    session = DiagnosisSession({"llava": provider})

    result = session.run(_source(), "llava")

    assert result.ok
    assert result.summary.startswith("肺部未见异常\n\n⏱️ 响应时间：")
    assert result.reasoning == "建议随访"
    assert result.provider == "智能诊断模型"
    assert session.last_result is result
    (image, prompt), = provider.calls
    assert (image.width, image.height) == (1024, 512)
    assert prompt == provider.default_prompt
    assert "医学影像科医生" in prompt


def test_explicit_prompt_overrides_default() -> None:
    provider = RecordingProvider("gpt4o", reply="ok")
    session = DiagnosisSession({"gpt4o": provider})

    session.run(_source((100, 100)), "gpt4o", prompt="只描述结构")

    assert provider.calls[0][1] == "只描述结构"


def test_custom_box_size_is_applied() -> None:
    provider = RecordingProvider("llava", reply="ok")
    session = DiagnosisSession({"llava": provider}, max_size=256, quality=0.5)

    session.run(_source((1000, 500)), "llava")

    image = provider.calls[0][0]
    assert (image.width, image.height) == (256, 128)


def test_undecodable_upload_never_reaches_provider() -> None:
    provider = RecordingProvider("llava", reply="unused")
    session = DiagnosisSession({"llava": provider})

    result = session.run(SourceImage("report.pdf", b"%PDF-1.7 not an image"), "llava")

    assert not result.ok
    assert "图像处理失败" in result.summary
    assert result.reasoning == ""
    assert provider.calls == []


def test_provider_error_is_rendered_with_status() -> None:
    provider = RecordingProvider("gpt4o", error=ProviderError(401, "Unauthorized", "bad key"))
    session = DiagnosisSession({"gpt4o": provider})

    result = session.run(_source((64, 64)), "gpt4o")

    assert "401" in result.summary
    assert "bad key" in result.summary
    assert result.reasoning == ""
    assert not session.busy


def test_network_error_is_rendered() -> None:
    provider = RecordingProvider("gpt4o", error=NetworkError("ReadTimeout: timed out"))
    session = DiagnosisSession({"gpt4o": provider})

    result = session.run(_source((64, 64)), "gpt4o")

    assert result.summary == "⚠️ 网络或Key问题：ReadTimeout: timed out"


def test_overlapping_trigger_is_rejected() -> None:
    nested = {}

    class ReentrantProvider(RecordingProvider):
        def send(self, image, prompt):
            nested["result"] = session.run(_source((32, 32)), "llava")
            return "首次诊断完成\n细节"

    session = DiagnosisSession({"llava": ReentrantProvider("llava")})

    outer = session.run(_source((32, 32)), "llava")

    assert outer.ok
    assert outer.reasoning == "细节"
    assert not nested["result"].ok
    assert nested["result"].summary.startswith("⏳")
    assert not session.busy


def test_unknown_provider_key() -> None:
    session = DiagnosisSession({"llava": RecordingProvider("llava")})

    with pytest.raises(KeyError):
        session.run(_source((32, 32)), "gemini")


def test_session_requires_providers() -> None:
    with pytest.raises(ValueError):
        DiagnosisSession({})
