"""
Hosted multimodal providers.

Each provider takes a normalized image plus a text prompt and returns the
generated text. The two real backends share the same OpenAI-style message
shape and differ only in endpoint, model and credential:

- `OpenAIChatProvider` posts to a chat-completions endpoint with httpx.
- `HuggingFaceProvider` routes through `huggingface_hub.InferenceClient`
  to a vision-language model served by a third-party inference provider.

`MockProvider` returns a deterministic report so the demo stays usable
without credentials (MOCK_PROVIDERS=1).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

import httpx
from huggingface_hub import InferenceClient, InferenceTimeoutError
from huggingface_hub.errors import HfHubHTTPError

from .errors import AuthError, NetworkError, ProviderError
from .image_normalizer import NormalizedImage
from .prompts import GPT4O_KEY, LLAVA_KEY, PROVIDER_LABELS, PROVIDER_PROMPTS
from .settings import Settings

logger = logging.getLogger(__name__)


def build_messages(prompt: str, image: NormalizedImage) -> List[Dict[str, Any]]:
    """Single user turn carrying the prompt and the inline base64 image."""
    return [
        {
            "role": "user",
            "content": [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": image.to_data_url()}},
            ],
        }
    ]


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def extract_content(payload: Any) -> str:
    """Read `choices[0].message.content`; returns "" when any level is missing."""
    choices = _field(payload, "choices") or []
    if not choices:
        return ""
    message = _field(choices[0], "message") or {}
    content = _field(message, "content")
    return content if isinstance(content, str) else ""


class Provider:
    """Common interface: `send(image, prompt) -> text`."""

    def __init__(self, key: str, label: Optional[str] = None, default_prompt: Optional[str] = None):
        self.key = key
        self.label = label or PROVIDER_LABELS.get(key, key)
        self.default_prompt = default_prompt or PROVIDER_PROMPTS.get(key, "")

    def send(self, image: NormalizedImage, prompt: str) -> str:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def _require_credential(self, value: str, env_name: str) -> None:
        if not value or not value.strip():
            raise AuthError(f"未配置 {env_name}，无法调用「{self.label}」。")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key={self.key!r})"


class OpenAIChatProvider(Provider):
    """Chat-completions API reached with a bearer token."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        base_url: str = "https://api.openai.com/v1",
        max_tokens: int = 1000,
        timeout: Optional[float] = 120.0,
        client: Optional[httpx.Client] = None,
        key: str = GPT4O_KEY,
    ):
        super().__init__(key)
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.max_tokens = max_tokens
        self._client = client or httpx.Client(timeout=timeout)

    def send(self, image: NormalizedImage, prompt: str) -> str:
        self._require_credential(self.api_key, "OPENAI_API_KEY")
        payload = {
            "model": self.model,
            "messages": build_messages(prompt, image),
            "max_tokens": self.max_tokens,
        }
        logger.info("POST %s/chat/completions model=%s", self.base_url, self.model)
        try:
            response = self._client.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key.strip()}"},
            )
        except httpx.HTTPError as exc:
            raise NetworkError(f"{type(exc).__name__}: {exc}") from exc

        if not response.is_success:
            raise ProviderError(
                response.status_code, response.reason_phrase, response.text, provider=self.key
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(
                response.status_code, "响应不是有效的 JSON", response.text, provider=self.key
            ) from exc
        return extract_content(data)

    def close(self) -> None:
        self._client.close()


class HuggingFaceProvider(Provider):
    """Vision-language model reached through the Hugging Face inference router."""

    def __init__(
        self,
        api_key: str,
        model: str = "llava-hf/llava-1.5-13b-hf",
        inference_provider: str = "nebius",
        timeout: Optional[float] = 120.0,
        key: str = LLAVA_KEY,
    ):
        super().__init__(key)
        self.api_key = api_key
        self.model = model
        self.inference_provider = inference_provider
        self.timeout = timeout

    def send(self, image: NormalizedImage, prompt: str) -> str:
        self._require_credential(self.api_key, "HUGGINGFACE_API_KEY")
        client = InferenceClient(
            provider=self.inference_provider,
            api_key=self.api_key.strip(),
            timeout=self.timeout,
        )
        logger.info("chat_completion provider=%s model=%s", self.inference_provider, self.model)
        try:
            output = client.chat_completion(messages=build_messages(prompt, image), model=self.model)
        except HfHubHTTPError as exc:
            response = exc.response
            if response is None:
                raise NetworkError(str(exc)) from exc
            reason = getattr(response, "reason", None) or getattr(response, "reason_phrase", "")
            raise ProviderError(response.status_code, reason, response.text, provider=self.key) from exc
        except (InferenceTimeoutError, httpx.HTTPError, OSError) as exc:
            raise NetworkError(f"{type(exc).__name__}: {exc}") from exc
        return extract_content(output)


class MockProvider(Provider):
    """Deterministic placeholder output; never touches the network."""

    def send(self, image: NormalizedImage, prompt: str) -> str:
        return (
            "【Mock 报告】未见明确占位性病变\n"
            f"- 输入影像：{image.name}（{image.width}x{image.height}，{len(image.data)} 字节）\n"
            "- 影像特征：双侧结构大致对称，未见明显密度异常\n"
            "- 建议：结合临床表现，必要时随访复查\n"
            "提示：当前为 MOCK_PROVIDERS=1，占位输出；实际部署时请配置真实的 API Key。"
        )


def build_providers(settings: Settings, mock: bool = False) -> Dict[str, Provider]:
    """Create the provider registry keyed by provider key."""
    if mock or settings.mock_providers:
        logger.info("Using mock providers (no network calls)")
        return {key: MockProvider(key) for key in (GPT4O_KEY, LLAVA_KEY)}

    return {
        GPT4O_KEY: OpenAIChatProvider(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            max_tokens=settings.max_tokens,
            timeout=settings.request_timeout,
        ),
        LLAVA_KEY: HuggingFaceProvider(
            api_key=settings.hf_api_key,
            model=settings.hf_model,
            inference_provider=settings.hf_provider,
            timeout=settings.request_timeout,
        ),
    }
