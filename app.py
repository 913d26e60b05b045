"""
Gradio demo: upload a medical image, send it to a hosted multimodal model and
show the answer as a diagnosis headline plus a reasoning chain.

Usage (mock mode; no API keys required):
    MOCK_PROVIDERS=1 python app.py

With real providers:
    OPENAI_API_KEY=... HUGGINGFACE_API_KEY=... python app.py --provider llava

Env / args:
    DEFAULT_PROVIDER: gpt4o | llava   （默认 llava）
    MOCK_PROVIDERS=1: 使用固定占位输出，跳过网络请求
"""

from __future__ import annotations

import argparse
import logging
import os
from typing import Any, Dict, Optional, Tuple

import gradio as gr

from medcot import (
    DecodingError,
    DiagnosisSession,
    Provider,
    SourceImage,
    build_providers,
    failure_result,
    get_settings,
)
from medcot.logging_config import configure_logging
from medcot.prompts import PROVIDER_LABELS

logger = logging.getLogger(__name__)

# --------------------------------------------------------------------------- #
# Helpers
# --------------------------------------------------------------------------- #


def _ensure_image_path(image: Any) -> Optional[str]:
    """
    Normalize a Gradio `gr.File` value to a single file path.

    Depending on the Gradio version the component hands back a string, a dict
    with a `path` key, or an object with a `.name` attribute.
    """
    if not image:
        return None
    if isinstance(image, (list, tuple)):
        if len(image) != 1:
            raise gr.Error("一次只能上传一张影像。")
        image = image[0]
    if isinstance(image, str):
        return image
    if isinstance(image, dict) and image.get("path"):
        return image["path"]
    name = getattr(image, "name", None)
    if isinstance(name, str):
        return name
    raise gr.Error(f"不支持的影像输入类型：{type(image)}")


def _model_banner(provider_key: str) -> str:
    return f"*当前使用模型：{PROVIDER_LABELS.get(provider_key, provider_key)}*"


# --------------------------------------------------------------------------- #
# Gradio logic
# --------------------------------------------------------------------------- #

def create_providers(mock: bool = False) -> Dict[str, Provider]:
    return build_providers(get_settings(), mock=mock)


# Shared by every tab; each tab gets its own DiagnosisSession through gr.State.
providers = create_providers()


def new_session() -> DiagnosisSession:
    settings = get_settings()
    return DiagnosisSession(
        providers,
        max_size=settings.max_image_size,
        quality=settings.jpeg_quality,
    )


def diagnose(
    image,
    provider_key: str,
    tab_session: Optional[DiagnosisSession] = None,
) -> Tuple[str, str, str, DiagnosisSession]:
    image_path = _ensure_image_path(image)
    if not image_path:
        raise gr.Error("请先上传一张影像。")
    if tab_session is None:
        tab_session = new_session()

    try:
        source = SourceImage.from_path(image_path)
    except DecodingError as exc:
        result = failure_result(exc, provider=PROVIDER_LABELS.get(provider_key))
    else:
        result = tab_session.run(source, provider_key)
    return result.summary, result.reasoning, _model_banner(provider_key), tab_session


def build_demo(default_provider: str = "llava"):
    if default_provider not in PROVIDER_LABELS:
        default_provider = "llava"

    with gr.Blocks(title="医学影像推理演示平台") as demo:
        # gr.State deep-copies this per tab; copies share the provider registry.
        tab_session = gr.State(new_session())
        gr.Markdown(
            """
            # 医学影像推理演示平台
            - 上传一张医学影像，选择模型后点击按钮，系统会压缩图像（最长边不超过 1024 像素）并发送给托管模型。
            - 第一行结果作为诊断结论显示，其余内容作为推理链条显示。
            - 本地快速体验：设置 `MOCK_PROVIDERS=1`，无需配置 API Key。
            """
        )

        with gr.Row(equal_height=True):
            with gr.Column():
                provider = gr.Radio(
                    label="选择模型",
                    choices=[(label, key) for key, label in PROVIDER_LABELS.items()],
                    value=default_provider,
                )
                image = gr.File(
                    label="影像上传",
                    file_count="single",
                    file_types=["image"],
                    type="filepath",
                )
                run_btn = gr.Button("上传图像并诊断", variant="primary", size="lg")

            with gr.Column():
                model_banner = gr.Markdown(_model_banner(default_provider))
                diagnosis = gr.Textbox(label="诊断结论", lines=4, placeholder="诊断结论将在此显示")
                reasoning = gr.Textbox(label="推理链条", lines=12, interactive=False)

        provider.change(_model_banner, inputs=provider, outputs=model_banner)
        run_btn.click(
            diagnose,
            inputs=[image, provider, tab_session],
            outputs=[diagnosis, reasoning, model_banner, tab_session],
            concurrency_limit=None,
        )

    return demo


def main():
    settings = get_settings()
    parser = argparse.ArgumentParser()
    parser.add_argument("--host", default="0.0.0.0", help="gradio server host")
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "7860")))
    parser.add_argument("--share", action="store_true", help="enable Gradio share link")
    parser.add_argument(
        "--provider",
        choices=sorted(PROVIDER_LABELS),
        default=settings.default_provider if settings.default_provider in PROVIDER_LABELS else "llava",
        help="默认选中的模型：gpt4o 为医学讲解助手，llava 为智能诊断模型。",
    )
    parser.add_argument("--mock", action="store_true", help="使用占位输出，不调用任何托管模型。")
    parser.add_argument("--log-level", default=None, help="覆盖 LOG_LEVEL")
    args = parser.parse_args()

    configure_logging(args.log_level)

    # re-init providers in case CLI overrides env defaults
    global providers
    if args.mock:
        for provider in providers.values():
            provider.close()
        providers = create_providers(mock=True)
    logger.info("Providers: %s", ", ".join(repr(p) for p in providers.values()))

    demo = build_demo(args.provider)
    demo.launch(
        server_name=args.host,
        server_port=args.port,
        share=args.share,
    )


if __name__ == "__main__":
    main()
