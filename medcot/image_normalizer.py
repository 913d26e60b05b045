"""
Client-side image normalization before upload.

An uploaded image is decoded, downscaled to fit a bounding box (1024x1024 by
default) while keeping its aspect ratio, and re-encoded as JPEG at a fixed
quality so that the base64 payload embedded in the JSON request stays small.
Images already inside the box keep their size; only the encoding changes.
"""

from __future__ import annotations

import base64
import io
import logging
import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import DecodingError, EncodingError

logger = logging.getLogger(__name__)

MAX_WIDTH = 1024
MAX_HEIGHT = 1024
JPEG_QUALITY = 0.7
JPEG_MIME = "image/jpeg"


@dataclass
class SourceImage:
    """Raw bytes of a user-selected file."""

    name: str
    data: bytes

    @classmethod
    def from_path(cls, path: str | Path) -> "SourceImage":
        path = Path(path)
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise DecodingError(f"无法读取文件 {path.name}：{exc}") from exc
        return cls(name=path.name, data=data)

    def decode(self) -> Image.Image:
        """Decode into a fully loaded, orientation-corrected Pillow image."""
        if not self.data:
            raise DecodingError(f"文件 {self.name} 为空，无法解析为图像。")
        try:
            img = Image.open(io.BytesIO(self.data))
            img.load()
        except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
            raise DecodingError(f"文件 {self.name} 不是受支持的图像格式。") from exc
        try:
            return ImageOps.exif_transpose(img)
        except (OSError, ValueError, KeyError, TypeError, SyntaxError, struct.error) as exc:
            raise DecodingError(f"文件 {self.name} 的 EXIF 信息损坏。") from exc


@dataclass
class NormalizedImage:
    """JPEG bytes produced by `normalize_image`."""

    name: str
    data: bytes
    width: int
    height: int
    source_size: Tuple[int, int] = (0, 0)
    mime_type: str = field(default=JPEG_MIME)

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"


def fit_within(
    width: int,
    height: int,
    max_width: int = MAX_WIDTH,
    max_height: int = MAX_HEIGHT,
) -> Tuple[int, int]:
    """
    Compute the output size for a `width` x `height` image.

    Images inside the box are returned unchanged. Otherwise the longer side is
    pinned to the limit (width when the image is wider than tall, height
    otherwise) and the other side follows the aspect ratio.
    """
    if width <= 0 or height <= 0:
        raise DecodingError(f"图像尺寸无效：{width}x{height}")
    if width <= max_width and height <= max_height:
        return width, height

    aspect_ratio = width / height
    if aspect_ratio > 1:
        out_w, out_h = float(max_width), max_width / aspect_ratio
    else:
        out_w, out_h = max_height * aspect_ratio, float(max_height)
    return max(1, round(out_w)), max(1, round(out_h))


def _to_rgb(img: Image.Image) -> Image.Image:
    # JPEG has no alpha channel; flatten transparent pixels onto white.
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def _quality_to_pillow(quality: float) -> int:
    if not 0 < quality <= 1:
        raise ValueError(f"quality must be in (0, 1], got {quality}")
    return max(1, min(100, round(quality * 100)))


def normalize_image(
    source: SourceImage,
    max_width: int = MAX_WIDTH,
    max_height: int = MAX_HEIGHT,
    quality: float = JPEG_QUALITY,
) -> NormalizedImage:
    """
    Resize `source` to fit within `max_width` x `max_height` and re-encode it
    as JPEG at `quality` (0-1 scale).

    Raises
    ------
    DecodingError
        The source is empty or is not a decodable image.
    EncodingError
        The JPEG encoder failed or produced no bytes.
    """
    jpeg_quality = _quality_to_pillow(quality)
    img = source.decode()
    src_w, src_h = img.size
    out_w, out_h = fit_within(src_w, src_h, max_width, max_height)

    rgb = _to_rgb(img)
    if (out_w, out_h) != (src_w, src_h):
        rgb = rgb.resize((out_w, out_h), Image.Resampling.BILINEAR)

    buffer = io.BytesIO()
    try:
        rgb.save(buffer, format="JPEG", quality=jpeg_quality)
    except (OSError, ValueError) as exc:
        raise EncodingError(f"图像重新编码失败：{exc}") from exc
    data = buffer.getvalue()
    if not data:
        raise EncodingError("图像重新编码未产生任何输出。")

    logger.info(
        "Normalized %s: %dx%d -> %dx%d (%d -> %d bytes)",
        source.name, src_w, src_h, out_w, out_h, len(source.data), len(data),
    )
    return NormalizedImage(
        name=source.name,
        data=data,
        width=out_w,
        height=out_h,
        source_size=(src_w, src_h),
    )
