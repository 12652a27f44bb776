"""リサイズとエンコードのパイプライン。

デコード済み画像を指定サイズのラスタへ高品質に縮小し、PNG/JPEG/WEBP の
バイト列へエンコードする。品質値は JPEG/WEBP のみに渡し、PNG には一切渡さない。
"""

from __future__ import annotations

import asyncio
import io
from dataclasses import dataclass
from typing import Any, Dict, Optional

from loguru import logger
from PIL import Image, features

from long_edge_resizer.image_decoder import SourceImage
from long_edge_resizer.errors import EncodeError
from long_edge_resizer.output_settings import (
    DEFAULT_QUALITY,
    MIME_TYPES,
    OutputFormat,
    normalize_output_format,
    normalize_quality,
    supports_quality,
)

DEFAULT_WEBP_METHOD = 4
_RESAMPLE_FILTER = Image.Resampling.LANCZOS
_JPEG_BACKGROUND = (255, 255, 255)
_SIXTEEN_BIT_MODES = ("I;16", "I;16L", "I;16B", "I;16N", "I")


@dataclass(frozen=True)
class EncodedImage:
    data: bytes
    mime_type: str
    width: int
    height: int
    output_format: OutputFormat
    quality: Optional[float] = None

    @property
    def size_bytes(self) -> int:
        return len(self.data)


def supported_output_formats() -> list[OutputFormat]:
    """実行環境で書き出し可能な出力形式を返す。"""
    formats: list[OutputFormat] = ["png", "jpeg"]
    if _feature_enabled("webp") or _registered_format("WEBP"):
        formats.append("webp")
    return formats


def encoder_quality(quality: Optional[float]) -> int:
    """0.0-1.0 の品質値を Pillow の 0-100 に変換する。未指定なら既定値。"""
    if quality is None:
        quality = DEFAULT_QUALITY
    return int(round(normalize_quality(quality) * 100))


def normalize_webp_method(value: int) -> int:
    """WEBP method を 0-6 に丸める。"""
    return max(0, min(6, int(value)))


def build_encoder_save_kwargs(
    output_format: OutputFormat,
    quality: Optional[float],
    webp_method: int = DEFAULT_WEBP_METHOD,
) -> Dict[str, Any]:
    """出力形式に応じたエンコーダ設定を返す。"""
    if output_format == "jpeg":
        return {
            "format": "JPEG",
            "quality": encoder_quality(quality),
            "optimize": True,
            "progressive": True,
        }
    if output_format == "webp":
        return {
            "format": "WEBP",
            "quality": encoder_quality(quality),
            "method": normalize_webp_method(webp_method),
        }
    if output_format == "png":
        # PNGはロスレス。品質値には依存させない。
        return {
            "format": "PNG",
            "compress_level": 6,
        }
    raise EncodeError(f"unsupported output format: {output_format}")


def _to_eight_bit(bitmap: Image.Image) -> Image.Image:
    """16bit整数・浮動小数のグレースケールを 8bit の ``L`` へ縮める。

    ``convert("RGB")`` は 255 を超える値を切り捨てるため、先に階調を詰める。
    """
    if bitmap.mode in _SIXTEEN_BIT_MODES:
        return bitmap.convert("I").point(lambda v: v * (1 / 256)).convert("L")
    if bitmap.mode == "F":
        low, high = bitmap.getextrema()
        if high <= low:
            return Image.new("L", bitmap.size, max(0, min(255, int(round(low)))))
        scale = 255.0 / (high - low)
        return bitmap.point(lambda v: v * scale - low * scale).convert("L")
    return bitmap


def rasterize(bitmap: Image.Image, width: int, height: int) -> Image.Image:
    """``width x height`` のラスタへ Lanczos で描画する。"""
    if width <= 0 or height <= 0:
        raise EncodeError(f"invalid output size {width}x{height}")

    raster = _to_eight_bit(bitmap)
    if raster.mode not in ("RGB", "RGBA", "L", "LA"):
        has_alpha = "A" in raster.getbands() or "transparency" in raster.info
        raster = raster.convert("RGBA" if has_alpha else "RGB")

    if raster.size == (width, height):
        return raster.copy()
    return raster.resize((width, height), _RESAMPLE_FILTER, reducing_gap=3.0)


def _prepare_for_format(raster: Image.Image, output_format: OutputFormat) -> Image.Image:
    if output_format != "jpeg":
        return raster
    if "A" in raster.getbands():
        # 透過を持つ画像は白背景へ合成して保存する
        rgba = raster.convert("RGBA")
        background = Image.new("RGBA", rgba.size, _JPEG_BACKGROUND + (255,))
        background.alpha_composite(rgba)
        return background.convert("RGB")
    if raster.mode not in ("RGB", "L"):
        return raster.convert("RGB")
    return raster


def encode_raster(
    raster: Image.Image,
    output_format: OutputFormat,
    quality: Optional[float],
    webp_method: int = DEFAULT_WEBP_METHOD,
) -> bytes:
    """ラスタをバイト列へエンコードする。"""
    save_kwargs = build_encoder_save_kwargs(output_format, quality, webp_method)
    buffer = io.BytesIO()
    try:
        _prepare_for_format(raster, output_format).save(buffer, **save_kwargs)
    except (OSError, ValueError, KeyError) as exc:
        raise EncodeError(f"{save_kwargs['format']} encoder failed: {exc}") from exc

    data = buffer.getvalue()
    if not data:
        raise EncodeError(f"{save_kwargs['format']} encoder produced no output")
    return data


def render_sync(
    source: SourceImage,
    width: int,
    height: int,
    output_format: str,
    quality: Optional[float] = None,
    webp_method: int = DEFAULT_WEBP_METHOD,
) -> EncodedImage:
    """縮小とエンコードを同期的に行う。"""
    try:
        fmt = normalize_output_format(output_format)
    except ValueError as exc:
        raise EncodeError(str(exc)) from exc

    try:
        raster = rasterize(source.bitmap, width, height)
    except (OSError, ValueError, MemoryError) as exc:
        raise EncodeError(f"could not draw {width}x{height} raster: {exc}") from exc

    data = encode_raster(raster, fmt, quality, webp_method)
    applied_quality = encoder_quality(quality) / 100 if supports_quality(fmt) else None
    logger.debug(
        f"エンコード完了: {source.file_name} -> {width}x{height} {fmt} "
        f"q={applied_quality} {len(data)} bytes"
    )
    return EncodedImage(
        data=data,
        mime_type=MIME_TYPES[fmt],
        width=width,
        height=height,
        output_format=fmt,
        quality=applied_quality,
    )


async def render(
    source: SourceImage,
    width: int,
    height: int,
    output_format: str,
    quality: Optional[float] = None,
    webp_method: int = DEFAULT_WEBP_METHOD,
) -> EncodedImage:
    """縮小とエンコードをスレッドプール上で行う。

    Raises:
        EncodeError: サイズが0、未対応形式、エンコーダの失敗など。
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(
        None, render_sync, source, width, height, output_format, quality, webp_method
    )


def _feature_enabled(feature_name: str) -> bool:
    try:
        return bool(features.check(feature_name))
    except Exception:
        return False


def _registered_format(name: str) -> bool:
    try:
        return any(v.upper() == name for v in Image.registered_extensions().values())
    except Exception:
        return False
