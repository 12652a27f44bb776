"""画像ファイルのデコード。

選択されたファイルのバイト列を Pillow で読み込み、EXIF の向きを反映した
デコード済み画像として返す。読み込みはスレッドプールで行い、イベントループを
止めない。
"""

from __future__ import annotations

import asyncio
import io
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

from loguru import logger
from PIL import Image, ImageOps, UnidentifiedImageError

from long_edge_resizer.errors import DecodeError


@dataclass(frozen=True)
class SourceImage:
    bitmap: Image.Image
    width: int
    height: int
    file_name: str
    byte_size: int
    source_format: Optional[str] = None


def describe_decode_failure(error: BaseException) -> str:
    """例外からユーザー向けの原因文字列を作る。"""
    if isinstance(error, UnidentifiedImageError):
        return "not a recognized image format"
    if isinstance(error, Image.DecompressionBombError):
        return f"image is too large: {error}"
    if isinstance(error, (EOFError, SyntaxError)):
        return f"image data is truncated or corrupt: {error}"
    if isinstance(error, MemoryError):
        return "not enough memory to decode the image"
    return f"{type(error).__name__}: {error}"


def decode_image_bytes(data: bytes, file_name: str) -> SourceImage:
    """バイト列を同期的にデコードする。

    Raises:
        DecodeError: 画像として読み込めない場合。部分的な読み込みは成功扱いにしない。
    """
    if not data:
        raise DecodeError("file is empty")

    try:
        with Image.open(io.BytesIO(data)) as opened:
            source_format = opened.format
            # アニメーション画像は先頭フレームのみ
            opened.seek(0)
            opened.load()
            bitmap = ImageOps.exif_transpose(opened)
    except (
        UnidentifiedImageError,
        Image.DecompressionBombError,
        OSError,
        ValueError,
        EOFError,
        SyntaxError,
        MemoryError,
    ) as exc:
        cause = describe_decode_failure(exc)
        logger.warning(f"デコード失敗: {file_name}: {cause}")
        raise DecodeError(cause) from exc

    width, height = bitmap.size
    if width <= 0 or height <= 0:
        raise DecodeError(f"invalid image dimensions {width}x{height}")

    logger.debug(f"デコード完了: {file_name} {width}x{height} format={source_format} mode={bitmap.mode}")
    return SourceImage(
        bitmap=bitmap,
        width=width,
        height=height,
        file_name=file_name,
        byte_size=len(data),
        source_format=source_format,
    )


async def decode_image(data: bytes, file_name: str) -> SourceImage:
    """バイト列をスレッドプール上でデコードする。"""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, decode_image_bytes, data, file_name)


def read_image_file(path: Union[str, Path]) -> Tuple[bytes, str]:
    """ファイルを読み込み ``(bytes, ファイル名)`` を返す。"""
    file_path = Path(path)
    return file_path.read_bytes(), file_path.name
