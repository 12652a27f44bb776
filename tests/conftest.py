#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
pytest設定ファイル
共通のフィクスチャやテスト設定を定義
"""

import io
import sys
from typing import Any, List

import pytest
from loguru import logger
from PIL import Image


def encode_image(image: Image.Image, fmt: str, **kwargs: Any) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, fmt, **kwargs)
    return buffer.getvalue()


class RecordingHandleFactory:
    """ハンドルの作成・破棄を記録するテスト用ファクトリ"""

    def __init__(self) -> None:
        self.created: List[str] = []
        self.revoked: List[str] = []

    def create(self, data: bytes, mime_type: str) -> str:
        handle = f"handle-{len(self.created) + 1}:{mime_type}"
        self.created.append(handle)
        return handle

    def revoke(self, handle: str) -> None:
        self.revoked.append(handle)

    @property
    def live(self) -> List[str]:
        return [h for h in self.created if h not in self.revoked]


@pytest.fixture
def image_bytes():
    """PIL画像をバイト列へエンコードする関数"""
    return encode_image


@pytest.fixture
def handle_factory():
    return RecordingHandleFactory()


@pytest.fixture
def sample_images():
    """様々なフォーマットのサンプル画像（バイト列）を作成するフィクスチャ"""
    images = {}

    # 横長JPEG
    images["jpeg"] = encode_image(Image.new("RGB", (2000, 1500), color=(255, 0, 0)), "JPEG", quality=95)

    # 透過PNG
    images["png"] = encode_image(Image.new("RGBA", (1600, 900), color=(0, 255, 0, 128)), "PNG")

    # GIF画像
    images["gif"] = encode_image(Image.new("P", (800, 600), color=0), "GIF")

    # 小さい画像（リサイズ不要）
    images["small"] = encode_image(Image.new("RGB", (100, 100), color=(128, 128, 128)), "JPEG")

    # 縦長画像
    images["portrait"] = encode_image(Image.new("RGB", (1080, 1920), color=(255, 255, 0)), "JPEG")

    # 画像ではないファイル
    images["text"] = "これは画像ではありません\n".encode("utf-8")

    return images


@pytest.fixture
def quiet_logger():
    """テスト中に差し替えたloguruのシンクを元に戻す"""
    yield logger
    logger.remove()
    logger.add(sys.stderr, level="WARNING")
