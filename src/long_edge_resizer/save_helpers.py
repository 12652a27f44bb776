"""Helpers for writing a generated output to disk."""

from __future__ import annotations

import os
import time
import uuid
from pathlib import Path
from typing import Union

from loguru import logger

from long_edge_resizer.regeneration_controller import DownloadPayload


def build_temp_save_path(target_path: Path) -> Path:
    """同一ディレクトリ内の一時保存パスを作る。"""
    base_name = target_path.name or "long_edge_output"
    token = f"{os.getpid()}_{time.time_ns()}_{uuid.uuid4().hex[:10]}"
    return target_path.with_name(f".{base_name}.{token}.tmp")


def write_bytes_atomic(target_path: Union[str, Path], data: bytes) -> Path:
    """保存を一時ファイル→置換で実行し、壊れた最終ファイルを防ぐ。"""
    final_path = Path(target_path)
    tmp_path = build_temp_save_path(final_path)
    try:
        tmp_path.write_bytes(data)
        os.replace(str(tmp_path), str(final_path))
    finally:
        if tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                logger.warning(f"一時保存ファイルの削除に失敗: {tmp_path}")
    return final_path


def save_download(payload: DownloadPayload, directory: Union[str, Path]) -> Path:
    """``payload`` を推奨ファイル名で ``directory`` に保存する。"""
    target_dir = Path(directory)
    target_dir.mkdir(parents=True, exist_ok=True)
    saved = write_bytes_atomic(target_dir / payload.file_name, payload.data)
    logger.info(f"保存しました: {saved} ({len(payload.data)} bytes)")
    return saved
