"""起動時設定。

既定の出力設定とログ設定を環境変数から組み立てる。セッションをまたいだ
保存は行わない。
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from loguru import logger

from long_edge_resizer.image_encoder import DEFAULT_WEBP_METHOD, normalize_webp_method
from long_edge_resizer.output_settings import (
    DEFAULT_OUTPUT_FORMAT,
    DEFAULT_QUALITY,
    OutputFormat,
    OutputSettings,
    normalize_long_edge,
    normalize_output_format,
    normalize_quality,
)
from long_edge_resizer.size_fit import DEFAULT_LONG_EDGE

ENV_PREFIX = "LONG_EDGE_RESIZER_"
_CONSOLE_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class AppConfig:
    default_long_edge: int = DEFAULT_LONG_EDGE
    default_format: OutputFormat = DEFAULT_OUTPUT_FORMAT
    default_quality: float = DEFAULT_QUALITY
    webp_method: int = DEFAULT_WEBP_METHOD
    log_dir: Optional[Path] = None
    console_level: str = "INFO"

    def output_settings(self) -> OutputSettings:
        return OutputSettings(
            long_edge=self.default_long_edge,
            output_format=self.default_format,
            quality=self.default_quality,
        )


def default_app_config() -> AppConfig:
    """設定の既定値を返す。"""
    return AppConfig()


def normalize_console_level(value: Any) -> str:
    level = str(value).strip().upper()
    if level not in _CONSOLE_LEVELS:
        raise ValueError(f"unknown log level: {value!r}")
    return level


def load_app_config(env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """``LONG_EDGE_RESIZER_*`` 環境変数から設定を読む。

    不正な値は警告を出して既定値に戻す。
    """
    resolved_env = os.environ if env is None else env
    defaults = default_app_config()

    def read(name: str, parse: Callable[[str], Any], fallback: Any) -> Any:
        raw = resolved_env.get(ENV_PREFIX + name)
        if raw is None or not raw.strip():
            return fallback
        try:
            return parse(raw)
        except ValueError as exc:
            logger.warning(f"環境変数 {ENV_PREFIX}{name} を無視します: {exc}")
            return fallback

    log_dir = read("LOG_DIR", lambda raw: Path(raw).expanduser(), defaults.log_dir)
    return AppConfig(
        default_long_edge=read("LONG_EDGE", normalize_long_edge, defaults.default_long_edge),
        default_format=read("FORMAT", normalize_output_format, defaults.default_format),
        default_quality=read("QUALITY", normalize_quality, defaults.default_quality),
        webp_method=read("WEBP_METHOD", lambda raw: normalize_webp_method(int(raw)), defaults.webp_method),
        log_dir=log_dir,
        console_level=read("LOG_LEVEL", normalize_console_level, defaults.console_level),
    )
