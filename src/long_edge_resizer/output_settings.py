"""出力設定（長辺・形式・品質）のモデルと正規化。"""

from __future__ import annotations

from dataclasses import dataclass, replace as dataclass_replace
from typing import Any, Dict, Literal, Optional

from long_edge_resizer.size_fit import DEFAULT_LONG_EDGE, TARGET_LONG_EDGES

OutputFormat = Literal["png", "jpeg", "webp"]

OUTPUT_FORMATS: tuple[OutputFormat, ...] = ("png", "jpeg", "webp")
LOSSY_FORMATS = frozenset({"jpeg", "webp"})
DEFAULT_OUTPUT_FORMAT: OutputFormat = "jpeg"
DEFAULT_QUALITY = 0.85

MIME_TYPES: Dict[OutputFormat, str] = {
    "png": "image/png",
    "jpeg": "image/jpeg",
    "webp": "image/webp",
}

FILE_EXTENSIONS: Dict[OutputFormat, str] = {
    "png": "png",
    "jpeg": "jpg",
    "webp": "webp",
}

SETTING_FIELDS = ("long_edge", "output_format", "quality")


def supports_quality(output_format: str) -> bool:
    """品質パラメータが意味を持つ形式か。"""
    return output_format in LOSSY_FORMATS


def normalize_quality(value: Any) -> float:
    """品質値を 0.0-1.0 に丸める。"""
    try:
        quality = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid quality: {value!r}") from exc
    if quality != quality:  # NaN
        raise ValueError(f"invalid quality: {value!r}")
    return max(0.0, min(1.0, quality))


def normalize_output_format(value: Any) -> OutputFormat:
    """形式名・MIMEタイプを ``png``/``jpeg``/``webp`` に正規化する。"""
    text = str(value).strip().lower()
    if text.startswith("image/"):
        text = text[len("image/"):]
    if text == "jpg":
        text = "jpeg"
    if text not in OUTPUT_FORMATS:
        raise ValueError(f"unsupported output format: {value!r}")
    return text  # type: ignore[return-value]


def normalize_long_edge(value: Any) -> int:
    try:
        long_edge = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid long edge: {value!r}") from exc
    if long_edge not in TARGET_LONG_EDGES:
        raise ValueError(f"long edge must be one of {TARGET_LONG_EDGES}: {value!r}")
    return long_edge


@dataclass(frozen=True)
class OutputSettings:
    long_edge: int = DEFAULT_LONG_EDGE
    output_format: OutputFormat = DEFAULT_OUTPUT_FORMAT
    quality: float = DEFAULT_QUALITY

    @property
    def extension(self) -> str:
        return FILE_EXTENSIONS[self.output_format]

    @property
    def effective_quality(self) -> Optional[float]:
        """PNG では None。"""
        return self.quality if supports_quality(self.output_format) else None

    def replace(self, field: str, value: Any) -> "OutputSettings":
        """1項目を変更した正規化済みのコピーを返す。"""
        if field == "long_edge":
            return dataclass_replace(self, long_edge=normalize_long_edge(value))
        if field == "output_format":
            return dataclass_replace(self, output_format=normalize_output_format(value))
        if field == "quality":
            return dataclass_replace(self, quality=normalize_quality(value))
        raise ValueError(f"unknown setting: {field!r}")


def build_output_settings(
    long_edge: Any = DEFAULT_LONG_EDGE,
    output_format: Any = DEFAULT_OUTPUT_FORMAT,
    quality: Any = DEFAULT_QUALITY,
) -> OutputSettings:
    return OutputSettings(
        long_edge=normalize_long_edge(long_edge),
        output_format=normalize_output_format(output_format),
        quality=normalize_quality(quality),
    )
