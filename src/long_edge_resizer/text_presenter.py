"""Pure text builders for status/metadata labels."""

from __future__ import annotations

import math
import re
from pathlib import PurePath
from typing import Optional

from long_edge_resizer.output_settings import OutputFormat, OutputSettings, supports_quality

ENCODE_FAILED_TEXT = "Failed to generate output"
EMPTY_META_TEXT = "—"
NO_FILE_TEXT = "No file selected"

_FORMAT_LABELS = {
    "png": "PNG",
    "jpeg": "JPEG",
    "webp": "WebP",
}
_EXTENSION_RE = re.compile(r"\.[^/.]+$")


def format_file_size(size_in_bytes: float) -> str:
    """Human readable size, e.g. ``512 B`` or ``1.50 MB``."""
    if size_in_bytes is None or not math.isfinite(size_in_bytes):
        return EMPTY_META_TEXT
    units = ["B", "KB", "MB", "GB"]
    value = float(size_in_bytes)
    unit_index = 0
    while value >= 1024 and unit_index < len(units) - 1:
        value /= 1024
        unit_index += 1
    decimals = 0 if unit_index == 0 else 2
    return f"{value:.{decimals}f} {units[unit_index]}"


def format_label(output_format: str) -> str:
    return _FORMAT_LABELS.get(output_format, output_format.upper())


def format_from_label(label: str) -> OutputFormat:
    """Inverse of :func:`format_label` for menu values."""
    for output_format, known_label in _FORMAT_LABELS.items():
        if known_label == label:
            return output_format  # type: ignore[return-value]
    raise ValueError(f"unknown format label: {label!r}")


def build_long_edge_button_text(long_edge: int) -> str:
    return f"{long_edge}px"


def build_original_meta_text(*, width: int, height: int, byte_size: int) -> str:
    """Build ``WxH, size`` for the source image."""
    return f"{width}×{height}, {format_file_size(byte_size)}"


def build_output_meta_text(
    *,
    width: int,
    height: int,
    output_format: str,
    quality: Optional[float],
    size_bytes: int,
) -> str:
    """Build ``WxH, FORMAT[, q=Q], size``; quality only for JPEG/WEBP."""
    quality_text = ""
    if quality is not None and supports_quality(output_format):
        quality_text = f", q={quality:.2f}"
    return f"{width}×{height}, {format_label(output_format)}{quality_text}, {format_file_size(size_bytes)}"


def build_quality_value_text(quality: float) -> str:
    return f"{quality:.2f}"


def build_decode_error_text(cause: str) -> str:
    return f"Could not read image ({cause})"


def build_encode_error_text(cause: Optional[str] = None) -> str:
    if not cause:
        return ENCODE_FAILED_TEXT
    return f"{ENCODE_FAILED_TEXT} ({cause})"


def strip_extension(file_name: str) -> str:
    """Drop the last extension from the base name (``a.tar.gz`` -> ``a.tar``)."""
    base_name = PurePath(file_name.replace("\\", "/")).name
    return _EXTENSION_RE.sub("", base_name)


def build_download_name(file_name: str, settings: OutputSettings) -> str:
    """Build ``<base>-<longEdge>px.<ext>`` from the settings the output was made with."""
    return f"{strip_extension(file_name)}-{settings.long_edge}px.{settings.extension}"


def build_action_hint_text(*, is_decoding: bool, is_generating: bool, has_source: bool, can_download: bool) -> str:
    """Build footer action hint text."""
    if is_decoding:
        return "Reading image…"
    if is_generating:
        return "Generating output…"
    if not has_source:
        return "Choose an image to start."
    if not can_download:
        return "Change a setting or choose another image to retry."
    return "Ready. Save the resized copy or change the settings."
