from __future__ import annotations

import pytest

from long_edge_resizer.output_settings import (
    OutputSettings,
    build_output_settings,
    normalize_output_format,
    normalize_quality,
    supports_quality,
)


def test_defaults_are_fully_defined() -> None:
    settings = OutputSettings()
    assert settings.long_edge == 1280
    assert settings.output_format == "jpeg"
    assert 0.0 <= settings.quality <= 1.0
    assert settings.extension == "jpg"


def test_replace_returns_normalized_copy() -> None:
    settings = OutputSettings()

    changed = settings.replace("long_edge", "800")
    assert changed.long_edge == 800
    assert settings.long_edge == 1280

    assert settings.replace("output_format", "image/webp").output_format == "webp"
    assert settings.replace("output_format", "JPG").output_format == "jpeg"
    assert settings.replace("quality", 1.7).quality == 1.0
    assert settings.replace("quality", -0.2).quality == 0.0


@pytest.mark.parametrize(
    "field,value",
    [
        ("long_edge", 1000),
        ("long_edge", "big"),
        ("output_format", "gif"),
        ("quality", "high"),
        ("quality", float("nan")),
        ("width", 10),
    ],
)
def test_replace_rejects_invalid_values(field: str, value: object) -> None:
    with pytest.raises(ValueError):
        OutputSettings().replace(field, value)


def test_effective_quality_is_none_for_png() -> None:
    assert OutputSettings(output_format="png", quality=0.3).effective_quality is None
    assert OutputSettings(output_format="webp", quality=0.3).effective_quality == 0.3
    assert supports_quality("jpeg")
    assert not supports_quality("png")


def test_build_output_settings_and_normalizers() -> None:
    settings = build_output_settings(640, "png", "0.5")
    assert settings == OutputSettings(long_edge=640, output_format="png", quality=0.5)
    assert normalize_output_format(" image/PNG ") == "png"
    assert normalize_quality(0.123) == pytest.approx(0.123)
