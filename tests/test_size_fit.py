from __future__ import annotations

import pytest

from long_edge_resizer.size_fit import DEFAULT_LONG_EDGE, TARGET_LONG_EDGES, fit


def test_fit_landscape_scenario() -> None:
    result = fit(4000, 3000, 1280)
    assert (result.width, result.height) == (1280, 960)
    assert result.scale == pytest.approx(0.32)


def test_fit_portrait_uses_height_as_long_edge() -> None:
    result = fit(3000, 4000, 800)
    assert (result.width, result.height) == (600, 800)


def test_fit_never_upscales() -> None:
    result = fit(100, 50, 4096)
    assert (result.width, result.height, result.scale) == (100, 50, 1.0)

    exact = fit(1280, 720, 1280)
    assert (exact.width, exact.height, exact.scale) == (1280, 720, 1.0)


def test_fit_rounds_half_up() -> None:
    # 1001 * 0.5 = 500.5
    result = fit(4096, 1001, 2048)
    assert (result.width, result.height) == (2048, 501)


@pytest.mark.parametrize(
    "natural",
    [(4000, 3000), (3001, 1999), (641, 5000), (10000, 37), (4097, 4097), (1700, 1699)],
)
@pytest.mark.parametrize("long_edge", TARGET_LONG_EDGES)
def test_fit_bounds_and_aspect(natural: tuple[int, int], long_edge: int) -> None:
    width, height = natural
    result = fit(width, height, long_edge)

    if max(width, height) <= long_edge:
        assert (result.width, result.height) == (width, height)
        return

    assert max(result.width, result.height) == long_edge
    # 縦横比は各辺±1px以内
    assert abs(result.width - width * result.scale) <= 1
    assert abs(result.height - height * result.scale) <= 1


def test_default_long_edge_is_offered() -> None:
    assert DEFAULT_LONG_EDGE == 1280
    assert DEFAULT_LONG_EDGE in TARGET_LONG_EDGES
    assert list(TARGET_LONG_EDGES) == sorted(TARGET_LONG_EDGES, reverse=True)
