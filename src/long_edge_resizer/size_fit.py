"""長辺指定のリサイズ寸法計算。"""

from __future__ import annotations

import math
from dataclasses import dataclass

TARGET_LONG_EDGES: tuple[int, ...] = (4096, 3072, 2048, 1600, 1280, 1024, 800, 640)
DEFAULT_LONG_EDGE = 1280


@dataclass(frozen=True)
class FitResult:
    width: int
    height: int
    scale: float


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def fit(natural_width: int, natural_height: int, long_edge: int) -> FitResult:
    """長辺が ``long_edge`` に収まる出力サイズを返す。

    元画像の長辺が既に ``long_edge`` 以下なら拡大せずにそのまま返す。
    """
    max_edge = max(natural_width, natural_height)
    if max_edge <= long_edge:
        return FitResult(width=natural_width, height=natural_height, scale=1.0)

    scale = long_edge / max_edge
    return FitResult(
        width=_round_half_up(natural_width * scale),
        height=_round_half_up(natural_height * scale),
        scale=scale,
    )
