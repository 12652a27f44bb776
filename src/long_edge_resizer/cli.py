"""コマンドラインから画像1枚を長辺指定でリサイズする。

Usage:
    long-edge-resizer-cli photo.jpg -e 1280 -f jpeg -q 0.8 -d out/
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import asdict, dataclass
from functools import partial
from pathlib import Path
from typing import Optional, Sequence

from loguru import logger

from long_edge_resizer.config import AppConfig, load_app_config
from long_edge_resizer.image_decoder import read_image_file
from long_edge_resizer.image_encoder import render, supported_output_formats
from long_edge_resizer.output_settings import OUTPUT_FORMATS, OutputSettings, build_output_settings
from long_edge_resizer.regeneration_controller import RegenerationController
from long_edge_resizer.runtime_logging import (
    RunLogArtifacts,
    create_run_log_artifacts,
    setup_logging,
    write_run_summary,
)
from long_edge_resizer.save_helpers import save_download
from long_edge_resizer.size_fit import TARGET_LONG_EDGES
from long_edge_resizer.text_presenter import EMPTY_META_TEXT


@dataclass(frozen=True)
class RunOutcome:
    success: bool
    source_path: str
    source_meta: str
    output_meta: str
    status_text: str
    saved_path: Optional[str] = None


def _build_arg_parser(config: AppConfig) -> argparse.ArgumentParser:
    """Create argument parser for CLI use."""
    p = argparse.ArgumentParser(
        prog="long-edge-resizer-cli",
        description="画像1枚を長辺指定でリサイズし、PNG/JPEG/WebPで書き出す",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    p.add_argument("source", help="入力画像ファイル")
    p.add_argument("-d", "--dest", default=".", help="出力フォルダー")
    p.add_argument(
        "-e",
        "--long-edge",
        type=int,
        choices=TARGET_LONG_EDGES,
        default=config.default_long_edge,
        help="リサイズ後の長辺(px)。元画像より大きい場合は拡大しない",
    )
    p.add_argument(
        "-f",
        "--format",
        choices=[*OUTPUT_FORMATS, "jpg"],
        default=config.default_format,
        help="出力形式",
    )
    p.add_argument(
        "-q",
        "--quality",
        type=float,
        default=config.default_quality,
        help="JPEG/WebP 品質 (0.0-1.0)。PNGでは無視",
    )
    p.add_argument("--no-log-file", action="store_true", help="実行ログ/summaryをファイルに残さない")
    p.add_argument("--verbose", "-v", action="count", default=0, help="詳細ログを増やす (重ね掛け可)")
    return p


async def run_once(
    source_path: Path,
    dest_dir: Path,
    settings: OutputSettings,
    *,
    webp_method: int,
) -> RunOutcome:
    """読み込み→再生成→保存を1回だけ行う。"""
    controller = RegenerationController(
        default_settings=settings,
        encoder=partial(render, webp_method=webp_method),
    )
    try:
        data, file_name = read_image_file(source_path)
        await controller.select_file(data, file_name)
        snapshot = controller.snapshot()
        payload = controller.download()
        if payload is None:
            return RunOutcome(
                success=False,
                source_path=str(source_path),
                source_meta=snapshot.source_meta_text,
                output_meta=snapshot.output_meta_text,
                status_text=snapshot.status_text,
            )
        saved = save_download(payload, dest_dir)
        return RunOutcome(
            success=True,
            source_path=str(source_path),
            source_meta=snapshot.source_meta_text,
            output_meta=snapshot.output_meta_text,
            status_text=snapshot.status_text,
            saved_path=str(saved),
        )
    finally:
        controller.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point. Returns the process exit status."""
    config = load_app_config()
    args = _build_arg_parser(config).parse_args(argv)

    console_level = config.console_level
    if args.verbose == 1:
        console_level = "DEBUG"
    elif args.verbose >= 2:
        console_level = "TRACE"

    artifacts = None
    if args.no_log_file:
        setup_logging(console_level=console_level)
    else:
        artifacts = create_run_log_artifacts(config.log_dir)
        setup_logging(console_level=console_level, log_path=artifacts.run_log_path)

    source_path = Path(args.source)
    try:
        settings = build_output_settings(args.long_edge, args.format, args.quality)
    except ValueError as e:
        logger.error(f"設定が不正です: {e}")
        _write_summary(artifacts, None, _failed_outcome(source_path, f"invalid setting: {e}"))
        return 2

    if settings.output_format not in supported_output_formats():
        logger.warning(f"この環境の Pillow は {settings.output_format} の書き出しに対応していない可能性があります")

    try:
        outcome = asyncio.run(
            run_once(source_path, Path(args.dest), settings, webp_method=config.webp_method)
        )
    except OSError as e:
        outcome = _failed_outcome(source_path, str(e))

    _write_summary(artifacts, settings, outcome)

    if not outcome.success:
        logger.error(f"❌ {source_path.name}: {outcome.status_text}")
        return 1

    logger.success(f"✔ {source_path.name} ({outcome.source_meta}) → {outcome.saved_path} ({outcome.output_meta})")
    return 0


def _failed_outcome(source_path: Path, status_text: str) -> RunOutcome:
    return RunOutcome(
        success=False,
        source_path=str(source_path),
        source_meta=EMPTY_META_TEXT,
        output_meta=EMPTY_META_TEXT,
        status_text=status_text,
    )


def _write_summary(
    artifacts: Optional[RunLogArtifacts],
    settings: Optional[OutputSettings],
    outcome: RunOutcome,
) -> None:
    if artifacts is None:
        return
    write_run_summary(
        artifacts.summary_path,
        {
            "run_id": artifacts.run_id,
            "settings": asdict(settings) if settings is not None else None,
            **asdict(outcome),
        },
    )


if __name__ == "__main__":
    sys.exit(main())
