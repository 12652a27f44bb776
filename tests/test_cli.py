from __future__ import annotations

import json
from pathlib import Path

import pytest
from PIL import Image

from long_edge_resizer import cli
from long_edge_resizer.output_settings import OutputSettings


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("LONG_EDGE", "FORMAT", "QUALITY", "WEBP_METHOD", "LOG_DIR", "LOG_LEVEL"):
        monkeypatch.delenv(f"LONG_EDGE_RESIZER_{name}", raising=False)
    return monkeypatch


def test_parser_defaults_follow_config() -> None:
    config = cli.load_app_config({"LONG_EDGE_RESIZER_LONG_EDGE": "640"})
    args = cli._build_arg_parser(config).parse_args(["photo.jpg"])

    assert args.long_edge == 640
    assert args.format == "jpeg"
    assert args.dest == "."


def test_parser_rejects_unlisted_long_edge() -> None:
    parser = cli._build_arg_parser(cli.load_app_config({}))
    with pytest.raises(SystemExit):
        parser.parse_args(["photo.jpg", "-e", "1000"])


@pytest.mark.asyncio
async def test_run_once_saves_output(tmp_path: Path, sample_images) -> None:
    source_path = tmp_path / "photo.jpg"
    source_path.write_bytes(sample_images["jpeg"])

    outcome = await cli.run_once(
        source_path,
        tmp_path / "out",
        OutputSettings(long_edge=800, output_format="png"),
        webp_method=4,
    )

    assert outcome.success
    assert outcome.saved_path == str(tmp_path / "out" / "photo-800px.png")
    assert outcome.output_meta.startswith("800×600, PNG, ")
    with Image.open(outcome.saved_path) as saved:
        assert saved.size == (800, 600)


def test_main_success_without_log_file(tmp_path: Path, sample_images, clean_env, quiet_logger) -> None:
    source_path = tmp_path / "photo.jpg"
    source_path.write_bytes(sample_images["portrait"])

    code = cli.main([str(source_path), "-d", str(tmp_path / "out"), "-e", "640", "-f", "jpg", "--no-log-file"])

    assert code == 0
    saved = tmp_path / "out" / "photo-640px.jpg"
    with Image.open(saved) as image:
        assert image.size == (360, 640)


def test_main_writes_run_summary(tmp_path: Path, sample_images, clean_env, quiet_logger) -> None:
    log_dir = tmp_path / "logs"
    clean_env.setenv("LONG_EDGE_RESIZER_LOG_DIR", str(log_dir))
    source_path = tmp_path / "small.jpg"
    source_path.write_bytes(sample_images["small"])

    code = cli.main([str(source_path), "-d", str(tmp_path)])

    assert code == 0
    summaries = list(log_dir.glob("run_*_summary.json"))
    assert len(summaries) == 1
    summary = json.loads(summaries[0].read_text(encoding="utf-8"))
    assert summary["success"] is True
    assert summary["settings"]["long_edge"] == 1280
    assert summary["saved_path"] == str(tmp_path / "small-1280px.jpg")


def test_main_reports_decode_failure(tmp_path: Path, sample_images, clean_env, quiet_logger) -> None:
    source_path = tmp_path / "fake.png"
    source_path.write_bytes(sample_images["text"])

    code = cli.main([str(source_path), "-d", str(tmp_path / "out"), "--no-log-file"])

    assert code == 1
    assert not (tmp_path / "out").exists()


def test_main_missing_file(tmp_path: Path, clean_env, quiet_logger) -> None:
    code = cli.main([str(tmp_path / "missing.jpg"), "--no-log-file"])
    assert code == 1


def test_main_missing_file_still_writes_summary(tmp_path: Path, clean_env, quiet_logger) -> None:
    log_dir = tmp_path / "logs"
    clean_env.setenv("LONG_EDGE_RESIZER_LOG_DIR", str(log_dir))

    code = cli.main([str(tmp_path / "missing.jpg"), "-d", str(tmp_path / "out")])

    assert code == 1
    summaries = list(log_dir.glob("run_*_summary.json"))
    assert len(summaries) == 1
    summary = json.loads(summaries[0].read_text(encoding="utf-8"))
    assert summary["success"] is False
    assert summary["saved_path"] is None
    assert "missing.jpg" in summary["status_text"]
    assert summary["settings"]["output_format"] == "jpeg"


def test_main_invalid_quality_writes_summary(tmp_path: Path, clean_env, quiet_logger) -> None:
    log_dir = tmp_path / "logs"
    clean_env.setenv("LONG_EDGE_RESIZER_LOG_DIR", str(log_dir))

    code = cli.main([str(tmp_path / "photo.jpg"), "-q", "nan"])

    assert code == 2
    summary = json.loads(next(log_dir.glob("run_*_summary.json")).read_text(encoding="utf-8"))
    assert summary["success"] is False
    assert summary["settings"] is None


def test_main_rejects_invalid_quality(tmp_path: Path, clean_env, quiet_logger) -> None:
    code = cli.main([str(tmp_path / "photo.jpg"), "-q", "nan", "--no-log-file"])
    assert code == 2
