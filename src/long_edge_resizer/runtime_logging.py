"""実行ログの出力先と保持。

ログは loguru に集約する。実行ごとに ``run_<YYYYmmdd_HHMMSS>.log`` と
``run_<id>_summary.json`` を作り、古い実行は実行単位でまとめて削除する。
"""

from __future__ import annotations

import json
import os
import re
import sys
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from loguru import logger

from long_edge_resizer.save_helpers import write_bytes_atomic

APP_NAME = "LongEdgeResizer"
LOG_DIR_ENV = "LONG_EDGE_RESIZER_LOG_DIR"
DEFAULT_RETENTION_DAYS = 30
DEFAULT_MAX_RUNS = 50
RUN_ID_FORMAT = "%Y%m%d_%H%M%S"

_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{function}</cyan>: <white>{message}</white>"
)
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"
_RUN_FILE_RE = re.compile(r"^run_(?P<run_id>\d{8}_\d{6})(?:\.log|_summary\.json)$")


@dataclass(frozen=True)
class RunLogArtifacts:
    run_id: str
    log_dir: Path

    @property
    def run_log_path(self) -> Path:
        return self.log_dir / f"run_{self.run_id}.log"

    @property
    def summary_path(self) -> Path:
        return self.log_dir / f"run_{self.run_id}_summary.json"


def setup_logging(
    console_level: str = "INFO",
    log_path: Optional[Union[str, Path]] = None,
    file_level: str = "DEBUG",
) -> None:
    """ロギングの設定を行います"""
    logger.remove()
    logger.add(sys.stderr, format=_CONSOLE_FORMAT, colorize=True, level=console_level)
    if log_path is not None:
        logger.add(
            str(log_path),
            format=_FILE_FORMAT,
            rotation="1 day",
            level=file_level,
            encoding="utf-8",
        )


def get_default_log_dir(
    app_name: str = APP_NAME,
    *,
    os_name: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Windows は ``%LOCALAPPDATA%``、それ以外は XDG の state ディレクトリ。"""
    env = os.environ if env is None else env
    home = home or Path.home()
    dir_name = app_name.replace(" ", "")

    if (os_name or os.name) == "nt":
        base = env.get("LOCALAPPDATA") or env.get("APPDATA")
        return Path(base) / dir_name / "logs" if base else home / f".{dir_name.lower()}" / "logs"

    state_home = env.get("XDG_STATE_HOME")
    base = Path(state_home) if state_home else home / ".local" / "state"
    return base / dir_name.lower() / "logs"


def resolve_log_dir(
    configured: Optional[Path] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
) -> Path:
    """明示指定 > 環境変数 > OS標準 の順でログディレクトリを決める。"""
    if configured is not None:
        return Path(configured)
    env = os.environ if env is None else env
    if env.get(LOG_DIR_ENV):
        return Path(env[LOG_DIR_ENV]).expanduser()
    return get_default_log_dir(env=env)


def create_run_log_artifacts(
    log_dir: Optional[Path] = None,
    *,
    retention_days: int = DEFAULT_RETENTION_DAYS,
    max_runs: int = DEFAULT_MAX_RUNS,
    now: Optional[datetime] = None,
) -> RunLogArtifacts:
    """ログディレクトリを用意し、古い実行を掃除してから今回の実行IDを払い出す。"""
    now = now or datetime.now()
    directory = resolve_log_dir(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    prune_run_files(directory, retention_days=retention_days, max_runs=max_runs, now=now)
    return RunLogArtifacts(run_id=now.strftime(RUN_ID_FORMAT), log_dir=directory)


def collect_runs(log_dir: Path) -> Dict[str, List[Path]]:
    """実行IDごとのファイル一覧。IDは古い順に並ぶ。"""
    runs: Dict[str, List[Path]] = defaultdict(list)
    try:
        entries = sorted(log_dir.iterdir())
    except OSError:
        return {}
    for path in entries:
        match = _RUN_FILE_RE.match(path.name)
        if match and path.is_file() and _parse_run_id(match["run_id"]) is not None:
            runs[match["run_id"]].append(path)
    return dict(sorted(runs.items()))


def prune_run_files(
    log_dir: Path,
    *,
    retention_days: int = DEFAULT_RETENTION_DAYS,
    max_runs: int = DEFAULT_MAX_RUNS,
    now: Optional[datetime] = None,
) -> List[Path]:
    """保持日数を過ぎた実行と、新しい順で ``max_runs`` 件を超えた実行を削除する。

    ログと summary は同じ実行IDでまとめて扱う。
    """
    cutoff = (now or datetime.now()) - timedelta(days=max(0, retention_days))
    runs = collect_runs(log_dir)
    run_ids = list(runs)

    expired = {run_id for run_id in run_ids if _parse_run_id(run_id) < cutoff}
    if max_runs > 0:
        expired.update(run_ids[:-max_runs])

    removed: List[Path] = []
    for run_id in sorted(expired):
        for path in runs[run_id]:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.debug(f"古い実行ログを削除できません: {path}: {e}")
                continue
            removed.append(path)
    if removed:
        logger.debug(f"古い実行ログを削除: {len(removed)}件 ({log_dir})")
    return removed


def write_run_summary(summary_path: Path, payload: Dict[str, Any]) -> None:
    """summary JSON をアトミックに保存する。"""
    summary_path.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(payload, ensure_ascii=False, indent=2)
    write_bytes_atomic(summary_path, text.encode("utf-8"))


def _parse_run_id(run_id: str) -> Optional[datetime]:
    try:
        return datetime.strptime(run_id, RUN_ID_FORMAT)
    except ValueError:
        return None
