"""Revocable handles for preview/output bytes.

A handle is what a presentation layer needs to show or hand over a blob
(a temp file path for the GUI). Each slot holds at most one live handle;
installing a new one revokes the previous one, and ``release_all`` revokes
everything.
"""

from __future__ import annotations

import os
import shutil
import tempfile
import time
import uuid
from pathlib import Path
from typing import Any, Dict, Hashable, Optional, Protocol

from loguru import logger

PREVIEW_SLOT = "preview"
OUTPUT_SLOT = "output"

_MIME_SUFFIXES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
    "image/gif": ".gif",
    "image/bmp": ".bmp",
    "image/tiff": ".tiff",
}


class HandleFactory(Protocol):
    def create(self, data: bytes, mime_type: str) -> Any: ...

    def revoke(self, handle: Any) -> None: ...


class TempFileHandleFactory:
    """Handles are temp files holding the blob; revoking deletes the file."""

    def __init__(self, prefix: str = "long_edge_resizer_") -> None:
        self._prefix = prefix
        self._directory: Optional[Path] = None

    @property
    def directory(self) -> Optional[Path]:
        return self._directory

    def create(self, data: bytes, mime_type: str) -> Path:
        if self._directory is None or not self._directory.exists():
            self._directory = Path(tempfile.mkdtemp(prefix=self._prefix))
        suffix = _MIME_SUFFIXES.get(mime_type, ".bin")
        token = f"{os.getpid()}_{time.time_ns()}_{uuid.uuid4().hex[:10]}"
        path = self._directory / f"{token}{suffix}"
        path.write_bytes(data)
        return path

    def revoke(self, handle: Path) -> None:
        try:
            Path(handle).unlink(missing_ok=True)
        except OSError:
            logger.warning(f"一時ファイルの削除に失敗: {handle}")

    def cleanup(self) -> None:
        """Remove the temp directory and anything left in it."""
        if self._directory is None:
            return
        shutil.rmtree(self._directory, ignore_errors=True)
        self._directory = None


def guess_mime_type(file_name: str) -> str:
    suffix = Path(file_name).suffix.lower()
    if suffix in (".jpg", ".jpeg", ".jpe"):
        return "image/jpeg"
    if suffix == ".tif":
        suffix = ".tiff"
    for mime_type, known_suffix in _MIME_SUFFIXES.items():
        if known_suffix == suffix:
            return mime_type
    return "application/octet-stream"


class ResourceLifecycleManager:
    """Tracks one revocable handle per slot."""

    def __init__(self, factory: Optional[HandleFactory] = None) -> None:
        self.factory: HandleFactory = factory if factory is not None else TempFileHandleFactory()
        self._handles: Dict[Hashable, Any] = {}

    @property
    def live_handles(self) -> int:
        return len(self._handles)

    def handle_for(self, slot: Hashable) -> Optional[Any]:
        return self._handles.get(slot)

    def install(self, slot: Hashable, data: bytes, mime_type: str) -> Any:
        """Create a handle for ``data`` and track it in ``slot``."""
        handle = self.factory.create(data, mime_type)
        self.track(slot, handle)
        return handle

    def track(self, slot: Hashable, handle: Any) -> None:
        """Install ``handle`` in ``slot``, then revoke the handle it replaces."""
        previous = self._handles.get(slot)
        self._handles[slot] = handle
        if previous is not None and previous is not handle:
            self._revoke(slot, previous)

    def release_previous(self, slot: Hashable) -> bool:
        """Revoke whatever ``slot`` holds. Returns False when it was empty."""
        handle = self._handles.pop(slot, None)
        if handle is None:
            return False
        self._revoke(slot, handle)
        return True

    def release_all(self) -> int:
        """Revoke every tracked handle. Safe to call when nothing is tracked."""
        released = 0
        for slot in list(self._handles):
            if self.release_previous(slot):
                released += 1
        return released

    def _revoke(self, slot: Hashable, handle: Any) -> None:
        logger.trace(f"handle revoked: slot={slot} handle={handle}")
        self.factory.revoke(handle)
