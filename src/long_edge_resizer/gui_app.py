"""Single-image long-edge resizer GUI.

The user picks one image, a target long edge and an output format/quality,
and saves the re-encoded copy. All image work happens in
``RegenerationController`` on an asyncio loop running in a worker thread; the
Tk thread only renders snapshots it receives through a queue.

Usage:
    python -m long_edge_resizer.gui_app
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import queue
import threading
from functools import partial
from pathlib import Path
from tkinter import filedialog, messagebox
from typing import Any, Coroutine, Dict, Optional

import customtkinter
from loguru import logger
from PIL import Image, ImageOps, UnidentifiedImageError

from long_edge_resizer.config import AppConfig, load_app_config
from long_edge_resizer.image_decoder import read_image_file
from long_edge_resizer.image_encoder import render, supported_output_formats
from long_edge_resizer.regeneration_controller import (
    ControllerSnapshot,
    DownloadPayload,
    RegenerationController,
)
from long_edge_resizer.runtime_logging import create_run_log_artifacts, setup_logging
from long_edge_resizer.save_helpers import write_bytes_atomic
from long_edge_resizer.size_fit import TARGET_LONG_EDGES
from long_edge_resizer.text_presenter import (
    EMPTY_META_TEXT,
    NO_FILE_TEXT,
    build_long_edge_button_text,
    build_quality_value_text,
    format_from_label,
    format_label,
)

PREVIEW_MAX = 420
POLL_INTERVAL_MS = 40

UI_COLORS = {
    "primary": "#0078d4",
    "selected_border": "#2f7cff",
    "text_secondary": "#6b7280",
    "danger": "#d32f2f",
}


class AsyncLoopThread:
    """Runs an asyncio event loop in a daemon thread."""

    def __init__(self, name: str = "long-edge-resizer-loop") -> None:
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, daemon=True, name=name)

    def start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def submit(self, coro: Coroutine[Any, Any, Any]) -> concurrent.futures.Future:
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        future.add_done_callback(_log_future_error)
        return future

    def stop(self, timeout: float = 2.0) -> None:
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=timeout)


def _log_future_error(future: concurrent.futures.Future) -> None:
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.opt(exception=error).error(f"バックグラウンド処理でエラー: {error}")


class ResizeApp(customtkinter.CTk):
    def __init__(self, config: Optional[AppConfig] = None) -> None:
        super().__init__()
        self.config_values = config or load_app_config()
        self.title("Long-edge Resizer")
        self.geometry("1100x760")
        self.minsize(820, 560)

        self._snapshots: "queue.Queue[ControllerSnapshot]" = queue.Queue()
        self._runner = AsyncLoopThread()
        self._runner.start()
        self.controller = RegenerationController(
            default_settings=self.config_values.output_settings(),
            encoder=partial(render, webp_method=self.config_values.webp_method),
        )
        self.controller.subscribe(self._snapshots.put)

        self._image_cache: Dict[str, customtkinter.CTkImage] = {}
        self._quality_dragging = False

        self._build_topbar()
        self._build_settings_row()
        self._build_preview_panel()
        self._build_statusbar()

        self._render(self.controller.snapshot())
        self.protocol("WM_DELETE_WINDOW", self._on_close)
        self._poll_after_id = self.after(POLL_INTERVAL_MS, self._poll_snapshots)

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------
    def _build_topbar(self) -> None:
        top = customtkinter.CTkFrame(self, fg_color="transparent")
        top.pack(side="top", fill="x", padx=10, pady=(10, 4))

        customtkinter.CTkButton(top, text="📂 Choose image", width=140, command=self._select_file).pack(side="left")
        self.file_name_var = customtkinter.StringVar(value=NO_FILE_TEXT)
        customtkinter.CTkLabel(top, textvariable=self.file_name_var, anchor="w").pack(side="left", padx=10)

        self.reset_button = customtkinter.CTkButton(top, text="Reset", width=90, command=self._reset)
        self.reset_button.pack(side="right")
        self.save_button = customtkinter.CTkButton(
            top,
            text="💾 Save",
            width=110,
            fg_color=UI_COLORS["primary"],
            command=self._save_output,
        )
        self.save_button.pack(side="right", padx=(0, 8))

    def _build_settings_row(self) -> None:
        row = customtkinter.CTkFrame(self, corner_radius=12)
        row.pack(side="top", fill="x", padx=10, pady=4)

        sizes = customtkinter.CTkFrame(row, fg_color="transparent")
        sizes.pack(side="top", fill="x", padx=8, pady=(8, 4))
        customtkinter.CTkLabel(sizes, text="Long edge").pack(side="left", padx=(0, 8))
        self.size_buttons: Dict[int, customtkinter.CTkButton] = {}
        for long_edge in TARGET_LONG_EDGES:
            button = customtkinter.CTkButton(
                sizes,
                text=build_long_edge_button_text(long_edge),
                width=72,
                border_width=0,
                border_color=UI_COLORS["selected_border"],
                command=partial(self._change_setting, "long_edge", long_edge),
            )
            button.pack(side="left", padx=2)
            self.size_buttons[long_edge] = button

        encode = customtkinter.CTkFrame(row, fg_color="transparent")
        encode.pack(side="top", fill="x", padx=8, pady=(4, 8))
        customtkinter.CTkLabel(encode, text="Format").pack(side="left", padx=(0, 8))
        self.format_var = customtkinter.StringVar(value=format_label(self.controller.settings.output_format))
        self.format_menu = customtkinter.CTkOptionMenu(
            encode,
            variable=self.format_var,
            values=[format_label(fmt) for fmt in supported_output_formats()],
            width=110,
            command=self._on_format_selected,
        )
        self.format_menu.pack(side="left")

        self.quality_group = customtkinter.CTkFrame(encode, fg_color="transparent")
        customtkinter.CTkLabel(self.quality_group, text="Quality").pack(side="left", padx=(16, 8))
        self.quality_slider = customtkinter.CTkSlider(
            self.quality_group,
            from_=0,
            to=1,
            number_of_steps=100,
            width=220,
            command=self._on_quality_moved,
        )
        self.quality_slider.set(self.controller.settings.quality)
        self.quality_slider.pack(side="left")
        self.quality_slider.bind("<ButtonPress-1>", self._on_quality_pressed)
        self.quality_slider.bind("<ButtonRelease-1>", self._on_quality_released)
        self.quality_value_var = customtkinter.StringVar(
            value=build_quality_value_text(self.controller.settings.quality)
        )
        customtkinter.CTkLabel(self.quality_group, textvariable=self.quality_value_var, width=40).pack(
            side="left", padx=6
        )
        self.quality_group.pack(side="left")

    def _build_preview_panel(self) -> None:
        pane = customtkinter.CTkFrame(self, fg_color="transparent")
        pane.pack(side="top", fill="both", expand=True, padx=10, pady=4)
        pane.grid_rowconfigure(1, weight=1)
        pane.grid_columnconfigure(0, weight=1)
        pane.grid_columnconfigure(1, weight=1)

        self.original_view, self.original_meta_var = self._build_preview_card(pane, "Original", column=0)
        self.output_view, self.output_meta_var = self._build_preview_card(pane, "Output", column=1)

    def _build_preview_card(self, parent: Any, title: str, *, column: int) -> tuple:
        card = customtkinter.CTkFrame(parent, corner_radius=12)
        card.grid(row=0, column=column, rowspan=2, sticky="nswe", padx=3)
        card.grid_rowconfigure(1, weight=1)
        card.grid_columnconfigure(0, weight=1)
        customtkinter.CTkLabel(card, text=title, text_color=UI_COLORS["text_secondary"]).grid(
            row=0, column=0, sticky="w", padx=10, pady=(8, 0)
        )
        view = customtkinter.CTkLabel(card, text="")
        view.grid(row=1, column=0, sticky="nsew", padx=5, pady=5)
        meta_var = customtkinter.StringVar(value=EMPTY_META_TEXT)
        customtkinter.CTkLabel(card, textvariable=meta_var, justify="left").grid(
            row=2, column=0, sticky="ew", padx=10, pady=(0, 8)
        )
        return view, meta_var

    def _build_statusbar(self) -> None:
        self.status_var = customtkinter.StringVar(value="")
        self.status_label = customtkinter.CTkLabel(self, textvariable=self.status_var, anchor="w")
        self.status_label.pack(side="bottom", fill="x", padx=12, pady=(0, 8))
        self._status_text_color = self.status_label.cget("text_color")

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    def _select_file(self) -> None:
        path = filedialog.askopenfilename(title="Choose an image")
        if not path:
            return
        try:
            data, file_name = read_image_file(path)
        except OSError as e:
            logger.error(f"ファイルを読み込めません: {path}: {e}")
            messagebox.showerror("Error", f"Could not open file:\n{e}")
            return
        self._runner.submit(self.controller.select_file(data, file_name))

    def _change_setting(self, field: str, value: Any) -> None:
        self._runner.submit(self.controller.change_setting(field, value))

    def _on_format_selected(self, label: str) -> None:
        self._change_setting("output_format", format_from_label(label))

    def _on_quality_moved(self, value: float) -> None:
        self.quality_value_var.set(build_quality_value_text(value))

    def _on_quality_pressed(self, _event: Any) -> None:
        self._quality_dragging = True

    def _on_quality_released(self, _event: Any) -> None:
        self._quality_dragging = False
        self._change_setting("quality", round(float(self.quality_slider.get()), 2))

    def _reset(self) -> None:
        self._run_sync(self.controller.reset)
        self._image_cache.clear()

    def _save_output(self) -> None:
        payload = self._run_sync(self.controller.download)
        if payload is None:
            return
        self._write_payload(payload)

    def _write_payload(self, payload: DownloadPayload) -> None:
        suffix = Path(payload.file_name).suffix
        target = filedialog.asksaveasfilename(
            title="Save resized image",
            initialfile=payload.file_name,
            defaultextension=suffix,
            filetypes=[(payload.mime_type, f"*{suffix}")],
        )
        if not target:
            return
        try:
            saved = write_bytes_atomic(target, payload.data)
        except OSError as e:
            logger.error(f"保存に失敗: {target}: {e}")
            messagebox.showerror("Error", f"Could not save file:\n{e}")
            return
        logger.info(f"保存しました: {saved}")
        self.status_var.set(f"Saved {saved.name}")

    def _run_sync(self, func: Any) -> Any:
        """Run a plain controller call on the loop thread and wait for it."""

        async def call() -> Any:
            return func()

        return self._runner.submit(call()).result(timeout=10)

    def _on_close(self) -> None:
        if self._poll_after_id is not None:
            self.after_cancel(self._poll_after_id)
            self._poll_after_id = None
        try:
            self._run_sync(self.controller.close)
        except concurrent.futures.TimeoutError:
            logger.warning("終了処理がタイムアウトしました")
        self._runner.stop()
        self.destroy()

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------
    def _poll_snapshots(self) -> None:
        latest: Optional[ControllerSnapshot] = None
        while True:
            try:
                latest = self._snapshots.get_nowait()
            except queue.Empty:
                break
        if latest is not None:
            self._render(latest)
        self._poll_after_id = self.after(POLL_INTERVAL_MS, self._poll_snapshots)

    def _render(self, snapshot: ControllerSnapshot) -> None:
        settings = snapshot.settings
        self.file_name_var.set(snapshot.file_name or NO_FILE_TEXT)

        for long_edge, button in self.size_buttons.items():
            button.configure(border_width=2 if long_edge == settings.long_edge else 0)

        self.format_var.set(format_label(settings.output_format))
        if snapshot.quality_visible:
            self.quality_group.pack(side="left")
        else:
            self.quality_group.pack_forget()
        if not self._quality_dragging:
            self.quality_slider.set(settings.quality)
            self.quality_value_var.set(build_quality_value_text(settings.quality))

        self.original_meta_var.set(snapshot.source_meta_text)
        self.output_meta_var.set(snapshot.output_meta_text)
        self._show_preview(self.original_view, snapshot.preview_handle if snapshot.source else None)
        self._show_preview(self.output_view, snapshot.output_handle)

        self.status_var.set(snapshot.status_text or snapshot.action_hint_text)
        self.status_label.configure(
            text_color=UI_COLORS["danger"] if snapshot.status_text else self._status_text_color
        )
        self.save_button.configure(state="normal" if snapshot.can_download else "disabled")
        self.reset_button.configure(state="normal" if snapshot.can_reset else "disabled")

    def _show_preview(self, view: customtkinter.CTkLabel, handle: Optional[Path]) -> None:
        if handle is None:
            view.configure(image=None)
            return
        image = self._load_preview(Path(handle))
        if image is not None:
            view.configure(image=image)

    def _load_preview(self, path: Path) -> Optional[customtkinter.CTkImage]:
        key = str(path)
        cached = self._image_cache.get(key)
        if cached is not None:
            return cached
        try:
            with Image.open(path) as opened:
                thumb = ImageOps.exif_transpose(opened)
                thumb.thumbnail((PREVIEW_MAX, PREVIEW_MAX), Image.Resampling.LANCZOS)
        except (OSError, UnidentifiedImageError) as e:
            # 差し替え済みで削除されたハンドル。次のスナップショットで描き直す
            logger.debug(f"プレビューを読み込めません: {path}: {e}")
            return None
        image = customtkinter.CTkImage(light_image=thumb, dark_image=thumb, size=thumb.size)
        # 直近の2枚（元画像と出力）だけ保持する
        if len(self._image_cache) >= 2:
            self._image_cache.pop(next(iter(self._image_cache)))
        self._image_cache[key] = image
        return image


def main() -> None:
    """Package entry point (GUI script)."""
    config = load_app_config()
    artifacts = create_run_log_artifacts(config.log_dir)
    setup_logging(console_level=config.console_level, log_path=artifacts.run_log_path)
    customtkinter.set_appearance_mode("system")
    ResizeApp(config).mainloop()


if __name__ == "__main__":
    main()
