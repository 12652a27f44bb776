"""再生成コントローラー。

読み込み済み画像・出力設定・生成結果の3つ組を所有し、デコーダとエンコーダを
呼び出して状態を更新する。表示側は ``subscribe`` で状態のスナップショットを
受け取る。

エンコードは非同期で、設定変更が完了より速く届くことがある。各再生成には
リクエストIDを振り、完了時点で最新のリクエストでなければ結果を捨てる
（スナップショット照合による適用）。
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional

from loguru import logger

from long_edge_resizer.errors import DecodeError, EncodeError
from long_edge_resizer.image_decoder import SourceImage, decode_image
from long_edge_resizer.image_encoder import EncodedImage, render
from long_edge_resizer.output_settings import OutputSettings, supports_quality
from long_edge_resizer.resource_lifecycle import (
    OUTPUT_SLOT,
    PREVIEW_SLOT,
    ResourceLifecycleManager,
    guess_mime_type,
)
from long_edge_resizer.size_fit import fit
from long_edge_resizer.text_presenter import (
    EMPTY_META_TEXT,
    build_action_hint_text,
    build_decode_error_text,
    build_download_name,
    build_encode_error_text,
    build_original_meta_text,
    build_output_meta_text,
)

Decoder = Callable[[bytes, str], Awaitable[SourceImage]]
Encoder = Callable[[SourceImage, int, int, str, Optional[float]], Awaitable[EncodedImage]]


class ControllerState(str, Enum):
    EMPTY = "empty"
    DECODING = "decoding"
    LOADED = "loaded"
    GENERATING = "generating"
    READY = "ready"


@dataclass(frozen=True)
class GeneratedOutput:
    width: int
    height: int
    data: bytes
    mime_type: str
    settings: OutputSettings
    source_file_name: str
    handle: Any = None

    @property
    def size_bytes(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class DownloadPayload:
    file_name: str
    data: bytes
    mime_type: str


@dataclass(frozen=True)
class ControllerSnapshot:
    state: ControllerState
    settings: OutputSettings
    file_name: Optional[str]
    source: Optional[SourceImage]
    output: Optional[GeneratedOutput]
    status_text: str
    preview_handle: Any = None

    @property
    def output_handle(self) -> Any:
        return self.output.handle if self.output is not None else None

    @property
    def can_download(self) -> bool:
        return self.source is not None and self.output is not None

    @property
    def can_reset(self) -> bool:
        return self.file_name is not None

    @property
    def quality_visible(self) -> bool:
        return supports_quality(self.settings.output_format)

    @property
    def source_meta_text(self) -> str:
        if self.source is None:
            return EMPTY_META_TEXT
        return build_original_meta_text(
            width=self.source.width,
            height=self.source.height,
            byte_size=self.source.byte_size,
        )

    @property
    def output_meta_text(self) -> str:
        if self.output is None:
            return EMPTY_META_TEXT
        return build_output_meta_text(
            width=self.output.width,
            height=self.output.height,
            output_format=self.output.settings.output_format,
            quality=self.output.settings.effective_quality,
            size_bytes=self.output.size_bytes,
        )

    @property
    def action_hint_text(self) -> str:
        return build_action_hint_text(
            is_decoding=self.state is ControllerState.DECODING,
            is_generating=self.state is ControllerState.GENERATING,
            has_source=self.source is not None,
            can_download=self.can_download,
        )


Listener = Callable[[ControllerSnapshot], None]


class RegenerationController:
    """画像1枚分の読み込み・再生成・リセットを管理する。"""

    def __init__(
        self,
        *,
        default_settings: Optional[OutputSettings] = None,
        resources: Optional[ResourceLifecycleManager] = None,
        decoder: Optional[Decoder] = None,
        encoder: Optional[Encoder] = None,
    ) -> None:
        self._default_settings = default_settings or OutputSettings()
        self._settings = self._default_settings
        self.resources = resources if resources is not None else ResourceLifecycleManager()
        self._decode = decoder or decode_image
        self._encode = encoder or render
        self._listeners: List[Listener] = []

        self._state = ControllerState.EMPTY
        self._source: Optional[SourceImage] = None
        self._output: Optional[GeneratedOutput] = None
        self._file_name: Optional[str] = None
        self._status_text = ""
        self._selection_id = 0
        self._request_id = 0

    # ------------------------------------------------------------------
    # 参照系
    # ------------------------------------------------------------------
    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def settings(self) -> OutputSettings:
        return self._settings

    @property
    def source(self) -> Optional[SourceImage]:
        return self._source

    @property
    def output(self) -> Optional[GeneratedOutput]:
        return self._output

    def snapshot(self) -> ControllerSnapshot:
        return ControllerSnapshot(
            state=self._state,
            settings=self._settings,
            file_name=self._file_name,
            source=self._source,
            output=self._output,
            status_text=self._status_text,
            preview_handle=self.resources.handle_for(PREVIEW_SLOT),
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """状態変化の通知先を登録し、解除用の関数を返す。"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # 操作
    # ------------------------------------------------------------------
    async def select_file(self, data: bytes, file_name: str) -> Optional[SourceImage]:
        """新しいファイルを読み込み、成功すればそのまま再生成する。"""
        self._selection_id += 1
        selection_id = self._selection_id

        self._discard_source()
        self._file_name = file_name
        self._status_text = ""
        self.resources.install(PREVIEW_SLOT, data, guess_mime_type(file_name))
        self._set_state(ControllerState.DECODING)

        try:
            source = await self._decode(data, file_name)
        except DecodeError as exc:
            if selection_id != self._selection_id:
                logger.debug(f"古い読み込みの失敗を破棄: {file_name}")
                return None
            logger.warning(f"画像を読み込めません: {file_name}: {exc.cause}")
            self.resources.release_previous(PREVIEW_SLOT)
            self._status_text = build_decode_error_text(exc.cause)
            self._set_state(ControllerState.EMPTY)
            return None

        if selection_id != self._selection_id:
            logger.debug(f"古い読み込み結果を破棄: {file_name}")
            return None

        self._source = source
        logger.info(f"読み込み完了: {file_name} ({source.width}x{source.height}, {source.byte_size} bytes)")
        self._set_state(ControllerState.LOADED)
        await self.regenerate()
        return source

    async def change_setting(self, field: str, value: Any) -> Optional[GeneratedOutput]:
        """設定を1項目変更し、画像があれば再生成する。デコードはやり直さない。

        Raises:
            ValueError: 未知の項目、または許可されていない値。
        """
        self._settings = self._settings.replace(field, value)
        logger.debug(f"設定変更: {field}={value!r}")
        if self._source is None:
            self._notify()
            return None
        return await self.regenerate()

    async def regenerate(self) -> Optional[GeneratedOutput]:
        """現在の画像と設定から出力を作り直す。

        完了時に自分が最新のリクエストでなければ、成功・失敗とも結果を捨てて
        ``None`` を返す。
        """
        source = self._source
        if source is None:
            return None

        settings = self._settings
        self._request_id += 1
        request_id = self._request_id
        target = fit(source.width, source.height, settings.long_edge)
        self._set_state(ControllerState.GENERATING)

        try:
            encoded = await self._encode(
                source,
                target.width,
                target.height,
                settings.output_format,
                settings.effective_quality,
            )
        except EncodeError as exc:
            self._apply_encode_failure(request_id, source, exc.cause)
            return None
        except Exception as exc:
            # 想定外の例外も GENERATING のまま残さず、生成失敗として扱う
            logger.opt(exception=exc).error(f"エンコード中に予期しないエラー: {source.file_name}")
            self._apply_encode_failure(request_id, source, f"{type(exc).__name__}: {exc}")
            return None

        if not self._is_latest(request_id, source):
            logger.debug(
                f"古い再生成の結果を破棄: request={request_id} "
                f"{target.width}x{target.height} {settings.output_format}"
            )
            return None

        handle = self.resources.install(OUTPUT_SLOT, encoded.data, encoded.mime_type)
        output = GeneratedOutput(
            width=target.width,
            height=target.height,
            data=encoded.data,
            mime_type=encoded.mime_type,
            settings=settings,
            source_file_name=source.file_name,
            handle=handle,
        )
        self._output = output
        self._status_text = ""
        logger.info(
            f"出力生成: {output.width}x{output.height} {settings.output_format} "
            f"q={settings.effective_quality} {output.size_bytes} bytes"
        )
        self._set_state(ControllerState.READY)
        return output

    def download(self) -> Optional[DownloadPayload]:
        """保存用のデータを返す。出力がなければ None。"""
        output = self._output
        if output is None or self._source is None:
            return None
        return DownloadPayload(
            file_name=build_download_name(output.source_file_name, output.settings),
            data=output.data,
            mime_type=output.mime_type,
        )

    def reset(self) -> None:
        """全リソースを解放し、設定を既定値に戻して初期状態にする。"""
        self._selection_id += 1
        self._request_id += 1
        released = self.resources.release_all()
        self._source = None
        self._output = None
        self._file_name = None
        self._settings = self._default_settings
        self._status_text = ""
        logger.debug(f"リセット: 解放したハンドル {released}件")
        self._set_state(ControllerState.EMPTY)

    def close(self) -> None:
        self.reset()
        cleanup = getattr(self.resources.factory, "cleanup", None)
        if callable(cleanup):
            cleanup()

    # ------------------------------------------------------------------
    # 内部処理
    # ------------------------------------------------------------------
    def _is_latest(self, request_id: int, source: SourceImage) -> bool:
        return request_id == self._request_id and self._source is source

    def _apply_encode_failure(self, request_id: int, source: SourceImage, cause: str) -> None:
        if not self._is_latest(request_id, source):
            logger.debug(f"古い再生成の失敗を破棄: request={request_id}")
            return
        logger.warning(f"出力の生成に失敗: {source.file_name}: {cause}")
        self._status_text = build_encode_error_text(cause)
        self._set_state(ControllerState.READY if self._output is not None else ControllerState.LOADED)

    def _discard_source(self) -> None:
        self.resources.release_previous(OUTPUT_SLOT)
        self.resources.release_previous(PREVIEW_SLOT)
        self._source = None
        self._output = None

    def _set_state(self, state: ControllerState) -> None:
        self._state = state
        self._notify()

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)
