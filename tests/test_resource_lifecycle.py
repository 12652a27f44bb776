from __future__ import annotations

from long_edge_resizer.resource_lifecycle import (
    OUTPUT_SLOT,
    PREVIEW_SLOT,
    ResourceLifecycleManager,
    TempFileHandleFactory,
    guess_mime_type,
)


def test_install_revokes_previous_handle_in_same_slot(handle_factory) -> None:
    manager = ResourceLifecycleManager(handle_factory)

    first = manager.install(OUTPUT_SLOT, b"a", "image/png")
    second = manager.install(OUTPUT_SLOT, b"b", "image/png")

    assert handle_factory.revoked == [first]
    assert manager.handle_for(OUTPUT_SLOT) == second
    assert manager.live_handles == 1


def test_slots_are_independent(handle_factory) -> None:
    manager = ResourceLifecycleManager(handle_factory)

    preview = manager.install(PREVIEW_SLOT, b"src", "image/jpeg")
    manager.install(OUTPUT_SLOT, b"out", "image/jpeg")

    assert manager.release_previous(OUTPUT_SLOT) is True
    assert manager.release_previous(OUTPUT_SLOT) is False
    assert manager.handle_for(PREVIEW_SLOT) == preview
    assert manager.live_handles == 1


def test_release_all_is_safe_to_repeat(handle_factory) -> None:
    manager = ResourceLifecycleManager(handle_factory)
    manager.install(PREVIEW_SLOT, b"src", "image/jpeg")
    manager.install(OUTPUT_SLOT, b"out", "image/webp")

    assert manager.release_all() == 2
    assert manager.release_all() == 0
    assert manager.live_handles == 0
    assert handle_factory.live == []


def test_track_same_handle_does_not_revoke(handle_factory) -> None:
    manager = ResourceLifecycleManager(handle_factory)
    handle = manager.install(OUTPUT_SLOT, b"x", "image/png")

    manager.track(OUTPUT_SLOT, handle)

    assert handle_factory.revoked == []


def test_temp_file_handles_are_deleted(tmp_path) -> None:
    factory = TempFileHandleFactory()
    manager = ResourceLifecycleManager(factory)

    first = manager.install(OUTPUT_SLOT, b"first", "image/webp")
    assert first.suffix == ".webp"
    assert first.read_bytes() == b"first"

    second = manager.install(OUTPUT_SLOT, b"second", "image/webp")
    assert not first.exists()
    assert second.exists()

    manager.release_all()
    assert not second.exists()

    directory = factory.directory
    factory.cleanup()
    assert directory is not None and not directory.exists()
    assert factory.directory is None


def test_temp_file_revoke_missing_file_is_quiet(tmp_path) -> None:
    factory = TempFileHandleFactory()
    factory.revoke(tmp_path / "gone.png")


def test_guess_mime_type() -> None:
    assert guess_mime_type("photo.JPG") == "image/jpeg"
    assert guess_mime_type("scan.tif") == "image/tiff"
    assert guess_mime_type("anim.gif") == "image/gif"
    assert guess_mime_type("notes.txt") == "application/octet-stream"
