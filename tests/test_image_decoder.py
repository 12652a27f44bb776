from __future__ import annotations

import pytest
from PIL import Image

from long_edge_resizer.errors import DecodeError
from long_edge_resizer.image_decoder import decode_image, decode_image_bytes, read_image_file


def test_decode_jpeg_reports_dimensions(sample_images) -> None:
    source = decode_image_bytes(sample_images["jpeg"], "photo.jpg")

    assert (source.width, source.height) == (2000, 1500)
    assert source.bitmap.size == (2000, 1500)
    assert source.file_name == "photo.jpg"
    assert source.byte_size == len(sample_images["jpeg"])
    assert source.source_format == "JPEG"


def test_decode_gif_uses_first_frame(image_bytes) -> None:
    frames = [Image.new("P", (64, 32), color=i) for i in range(3)]
    buffer_data = image_bytes(frames[0], "GIF", save_all=True, append_images=frames[1:])

    source = decode_image_bytes(buffer_data, "anim.gif")
    assert (source.width, source.height) == (64, 32)


def test_decode_applies_exif_orientation(image_bytes) -> None:
    exif = Image.Exif()
    exif[0x0112] = 6  # 90度回転
    data = image_bytes(Image.new("RGB", (40, 20), (10, 20, 30)), "JPEG", exif=exif.tobytes())

    source = decode_image_bytes(data, "rotated.jpg")
    assert (source.width, source.height) == (20, 40)


def test_decode_text_file_raises_decode_error(sample_images) -> None:
    with pytest.raises(DecodeError) as exc_info:
        decode_image_bytes(sample_images["text"], "notes.jpg")
    assert exc_info.value.cause == "not a recognized image format"


def test_decode_empty_and_truncated_data(sample_images) -> None:
    with pytest.raises(DecodeError):
        decode_image_bytes(b"", "empty.png")

    truncated = sample_images["png"][: len(sample_images["png"]) // 2]
    with pytest.raises(DecodeError):
        decode_image_bytes(truncated, "broken.png")


@pytest.mark.asyncio
async def test_decode_image_runs_async(sample_images) -> None:
    source = await decode_image(sample_images["portrait"], "portrait.jpg")
    assert (source.width, source.height) == (1080, 1920)

    with pytest.raises(DecodeError):
        await decode_image(sample_images["text"], "fake.png")


def test_read_image_file(tmp_path, sample_images) -> None:
    path = tmp_path / "テスト画像.jpg"
    path.write_bytes(sample_images["small"])

    data, name = read_image_file(path)
    assert data == sample_images["small"]
    assert name == "テスト画像.jpg"
