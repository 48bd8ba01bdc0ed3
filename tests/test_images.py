import base64
import io

import pytest
from PIL import Image

from vaymn.images import ImageProcessingError, resize_cover


def image_bytes(width, height, mode="RGBA", fmt="PNG"):
    buffer = io.BytesIO()
    Image.new(mode, (width, height), color="red" if mode == "RGB" else (200, 30, 30, 128)).save(buffer, format=fmt)
    return buffer.getvalue()


def decode(data_url):
    prefix = "data:image/jpeg;base64,"
    assert data_url.startswith(prefix)
    return Image.open(io.BytesIO(base64.b64decode(data_url[len(prefix):])))


def test_wide_cover_is_scaled_to_max_width():
    result = decode(resize_cover(image_bytes(800, 1200)))
    assert result.format == "JPEG"
    assert result.size == (400, 600)


def test_small_cover_keeps_its_size():
    result = decode(resize_cover(image_bytes(200, 300, mode="RGB", fmt="JPEG")))
    assert result.size == (200, 300)


def test_max_width_can_be_overridden():
    assert decode(resize_cover(image_bytes(300, 300), max_width=100)).size == (100, 100)


def test_oversized_upload_is_rejected(monkeypatch):
    # Pillow refuses images above twice this many pixels
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)
    buffer = io.BytesIO()
    Image.new("1", (50, 50)).save(buffer, format="PNG")
    with pytest.raises(ImageProcessingError) as excinfo:
        resize_cover(buffer.getvalue())
    assert str(excinfo.value) == "Failed to process image. Please try another."


@pytest.mark.parametrize("data", [b"", b"definitely not an image"])
def test_unreadable_upload_is_rejected(data):
    with pytest.raises(ImageProcessingError) as excinfo:
        resize_cover(data)
    assert str(excinfo.value) == "Failed to process image. Please try another."
