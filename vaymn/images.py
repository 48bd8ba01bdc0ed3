import base64
import io
import logging
from typing import Optional

from PIL import Image, UnidentifiedImageError

from vaymn.config import settings

logger = logging.getLogger(__name__)


class ImageProcessingError(ValueError):
    """The uploaded file could not be read as an image."""


def resize_cover(data: bytes, max_width: Optional[int] = None, quality: Optional[int] = None) -> str:
    """Shrink an uploaded cover and return it as an inline JPEG data URL.

    Images wider than ``max_width`` are scaled down proportionally; smaller
    ones keep their size. Covers are stored inside the book record, so the
    re-encode keeps records small.
    """
    max_width = max_width or settings.cover_max_width
    quality = quality or settings.cover_jpeg_quality
    if not data:
        raise ImageProcessingError("Failed to process image. Please try another.")

    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        logger.warning(f"Cover upload rejected: {exc}")
        raise ImageProcessingError("Failed to process image. Please try another.") from exc

    # JPEG has no alpha channel or palette
    if image.mode != "RGB":
        image = image.convert("RGB")

    if image.width > max_width:
        ratio = max_width / image.width
        new_height = max(1, int(image.height * ratio))
        image = image.resize((max_width, new_height), Image.Resampling.LANCZOS)

    output = io.BytesIO()
    image.save(output, format="JPEG", quality=quality, optimize=True)
    encoded = base64.b64encode(output.getvalue()).decode("ascii")
    logger.info(f"Cover processed: {image.width}x{image.height}, {len(data)} -> {output.tell()} bytes")
    return f"data:image/jpeg;base64,{encoded}"
