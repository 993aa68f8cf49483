"""Image preprocessing for architecture diagrams.

Diagrams are downscaled to fit a bounding box and re-encoded as JPEG before
they are sent to the model, which bounds the request payload size.
"""

import base64
import io
from pathlib import Path

import structlog
from PIL import Image, UnidentifiedImageError

from threat_modeler.config.settings import Settings, get_settings
from threat_modeler.models import ImagePayload

logger = structlog.get_logger(__name__)


class ImageProcessingError(Exception):
    """Error decoding or re-encoding an image."""

    pass


def _flatten_transparency(img: Image.Image) -> Image.Image:
    """Composite transparent images onto white; JPEG has no alpha."""
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return img.convert("RGB")


def fit_within(width: int, height: int, max_width: int, max_height: int) -> tuple[int, int]:
    """Scale dimensions down to fit a bounding box, preserving aspect ratio."""
    if width <= max_width and height <= max_height:
        return width, height
    ratio = min(max_width / width, max_height / height)
    return max(1, round(width * ratio)), max(1, round(height * ratio))


def prepare_image(
    data: bytes,
    filename: str | None = None,
    max_width: int = 1920,
    max_height: int = 1080,
    quality: int = 70,
) -> ImagePayload:
    """Downscale and re-encode an image for the model.

    Args:
        data: Raw image bytes (PNG, JPEG, GIF, ...).
        filename: Original file name; the stored name gets a .jpg suffix.
        max_width: Bounding box width in pixels.
        max_height: Bounding box height in pixels.
        quality: JPEG quality (1-95).

    Returns:
        ImagePayload with JPEG data.

    Raises:
        ImageProcessingError: If the image cannot be decoded.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            original_size = img.size
            converted = _flatten_transparency(img)

        target_size = fit_within(*original_size, max_width, max_height)
        if target_size != original_size:
            converted = converted.resize(target_size, Image.Resampling.LANCZOS)

        buffer = io.BytesIO()
        converted.save(buffer, format="JPEG", quality=quality)

    except (UnidentifiedImageError, OSError) as e:
        logger.error("image_preprocessing_failed", filename=filename, error=str(e))
        raise ImageProcessingError(f"Could not read image {filename or ''}: {e}".strip()) from e

    encoded = buffer.getvalue()
    logger.info(
        "image_prepared",
        filename=filename,
        original_size=original_size,
        final_size=target_size,
        original_bytes=len(data),
        final_bytes=len(encoded),
    )

    stem = Path(filename).stem if filename else "diagram"
    return ImagePayload(
        mime_type="image/jpeg",
        base64_data=base64.b64encode(encoded).decode("ascii"),
        filename=f"{stem}.jpg",
    )


def load_image_file(path: str | Path, settings: Settings | None = None) -> ImagePayload:
    """Read and prepare an image file using configured limits.

    Raises:
        ImageProcessingError: If the file cannot be read or decoded.
    """
    settings = settings or get_settings()
    path = Path(path)

    try:
        data = path.read_bytes()
    except OSError as e:
        raise ImageProcessingError(f"Could not read image file {path}: {e}") from e

    return prepare_image(
        data,
        filename=path.name,
        max_width=settings.image_max_width,
        max_height=settings.image_max_height,
        quality=settings.image_jpeg_quality,
    )
