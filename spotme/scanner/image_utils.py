"""Image decoding and preprocessing utilities."""

import io
from pathlib import Path
from typing import Union

from PIL import Image, ImageOps

# Register HEIC support
try:
    from pillow_heif import register_heif_opener
    register_heif_opener()
except ImportError:
    pass  # pillow-heif not installed, HEIC files won't be supported


SUPPORTED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".heic", ".heif", ".webp", ".bmp", ".tiff"}

# Large enough for face detection on group photos, small enough to keep
# several decoded images in memory at once.
DEFAULT_MAX_SIZE = 1024


def decode_image(data: bytes, max_size: int = DEFAULT_MAX_SIZE) -> Image.Image:
    """
    Decode image bytes, handle EXIF orientation and downscale.

    Args:
        data: Raw encoded image bytes
        max_size: Maximum dimension of the returned image

    Returns:
        RGB PIL Image, fully loaded into memory
    """
    with Image.open(io.BytesIO(data)) as raw:
        # Apply EXIF orientation (rotations and mirrors)
        image = ImageOps.exif_transpose(raw)
        if image.mode != "RGB":
            image = image.convert("RGB")
        else:
            image = image.copy()

    if max(image.size) > max_size:
        image.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)

    return image


def encode_jpeg(image: Image.Image, quality: int = 95) -> bytes:
    """Encode a PIL image as JPEG bytes."""
    buffer = io.BytesIO()
    image.convert("RGB").save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


def open_image(source: Union[Image.Image, bytes, str, Path], max_size: int = DEFAULT_MAX_SIZE) -> Image.Image:
    """Accept a PIL image, encoded bytes or a file path and return a decoded RGB image."""
    if isinstance(source, Image.Image):
        return source if source.mode == "RGB" else source.convert("RGB")
    if isinstance(source, (str, Path)):
        source = Path(source).read_bytes()
    return decode_image(source, max_size=max_size)


def is_supported_image(file_path: Path) -> bool:
    """Check if file is a supported image format."""
    return Path(file_path).suffix.lower() in SUPPORTED_EXTENSIONS
