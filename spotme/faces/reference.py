"""Capture the reference face descriptor for a scan session."""

import asyncio
import logging
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image

from ..errors import ImageLoadError, NoFaceDetectedError
from ..scanner.image_utils import open_image
from .service import DescriptorService

logger = logging.getLogger(__name__)


async def capture_reference(
    source: Union[Image.Image, bytes, str, Path],
    service: DescriptorService,
) -> np.ndarray:
    """
    Compute the reference descriptor from a selfie or uploaded photo.

    Uses the single-face detector, which is stricter than the multi-face
    path used during scanning.

    Args:
        source: PIL image, encoded image bytes, or path to an image file
        service: Descriptor service

    Returns:
        Read-only reference descriptor

    Raises:
        ImageLoadError: If the input cannot be decoded
        NoFaceDetectedError: If no face is found (the user should re-capture)
    """
    try:
        image = await asyncio.to_thread(open_image, source)
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise ImageLoadError(f"Failed to read reference image: {e}") from e

    descriptor = await service.detect_one(image)
    if descriptor is None:
        raise NoFaceDetectedError(
            "No face detected. Please ensure good lighting and face the camera directly."
        )

    reference = np.array(descriptor, dtype=np.float32)
    reference.setflags(write=False)
    logger.info(f"Captured reference descriptor ({reference.shape[0]} dims)")
    return reference
