"""
Shared pytest fixtures.

Face detection is faked by color: every test image is a solid color and the
fake descriptor service maps colors to a fixed set of face descriptors.
"""
import asyncio
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
import pytest
from PIL import Image

from spotme.errors import DescriptorServiceError
from spotme.faces.service import DescriptorService

ALICE = np.array([1.0, 0.0, 0.0, 0.0], dtype=np.float32)
BOB = np.array([0.0, 1.0, 0.0, 0.0], dtype=np.float32)

RED = (255, 0, 0)      # Alice alone
BLUE = (0, 0, 255)     # Bob alone
GREEN = (0, 255, 0)    # Alice and Bob together
WHITE = (255, 255, 255)  # No faces
BLACK = (0, 0, 0)      # Detector blows up

FACES: Dict[Tuple[int, int, int], List[np.ndarray]] = {
    RED: [ALICE],
    BLUE: [BOB],
    GREEN: [BOB, ALICE],
    WHITE: [],
}


class ColorDescriptorService(DescriptorService):
    """Fake descriptor service keyed on an image's top-left pixel."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.calls = 0

    def _faces(self, image: Image.Image) -> List[np.ndarray]:
        color = image.convert("RGB").getpixel((0, 0))
        if color == BLACK:
            raise DescriptorServiceError("detector crashed")
        return FACES.get(color, [])

    async def detect_all(self, image: Image.Image) -> List[np.ndarray]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return self._faces(image)

    async def detect_one(self, image: Image.Image) -> Optional[np.ndarray]:
        if self.delay:
            await asyncio.sleep(self.delay)
        faces = self._faces(image)
        return faces[0] if faces else None


def solid_image(color, size=(64, 48)) -> Image.Image:
    return Image.new("RGB", size, color)


@pytest.fixture
def face_service():
    return ColorDescriptorService()


@pytest.fixture
def alice_reference():
    # Slightly off Alice, as a real selfie would be
    return ALICE + np.array([0.05, 0.05, 0.0, 0.0], dtype=np.float32)


@pytest.fixture
def make_photo(tmp_path):
    """Write a solid-color PNG and return its path."""
    def _make(name: str, color, size=(64, 48)) -> Path:
        path = tmp_path / name
        solid_image(color, size).save(path, format="PNG")
        return path
    return _make
