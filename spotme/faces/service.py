"""Interface to the face descriptor capability."""

from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np
from PIL import Image


class DescriptorService(ABC):
    """Detects faces and produces fixed-length face descriptors.

    Implementations may be slow (seconds per image) and may fail for
    individual images; callers decide how to handle failures.
    """

    @abstractmethod
    async def detect_all(self, image: Image.Image) -> List[np.ndarray]:
        """
        Detect every face in an image.

        Args:
            image: Decoded RGB image

        Returns:
            One descriptor per detected face (possibly empty)
        """
        raise NotImplementedError

    @abstractmethod
    async def detect_one(self, image: Image.Image) -> Optional[np.ndarray]:
        """
        Detect the single most confident face in an image.

        Returns:
            The face descriptor, or None if no face was found
        """
        raise NotImplementedError

    def distance(self, a: np.ndarray, b: np.ndarray) -> float:
        """Euclidean distance between two descriptors (lower is more similar)."""
        a = np.asarray(a, dtype=np.float32)
        b = np.asarray(b, dtype=np.float32)
        if a.shape != b.shape:
            raise ValueError(f"Descriptor shape mismatch: {a.shape} vs {b.shape}")
        return float(np.linalg.norm(a - b))
