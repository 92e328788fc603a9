"""Decide whether an image contains the reference face."""

import logging

import numpy as np
from PIL import Image

from .service import DescriptorService

logger = logging.getLogger(__name__)

# Euclidean distance below which two face descriptors are the same person.
# 0.6 is the usual default for 128-d face descriptors; lower is stricter.
MATCH_THRESHOLD = 0.5


def compare_faces(service: DescriptorService, reference: np.ndarray, descriptor: np.ndarray) -> bool:
    """Return True if descriptor is within MATCH_THRESHOLD of reference."""
    return service.distance(reference, descriptor) < MATCH_THRESHOLD


class MatchEvaluator:
    """Runs multi-face detection and tests every face against the reference."""

    def __init__(self, service: DescriptorService):
        self.service = service

    async def is_match(self, image: Image.Image, reference: np.ndarray) -> bool:
        """
        Check whether any face in the image matches the reference.

        Detection errors and images without faces count as non-matches.

        Args:
            image: Decoded RGB image
            reference: Reference face descriptor

        Returns:
            True iff at least one detected face is within the threshold
        """
        try:
            descriptors = await self.service.detect_all(image)
        except Exception as e:
            logger.warning(f"Face detection failed: {e}")
            return False

        if not descriptors:
            return False

        for descriptor in descriptors:
            try:
                if compare_faces(self.service, reference, descriptor):
                    return True
            except ValueError as e:
                logger.warning(f"Skipping malformed descriptor: {e}")
        return False
