"""Client for calling a remote face descriptor service.

This module handles communication with the face inference service,
including image encoding and response handling. The service is expected
to expose:

- GET  /health
- GET  /model-info
- POST /detect      {"image": <base64 jpeg>, "min_confidence": float}
                    -> {"descriptors": [[float, ...], ...]}
- POST /detect-one  {"image": <base64 jpeg>, "min_confidence": float}
                    -> {"descriptor": [float, ...] | null}
"""

import asyncio
import base64
import logging
import os
from typing import List, Optional

import httpx
import numpy as np
from PIL import Image

from ..errors import DescriptorServiceError
from ..scanner.image_utils import encode_jpeg
from .service import DescriptorService

logger = logging.getLogger(__name__)

# Multi-face detection runs on group photos, so it accepts weaker detections
# than the single-face reference capture.
DETECT_ALL_MIN_CONFIDENCE = 0.4
DETECT_ONE_MIN_CONFIDENCE = 0.6


class DescriptorClient(DescriptorService):
    """HTTP client for the face descriptor service.

    Configured via environment variables:
    - DESCRIPTOR_SERVICE_URL: Service URL (default: http://127.0.0.1:8003)
    """

    def __init__(
        self,
        service_url: str = None,
        timeout: float = 120.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize client.

        Args:
            service_url: Base URL of descriptor service (or use DESCRIPTOR_SERVICE_URL env)
            timeout: Request timeout in seconds
            client: Optional pre-configured async HTTP client
        """
        self.service_url = (service_url or os.getenv("DESCRIPTOR_SERVICE_URL", "http://127.0.0.1:8003")).rstrip("/")
        self.timeout = timeout
        self.client = client or httpx.AsyncClient(timeout=timeout)

        logger.info(f"DescriptorClient initialized: url={self.service_url}")

    async def __aenter__(self) -> "DescriptorClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def health_check(self) -> bool:
        """
        Check if the descriptor service is healthy.

        Returns:
            True if service is accessible and healthy
        """
        try:
            response = await self.client.get(f"{self.service_url}/health")
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.error(f"Health check failed: {e}")
            return False

    async def get_model_info(self) -> dict:
        """Get information about the face model served by the service."""
        try:
            response = await self.client.get(f"{self.service_url}/model-info")
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            logger.error(f"Failed to get model info: {e}")
            raise DescriptorServiceError(f"Failed to get model info: {e}") from e

    async def _post(self, endpoint: str, image: Image.Image, min_confidence: float) -> dict:
        jpeg = await asyncio.to_thread(encode_jpeg, image)
        payload = {
            "image": base64.b64encode(jpeg).decode("utf-8"),
            "min_confidence": min_confidence,
        }
        try:
            response = await self.client.post(f"{self.service_url}{endpoint}", json=payload)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Descriptor request to {endpoint} failed: {e}")
            raise DescriptorServiceError(f"Descriptor request to {endpoint} failed: {e}") from e

    async def detect_all(self, image: Image.Image) -> List[np.ndarray]:
        """Detect all faces and return one descriptor per face."""
        result = await self._post("/detect", image, DETECT_ALL_MIN_CONFIDENCE)
        try:
            return [np.asarray(d, dtype=np.float32) for d in result["descriptors"]]
        except (KeyError, TypeError, ValueError) as e:
            raise DescriptorServiceError(f"Malformed /detect response: {e}") from e

    async def detect_one(self, image: Image.Image) -> Optional[np.ndarray]:
        """Detect the most confident face, or None if there is none."""
        result = await self._post("/detect-one", image, DETECT_ONE_MIN_CONFIDENCE)
        try:
            descriptor = result["descriptor"]
        except (KeyError, TypeError) as e:
            raise DescriptorServiceError(f"Malformed /detect-one response: {e}") from e

        if descriptor is None:
            return None
        return np.asarray(descriptor, dtype=np.float32)
