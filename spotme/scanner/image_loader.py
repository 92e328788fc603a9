"""Resolve candidates to decoded images with scoped resource lifetime.

Each candidate is read either from the local filesystem or over HTTP, then
decoded with Pillow in a worker thread so the event loop stays responsive
while several images are in flight. The decoded image is handed out through
an async context manager that releases it on every exit path.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import httpx
from PIL import Image

from ..errors import ImageLoadError
from .image_utils import DEFAULT_MAX_SIZE, decode_image
from .models import Candidate, CandidateSource

logger = logging.getLogger(__name__)


class ImageLoader:
    """Loads candidate images for evaluation.

    Usage:
        async with ImageLoader() as loader:
            async with loader.open(candidate) as image:
                ...
    """

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize loader.

        Args:
            max_size: Maximum dimension of decoded images
            timeout: HTTP timeout in seconds for remote candidates
            client: Optional shared HTTP client (not closed by the loader)
        """
        self.max_size = max_size
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

        # Observability counters: every successful open is paired with one release
        self.open_count = 0
        self.release_count = 0
        # Images decoded for a caller that was cancelled meanwhile
        self.discard_count = 0

    async def __aenter__(self) -> "ImageLoader":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this loader created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        return self._client

    async def fetch_bytes(self, candidate: Candidate) -> bytes:
        """
        Fetch the raw encoded bytes of a candidate.

        Raises:
            ImageLoadError: If the payload cannot be read or fetched
        """
        if candidate.source == CandidateSource.LOCAL:
            try:
                return await asyncio.to_thread(Path(candidate.payload).read_bytes)
            except OSError as e:
                raise ImageLoadError(f"Failed to read {candidate.name}: {e}") from e

        if candidate.source == CandidateSource.REMOTE:
            if not candidate.payload:
                raise ImageLoadError(f"File {candidate.name} has no valid URL")
            try:
                response = await self._get_client().get(candidate.payload)
                response.raise_for_status()
                return response.content
            except httpx.HTTPError as e:
                raise ImageLoadError(f"Failed to fetch {candidate.name}: {e}") from e

        raise ImageLoadError(f"Unknown source for {candidate.name}: {candidate.source!r}")

    async def load(self, candidate: Candidate) -> Image.Image:
        """
        Fetch and decode a candidate.

        Prefer open() so the image is released deterministically.

        Raises:
            ImageLoadError: On any fetch or decode failure
        """
        data = await self.fetch_bytes(candidate)
        # The worker thread can't be interrupted, so a cancelled caller leaves
        # the decode running and closes its image once it lands
        decode = asyncio.ensure_future(asyncio.to_thread(decode_image, data, self.max_size))
        try:
            return await asyncio.shield(decode)
        except asyncio.CancelledError:
            logger.debug(f"Load of {candidate.name} cancelled during decode")
            decode.add_done_callback(self._discard)
            raise
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            raise ImageLoadError(f"Failed to decode {candidate.name}: {e}") from e

    @asynccontextmanager
    async def open(self, candidate: Candidate) -> AsyncIterator[Image.Image]:
        """Yield a decoded image and release it exactly once on exit."""
        image = await self.load(candidate)
        self.open_count += 1
        logger.debug(f"Loaded {candidate.name} ({image.width}x{image.height})")
        try:
            yield image
        finally:
            self._release(image)

    def _release(self, image: Image.Image) -> None:
        self.release_count += 1
        image.close()

    def _discard(self, decode: "asyncio.Future") -> None:
        if decode.cancelled() or decode.exception() is not None:
            return
        self.discard_count += 1
        decode.result().close()
