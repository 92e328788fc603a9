"""Lifecycle of one user's scan session.

IDLE -> VIEWING_GALLERY (candidates registered) -> SCANNING_USER (capturing
the reference face) -> PROCESSING -> COMPLETE. Exiting to the gallery or
exiting fully cancels a running scan; a new scan always gets a fresh
cancellation token.
"""

import logging
from typing import Callable, List, Optional

import numpy as np

from ..faces.matcher import MatchEvaluator
from ..faces.reference import capture_reference
from ..faces.service import DescriptorService
from .coordinator import CONCURRENCY_LIMIT, ScanCoordinator
from .image_loader import ImageLoader
from .models import CancellationToken, Candidate, ScanResult, ScanState, ScanStats
from .progress import estimate_remaining, format_time_remaining, percent_complete

logger = logging.getLogger(__name__)


class ScanSession:
    """Holds candidates, reference face and scan progress for one user."""

    def __init__(
        self,
        service: DescriptorService,
        loader_factory: Callable[[], ImageLoader] = ImageLoader,
        concurrency: int = CONCURRENCY_LIMIT,
        item_timeout: Optional[float] = None,
    ):
        self.service = service
        self.loader_factory = loader_factory
        self.concurrency = concurrency
        self.item_timeout = item_timeout

        self.state = ScanState.IDLE
        self.candidates: List[Candidate] = []
        self.reference: Optional[np.ndarray] = None
        self.result: Optional[ScanResult] = None
        self.error: Optional[str] = None
        self._coordinator: Optional[ScanCoordinator] = None
        self._token: Optional[CancellationToken] = None
        # Bumped on every start/exit so a superseded scan can't overwrite state
        self._generation = 0

    @property
    def running(self) -> bool:
        return self.state == ScanState.PROCESSING

    def set_candidates(self, candidates: List[Candidate]) -> None:
        """Register the gallery to scan, discarding any previous results."""
        if not candidates:
            raise ValueError("No photos found in the selected source.")
        self._stop()
        self.candidates = list(candidates)
        self.reference = None
        self.result = None
        self.error = None
        self.state = ScanState.VIEWING_GALLERY
        logger.info(f"Registered {len(self.candidates)} candidates")

    def begin_capture(self) -> None:
        """Move to reference capture."""
        if not self.candidates:
            raise ValueError("Register photos before capturing a face")
        if self.running:
            raise RuntimeError("Already processing")
        self.state = ScanState.SCANNING_USER

    async def set_reference(self, source) -> np.ndarray:
        """
        Capture the reference descriptor from an image.

        Raises:
            NoFaceDetectedError: If no face is found; the session stays in
                SCANNING_USER so the user can try again
            RuntimeError: If a scan is running, or started while detecting
        """
        if self.running:
            raise RuntimeError("Already processing")
        self.state = ScanState.SCANNING_USER
        reference = await capture_reference(source, self.service)
        # Another upload may have started a scan while this one was detecting
        if self.running:
            raise RuntimeError("Already processing")
        self.reference = reference
        return reference

    def prepare_scan(self) -> int:
        """
        Validate preconditions and enter PROCESSING.

        Returns:
            Generation number to pass to run_scan()
        """
        if self.running:
            raise RuntimeError("Already processing")
        if not self.candidates:
            raise ValueError("No photos registered")
        if self.reference is None:
            raise ValueError("No reference face captured")

        self._generation += 1
        self._token = CancellationToken()
        self._coordinator = ScanCoordinator(
            self.loader_factory(),
            MatchEvaluator(self.service),
            concurrency=self.concurrency,
            item_timeout=self.item_timeout,
        )
        self.result = None
        self.error = None
        self.state = ScanState.PROCESSING
        return self._generation

    async def run_scan(self, generation: int) -> Optional[ScanResult]:
        """Run the scan prepared by prepare_scan()."""
        coordinator = self._coordinator
        token = self._token
        try:
            async with coordinator.loader:
                result = await coordinator.scan(self.candidates, self.reference, token)
        except Exception as e:
            logger.exception("Scan failed")
            if generation == self._generation:
                self.error = str(e)
                self.state = ScanState.ERROR
            return None

        if generation != self._generation:
            logger.info("Discarding result of superseded scan")
            return None

        self.result = result
        self.state = ScanState.COMPLETE
        return result

    def cancel(self) -> None:
        """Soft-stop the running scan; partial results remain valid."""
        if self._token is not None:
            self._token.cancel()

    def exit_to_gallery(self) -> None:
        """Cancel any scan and forget the reference and matches."""
        self._stop()
        self.reference = None
        self.result = None
        self._coordinator = None
        self.state = ScanState.VIEWING_GALLERY if self.candidates else ScanState.IDLE

    def full_exit(self) -> None:
        """Cancel any scan and forget everything."""
        self._stop()
        self.candidates = []
        self.reference = None
        self.result = None
        self.error = None
        self._coordinator = None
        self.state = ScanState.IDLE

    def _stop(self) -> None:
        self.cancel()
        self._generation += 1
        self._token = None

    @property
    def stats(self) -> ScanStats:
        if self._coordinator is None:
            return ScanStats(total=len(self.candidates))
        return self._coordinator.stats.snapshot()

    @property
    def matches(self) -> List[Candidate]:
        if self._coordinator is None:
            return []
        return self._coordinator.matches.to_list()

    def status(self) -> dict:
        """Snapshot suitable for rendering progress."""
        stats = self.stats
        return {
            "state": self.state.value,
            "stats": stats.to_dict(),
            "percent": round(percent_complete(stats), 1),
            "eta_seconds": estimate_remaining(stats),
            "time_remaining": format_time_remaining(stats),
            "cancelled": bool(self.result and self.result.cancelled),
            "error": self.error,
        }
