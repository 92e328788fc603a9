"""Bounded-concurrency face scan over a list of candidate images.

The coordinator walks the candidate list in fixed-size chunks. All items of
a chunk are evaluated concurrently and the whole chunk must finish before
the next one starts, so at most ``concurrency`` images are being decoded or
run through face detection at any moment.

Per-item failures (unreachable URL, corrupt file, detector error) count as
non-matches and never abort the scan. Cancellation is cooperative and is
checked at chunk boundaries only: items already dispatched run to completion
and release their resources, later chunks are never launched.

All bookkeeping runs on the event loop thread; stats and the match set are
never touched from worker threads, so no locking is needed.
"""

import asyncio
import logging
import os
from typing import Callable, List, Optional, Sequence

import numpy as np

from ..faces.matcher import MatchEvaluator
from .image_loader import ImageLoader
from .models import (
    CancellationToken,
    Candidate,
    MatchSet,
    ScanResult,
    ScanState,
    ScanStats,
)

logger = logging.getLogger(__name__)

# Simultaneous image evaluations. Face detection dominates the cost per
# image, so a small number keeps memory and sockets bounded.
CONCURRENCY_LIMIT = int(os.getenv("SPOTME_CONCURRENCY", "3"))

ProgressCallback = Callable[[ScanStats], None]


def chunk_candidates(candidates: Sequence[Candidate], size: int) -> List[List[Candidate]]:
    """Split candidates into contiguous chunks of ``size`` (last may be smaller)."""
    if size < 1:
        raise ValueError(f"Chunk size must be >= 1, got {size}")
    return [list(candidates[i:i + size]) for i in range(0, len(candidates), size)]


class ScanCoordinator:
    """Runs candidates through the image loader and match evaluator."""

    def __init__(
        self,
        loader: ImageLoader,
        evaluator: MatchEvaluator,
        concurrency: int = CONCURRENCY_LIMIT,
        item_timeout: Optional[float] = None,
    ):
        """
        Initialize coordinator.

        Args:
            loader: Resolves candidates to decoded images
            evaluator: Decides whether an image contains the reference face
            concurrency: Maximum number of items evaluated at once
            item_timeout: Optional per-item limit in seconds; an item that
                exceeds it counts as a non-match. None waits indefinitely.
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")

        self.loader = loader
        self.evaluator = evaluator
        self.concurrency = concurrency
        self.item_timeout = item_timeout

        self.stats = ScanStats()
        self.matches = MatchSet()
        self.state = ScanState.IDLE
        self.errors = 0
        self._token: Optional[CancellationToken] = None
        self._on_progress: Optional[ProgressCallback] = None

    def cancel(self) -> None:
        """Stop launching new chunks of the scan in progress, if any."""
        if self._token is not None:
            self._token.cancel()

    async def scan(
        self,
        candidates: Sequence[Candidate],
        reference: np.ndarray,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ScanResult:
        """
        Scan candidates for the reference face.

        Args:
            candidates: Images to scan, in processing order
            reference: Reference face descriptor
            cancel_token: Token checked before each chunk
            on_progress: Called with a ScanStats snapshot after every change

        Returns:
            ScanResult with matches in discovery order

        Raises:
            ValueError: If candidates is empty or reference is missing
        """
        candidates = list(candidates)
        if not candidates:
            raise ValueError("No candidates to scan")
        if reference is None or np.size(reference) == 0:
            raise ValueError("Missing reference descriptor")

        reference = np.array(reference, dtype=np.float32)
        reference.setflags(write=False)

        self._token = cancel_token or CancellationToken()
        self._on_progress = on_progress
        self.stats = ScanStats.start(len(candidates))
        self.matches.clear()
        self.errors = 0
        self.state = ScanState.PROCESSING
        self._publish()

        chunks = chunk_candidates(candidates, self.concurrency)
        logger.info(
            f"Scanning {len(candidates)} images in {len(chunks)} chunks "
            f"(concurrency: {self.concurrency})"
        )

        stopped_early = False
        for index, chunk in enumerate(chunks):
            if self._token.cancelled:
                stopped_early = True
                logger.info(
                    f"Scan cancelled before chunk {index + 1}/{len(chunks)} "
                    f"({self.stats.processed}/{self.stats.total} processed)"
                )
                break

            await asyncio.gather(*(self._process_item(c, reference) for c in chunk))

        self.state = ScanState.COMPLETE
        logger.info(
            f"Scan complete: {self.stats.found} matches in "
            f"{self.stats.processed}/{self.stats.total} images ({self.errors} skipped)"
        )

        return ScanResult(
            matches=self.matches.to_list(),
            stats=self.stats.snapshot(),
            state=self.state,
            cancelled=stopped_early,
            errors=self.errors,
        )

    async def _process_item(self, candidate: Candidate, reference: np.ndarray) -> None:
        # Best-effort display hint; the last item to start in a chunk wins
        self.stats.current_file = candidate.name
        self._publish()

        try:
            if self.item_timeout is not None:
                matched = await asyncio.wait_for(
                    self._evaluate(candidate, reference), timeout=self.item_timeout
                )
            else:
                matched = await self._evaluate(candidate, reference)

            if matched and self.matches.add(candidate):
                self.stats.found += 1
                logger.info(f"Match found: {candidate.name}")
        except asyncio.TimeoutError:
            self.errors += 1
            logger.warning(f"Timed out evaluating {candidate.name} after {self.item_timeout}s")
        except Exception as e:
            self.errors += 1
            logger.warning(f"Skipping {candidate.name}: {e}")
        finally:
            self.stats.processed += 1
            self._publish()

    async def _evaluate(self, candidate: Candidate, reference: np.ndarray) -> bool:
        async with self.loader.open(candidate) as image:
            return await self.evaluator.is_match(image, reference)

    def _publish(self) -> None:
        if self._on_progress is None:
            return
        try:
            self._on_progress(self.stats.snapshot())
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")
