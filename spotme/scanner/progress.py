"""Progress and ETA reporting for scan sessions."""

import math
import time
from typing import Optional

from tqdm import tqdm

from .models import ScanStats


def percent_complete(stats: ScanStats) -> float:
    """Percentage of candidates processed (0-100)."""
    if stats.total <= 0:
        return 0.0
    return 100.0 * stats.processed / stats.total


def estimate_remaining(stats: ScanStats, now: Optional[float] = None) -> Optional[float]:
    """
    Estimate seconds remaining from throughput so far.

    Args:
        stats: Current scan stats
        now: Current timestamp (defaults to time.time())

    Returns:
        Seconds remaining, or None until the first item has been processed
    """
    if stats.processed == 0:
        return None
    now = time.time() if now is None else now
    elapsed = max(0.0, now - stats.start_time)
    seconds_per_photo = elapsed / stats.processed
    return (stats.total - stats.processed) * seconds_per_photo


def format_time_remaining(stats: ScanStats, now: Optional[float] = None) -> str:
    """Human readable ETA, e.g. "42s remaining" or "3m remaining"."""
    remaining = estimate_remaining(stats, now)
    if remaining is None:
        return "Calculating..."
    if remaining < 60:
        return f"{math.ceil(remaining)}s remaining"
    return f"{math.ceil(remaining / 60)}m remaining"


class TqdmProgressReporter:
    """Renders scan progress snapshots as a tqdm progress bar.

    Pass an instance as the ``on_progress`` callback of a scan.
    """

    def __init__(self, desc: str = "Scanning for your face", disable: bool = False, file=None):
        self.desc = desc
        self.disable = disable
        self.file = file  # Defaults to stderr
        self._bar: Optional[tqdm] = None
        # tqdm leaves n at 0 when disabled
        self._processed = 0

    @property
    def position(self) -> int:
        return self._processed

    def __call__(self, stats: ScanStats) -> None:
        if self._bar is None:
            self._bar = tqdm(
                total=stats.total,
                desc=self.desc,
                unit="img",
                disable=self.disable,
                file=self.file,
            )

        # Snapshots are monotonic, so only ever move forward
        delta = stats.processed - self._processed
        if delta > 0:
            self._bar.update(delta)
            self._processed = stats.processed
        self._bar.set_postfix(
            found=stats.found,
            file=stats.current_file,
            eta=format_time_remaining(stats),
            refresh=False,
        )

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None
        self._processed = 0
