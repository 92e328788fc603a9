"""Data model for a face scan session."""

import copy
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union


class CandidateSource(str, Enum):
    """Where a candidate image lives."""

    LOCAL = "LOCAL"
    REMOTE = "REMOTE"


class ScanState(str, Enum):
    """Lifecycle of a scan session."""

    IDLE = "IDLE"
    VIEWING_GALLERY = "VIEWING_GALLERY"  # Candidates loaded, no reference yet
    SCANNING_USER = "SCANNING_USER"  # Waiting for a reference face
    PROCESSING = "PROCESSING"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"


@dataclass(frozen=True)
class Candidate:
    """One image entry eligible for face-match evaluation."""

    id: str
    name: str
    source: CandidateSource
    payload: str  # Filesystem path for LOCAL, http(s) URI for REMOTE

    @classmethod
    def from_path(cls, path: Union[str, Path], index: int) -> "Candidate":
        """Build a LOCAL candidate from a file path."""
        path = Path(path)
        return cls(
            id=f"local-{index}-{path.name}",
            name=path.name,
            source=CandidateSource.LOCAL,
            payload=str(path),
        )

    @classmethod
    def from_url(cls, url: str, index: int, name: Optional[str] = None) -> "Candidate":
        """Build a REMOTE candidate from an image URL."""
        return cls(
            id=f"web-{index}",
            name=name or f"Image {index + 1}",
            source=CandidateSource.REMOTE,
            payload=url,
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "name": self.name,
            "source": self.source.value,
            "payload": self.payload,
        }


@dataclass
class ScanStats:
    """Live progress snapshot for a scan session."""

    total: int = 0
    processed: int = 0
    found: int = 0
    start_time: float = 0.0
    current_file: str = ""

    @classmethod
    def start(cls, total: int) -> "ScanStats":
        return cls(
            total=total,
            processed=0,
            found=0,
            start_time=time.time(),
            current_file="Initializing...",
        )

    def snapshot(self) -> "ScanStats":
        """Return an independent copy safe to hand to observers."""
        return copy.copy(self)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "processed": self.processed,
            "found": self.found,
            "start_time": self.start_time,
            "current_file": self.current_file,
        }


class MatchSet:
    """Ordered-by-discovery collection of matching candidates, unique by id."""

    def __init__(self):
        self._items: List[Candidate] = []
        self._ids = set()

    def add(self, candidate: Candidate) -> bool:
        """Append a candidate. Returns False if its id is already present."""
        if candidate.id in self._ids:
            return False
        self._ids.add(candidate.id)
        self._items.append(candidate)
        return True

    def clear(self) -> None:
        self._items = []
        self._ids = set()

    def to_list(self) -> List[Candidate]:
        return list(self._items)

    def __contains__(self, candidate: Candidate) -> bool:
        return candidate.id in self._ids

    def __iter__(self) -> Iterator[Candidate]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)


class CancellationToken:
    """Cooperative cancellation flag for a single scan session.

    Once cancelled a token stays cancelled; start a new session with a
    fresh token.
    """

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class ScanResult:
    """Terminal value of a scan."""

    matches: List[Candidate]
    stats: ScanStats
    state: ScanState = ScanState.COMPLETE
    cancelled: bool = False
    errors: int = 0  # Items downgraded to non-match because of a failure

    def to_dict(self) -> dict:
        return {
            "matches": [c.to_dict() for c in self.matches],
            "stats": self.stats.to_dict(),
            "state": self.state.value,
            "cancelled": self.cancelled,
            "errors": self.errors,
        }
