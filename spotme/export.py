"""Export matched photos as a JSON manifest or a ZIP archive."""

import json
import logging
import zipfile
from pathlib import Path
from typing import List

from tqdm import tqdm

from .errors import ImageLoadError
from .scanner.image_loader import ImageLoader
from .scanner.models import Candidate, ScanResult

logger = logging.getLogger(__name__)


def write_matches_json(result: ScanResult, output_path: Path) -> None:
    """
    Write a scan result (matches and final stats) to a JSON file.

    Args:
        result: Terminal scan result
        output_path: Path to output JSON file
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        json.dump(result.to_dict(), f, indent=2)

    logger.info(f"Exported {len(result.matches)} matches to {output_path}")


def _unique_name(name: str, used: set) -> str:
    candidate = name
    stem, suffix = Path(name).stem, Path(name).suffix
    counter = 1
    while candidate in used:
        candidate = f"{stem}_{counter}{suffix}"
        counter += 1
    used.add(candidate)
    return candidate


async def export_matches_zip(
    matches: List[Candidate],
    zip_path: Path,
    loader: ImageLoader,
) -> int:
    """
    Download matched photos into a ZIP archive under ``photos/``.

    Original bytes are stored (no re-encoding). Photos that cannot be
    fetched are skipped.

    Args:
        matches: Candidates to export
        zip_path: Output archive path
        loader: Loader used to fetch original bytes

    Returns:
        Number of photos written to the archive
    """
    zip_path.parent.mkdir(parents=True, exist_ok=True)
    written = 0
    skipped = 0
    used_names: set = set()

    with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for candidate in tqdm(matches, desc="Exporting photos"):
            try:
                data = await loader.fetch_bytes(candidate)
            except ImageLoadError as e:
                logger.warning(f"Skipping {candidate.name} due to error: {e}")
                skipped += 1
                continue

            archive.writestr(f"photos/{_unique_name(candidate.name, used_names)}", data)
            written += 1

    logger.info(f"Wrote {written} photos to {zip_path} ({skipped} skipped)")
    return written
