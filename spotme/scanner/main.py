"""Command-line interface for scanning photos for a face."""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import List

from ..errors import ImageLoadError, NoFaceDetectedError
from ..export import export_matches_zip, write_matches_json
from ..faces.client import DescriptorClient
from ..faces.matcher import MatchEvaluator
from ..faces.reference import capture_reference
from .coordinator import CONCURRENCY_LIMIT, ScanCoordinator
from .image_loader import ImageLoader
from .image_utils import is_supported_image
from .models import CancellationToken, Candidate
from .progress import TqdmProgressReporter


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def build_candidates(items: List[str]) -> List[Candidate]:
    """Turn command-line arguments (file paths or http(s) URLs) into candidates."""
    logger = logging.getLogger(__name__)
    candidates = []
    for item in items:
        index = len(candidates)
        if item.startswith(("http://", "https://")):
            candidates.append(Candidate.from_url(item, index))
        elif is_supported_image(Path(item)):
            candidates.append(Candidate.from_path(item, index))
        else:
            logger.warning(f"Ignoring unsupported file: {item}")
    return candidates


async def run(args) -> int:
    logger = logging.getLogger(__name__)

    candidates = build_candidates(args.images)
    if not candidates:
        logger.error("No photos to scan. Pass image files or URLs.")
        return 1

    async with DescriptorClient(args.descriptor_url) as service:
        if not await service.health_check():
            logger.error(f"Descriptor service not available at {service.service_url}")
            return 1

        try:
            reference = await capture_reference(args.reference, service)
        except (NoFaceDetectedError, ImageLoadError) as e:
            logger.error(str(e))
            return 2

        token = CancellationToken()
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, token.cancel)
        except NotImplementedError:
            pass  # Windows: Ctrl+C raises KeyboardInterrupt instead

        reporter = TqdmProgressReporter(disable=args.quiet)
        async with ImageLoader(max_size=args.max_size) as loader:
            coordinator = ScanCoordinator(
                loader,
                MatchEvaluator(service),
                concurrency=args.concurrency,
                item_timeout=args.item_timeout,
            )
            try:
                result = await coordinator.scan(candidates, reference, token, reporter)
            finally:
                reporter.close()

            if result.cancelled:
                logger.warning("Scan stopped early; results are partial")

            write_matches_json(result, args.output)
            if args.zip:
                await export_matches_zip(result.matches, args.zip, loader)

    for candidate in result.matches:
        print(candidate.payload)

    logger.info(f"Found {result.stats.found} of {result.stats.total} photos")
    return 0


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Find the photos that contain your face"
    )
    parser.add_argument(
        "reference",
        type=Path,
        help="Selfie or photo containing exactly the face to look for",
    )
    parser.add_argument(
        "images",
        nargs="+",
        help="Image files or http(s) URLs to scan",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=CONCURRENCY_LIMIT,
        help=f"Images evaluated at once (default: {CONCURRENCY_LIMIT} or SPOTME_CONCURRENCY env var)",
    )
    parser.add_argument(
        "--descriptor-url",
        type=str,
        default=None,
        help="Face descriptor service URL (default: DESCRIPTOR_SERVICE_URL env var or http://127.0.0.1:8003)",
    )
    parser.add_argument(
        "--item-timeout",
        type=float,
        default=None,
        help="Give up on a single image after this many seconds (default: no limit)",
    )
    parser.add_argument(
        "--max-size",
        type=int,
        default=1024,
        help="Maximum image dimension used for detection",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("matches.json"),
        help="Output file for matches and scan stats",
    )
    parser.add_argument(
        "--zip",
        type=Path,
        default=None,
        help="Also write matched photos to this ZIP archive",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Hide the progress bar",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()
    if args.concurrency < 1:
        parser.error("--concurrency must be >= 1")

    setup_logging(args.verbose)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
