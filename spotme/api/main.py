"""Command-line interface for the SpotMe API server."""

import argparse
import logging
import os

import uvicorn

from ..scanner.coordinator import CONCURRENCY_LIMIT
from .app import create_app


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="SpotMe face scan server")
    parser.add_argument(
        "--host",
        type=str,
        default=os.getenv("HOST", "127.0.0.1"),
        help="Host to bind to (default: 127.0.0.1 or HOST env var)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", "8080")),
        help="Port to bind to (default: 8080 or PORT env var)",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=CONCURRENCY_LIMIT,
        help=f"Images evaluated at once (default: {CONCURRENCY_LIMIT} or SPOTME_CONCURRENCY env var)",
    )
    parser.add_argument(
        "--item-timeout",
        type=float,
        default=None,
        help="Give up on a single image after this many seconds (default: no limit)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=os.getenv("LOG_LEVEL", "info"),
        choices=["debug", "info", "warning", "error"],
        help="Logging level (default: info or LOG_LEVEL env var)",
    )

    args = parser.parse_args()

    # Configure logging
    log_level = getattr(logging, args.log_level.upper())
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger = logging.getLogger(__name__)

    logger.info(f"Starting SpotMe server on {args.host}:{args.port}")
    logger.info(f"Descriptor service: {os.getenv('DESCRIPTOR_SERVICE_URL', 'http://127.0.0.1:8003')}")

    app = create_app(concurrency=args.concurrency, item_timeout=args.item_timeout)
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level)


if __name__ == "__main__":
    main()
