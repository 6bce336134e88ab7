"""
Command-line entrypoint for offline geolocation of the analytics store.

    banalytiq-geo [DB]               resolve missing coordinates in DB
    banalytiq-geo DB --merge         merge satellite stores into DB, then resolve
    banalytiq-geo DB --merge-only    merge satellite stores into DB

Exit status: 0 on success, 1 if a satellite failed to merge, 2 on bad
arguments, 130 when interrupted during enrichment.
"""
from __future__ import annotations

import argparse
import logging
import signal
import threading
from pathlib import Path
from typing import Optional, Sequence

from config.settings import settings

from banalytiq.enrichment import EnrichmentCancelled, run_enrichment
from banalytiq.merge import DatabaseMerger

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_MERGE_FAILED = 1
EXIT_INTERRUPTED = 130  # 128 + SIGINT
LOG_FILE = "ip2geo.log"


def configure_logging(log_dir: Path, level: int = logging.INFO) -> None:
    log_dir.mkdir(parents=True, exist_ok=True)
    handlers = [
        logging.StreamHandler(),
        logging.FileHandler(log_dir / LOG_FILE, encoding="utf-8"),
    ]
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=handlers,
    )


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="banalytiq-geo",
        description="Fill in latitude/longitude/country/city for logged visits.",
    )
    parser.add_argument(
        "db",
        nargs="?",
        type=Path,
        default=settings.analytics_db,
        help=f"Analytics database. Default: {settings.analytics_db}",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--merge",
        action="store_true",
        help="Merge satellite databases into DB before resolving.",
    )
    mode.add_argument(
        "--merge-only",
        action="store_true",
        help="Merge satellite databases into DB and stop.",
    )
    parser.add_argument(
        "--geo-db",
        type=Path,
        default=settings.geo_db,
        help=f"GeoLite2 reference database. Default: {settings.geo_db}",
    )
    parser.add_argument(
        "--satellite-dir",
        type=Path,
        default=settings.satellite_dir,
        help="Directory holding <name>.<timestamp>.db files. Default: next to DB.",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=settings.batch_size,
        help="IPs per update batch and rows per merge commit. Default: %(default)s",
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        default=settings.log_dir,
        help="Directory for ip2geo.log. Default: %(default)s",
    )
    return parser


def _enrich(args: argparse.Namespace) -> int:
    cancel = threading.Event()

    def _on_sigint(signum, frame):
        cancel.set()

    previous = signal.signal(signal.SIGINT, _on_sigint)
    try:
        run_enrichment(args.db, args.geo_db, batch_size=args.batch_size, cancel_token=cancel)
    except EnrichmentCancelled as exc:
        logger.warning("Interruption signal received, exiting: %s", exc)
        return EXIT_INTERRUPTED
    finally:
        signal.signal(signal.SIGINT, previous)
    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    if args.batch_size < 1:
        parser.error("--batch-size must be a positive integer")

    configure_logging(args.log_dir)

    status = EXIT_OK
    if args.merge or args.merge_only:
        merger = DatabaseMerger(args.db, satellite_dir=args.satellite_dir, batch_size=args.batch_size)
        results = merger.merge_all()
        if any(r.error for r in results):
            status = EXIT_MERGE_FAILED
        if args.merge_only:
            return status

    enrich_status = _enrich(args)
    return enrich_status if enrich_status != EXIT_OK else status


if __name__ == "__main__":
    raise SystemExit(main())
