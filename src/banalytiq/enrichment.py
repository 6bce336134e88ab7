"""
Geolocation enrichment job for the analytics store.

- Snapshots the distinct IPs that still lack coordinates.
- Resolves each one against the reference store.
- Writes results in batches, committing after every batch.
"""
from __future__ import annotations

import logging
import sqlite3
import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from banalytiq import store
from banalytiq.models import ResolvedGeo
from banalytiq.network import is_resolvable
from banalytiq.resolver import BlockResolver
from banalytiq.updater import BatchGeoUpdater

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000
DEFAULT_PROGRESS_EVERY = 10


class JobState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    RESOLVING = "resolving"
    FLUSHING = "flushing"
    CANCELLING = "cancelling"
    DONE = "done"


@dataclass
class EnrichmentResult:
    total: int = 0
    processed: int = 0
    updated: int = 0
    failed: int = 0
    skipped: int = 0
    remaining: Optional[int] = None
    elapsed: float = 0.0


class EnrichmentCancelled(Exception):
    """Raised when the cancel token is set; the in-flight batch is discarded."""

    def __init__(self, result: EnrichmentResult):
        super().__init__(
            f"enrichment cancelled after {result.processed}/{result.total} IPs"
        )
        self.result = result


class GeoEnrichmentJob:
    def __init__(
        self,
        analytics: sqlite3.Connection,
        resolver: BlockResolver,
        *,
        updater: Optional[BatchGeoUpdater] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        cancel_token: Optional[threading.Event] = None,
        progress_every: int = DEFAULT_PROGRESS_EVERY,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.analytics = analytics
        self.resolver = resolver
        self.updater = updater or BatchGeoUpdater(analytics)
        self.batch_size = batch_size
        self.cancel_token = cancel_token or threading.Event()
        self.progress_every = progress_every
        self.state = JobState.IDLE

    def scan(self) -> list[str]:
        """Materialize the IPs to process; the run never re-queries."""
        self.state = JobState.SCANNING
        rows, distinct = store.count_unresolved(self.analytics)
        logger.info("Total records needing geo data: %d, Distinct IPs: %d", rows, distinct)
        return store.unresolved_ips(self.analytics)

    def run(self) -> EnrichmentResult:
        t0 = time.monotonic()
        ips = self.scan()
        result = EnrichmentResult(total=len(ips))
        logger.info("Found %d distinct IPs to process.", result.total)

        self.state = JobState.RESOLVING
        buffer: list[ResolvedGeo] = []
        cancelled = False

        self.analytics.execute("BEGIN")
        try:
            for ip in ips:
                if self.cancel_token.is_set():
                    cancelled = True
                    break

                result.processed += 1
                if self.progress_every and result.processed % self.progress_every == 0:
                    self._log_progress(result, t0)

                if not is_resolvable(ip):
                    result.skipped += 1
                    continue

                geo = self.resolver.resolve(ip)
                if geo is None or not geo.has_coordinates:
                    result.failed += 1
                    continue

                buffer.append(geo)
                if len(buffer) >= self.batch_size:
                    result.updated += self._flush(buffer)
                    buffer = []
                    self._commit(reopen=True)
                    self.state = JobState.RESOLVING
                    logger.info("Updated %d IPs so far...", result.updated)
            else:
                result.updated += self._flush(buffer)
                buffer = []
                self._commit(reopen=False)
        except Exception:
            self._rollback()
            raise

        result.elapsed = time.monotonic() - t0
        if cancelled:
            self.state = JobState.CANCELLING
            logger.warning(
                "Interruption received; discarding %d buffered results.", len(buffer)
            )
            self._rollback()
            raise EnrichmentCancelled(result)

        result.remaining, _ = store.count_unresolved(self.analytics)
        self.state = JobState.DONE
        self._log_summary(result)
        return result

    def _flush(self, buffer: list[ResolvedGeo]) -> int:
        if not buffer:
            return 0
        self.state = JobState.FLUSHING
        return self.updater.apply_batch(buffer)

    def _commit(self, *, reopen: bool) -> None:
        # A failed statement may already have ended the transaction.
        if self.analytics.in_transaction:
            self.analytics.execute("COMMIT")
        if reopen:
            self.analytics.execute("BEGIN")

    def _rollback(self) -> None:
        if self.analytics.in_transaction:
            self.analytics.execute("ROLLBACK")

    def _log_progress(self, result: EnrichmentResult, t0: float) -> None:
        elapsed = time.monotonic() - t0
        rate = result.processed / max(elapsed, 1.0)
        logger.info(
            "Processed %d/%d IPs (%.1f IPs/sec), updated: %d",
            result.processed, result.total, rate, result.updated,
        )

    def _log_summary(self, result: EnrichmentResult) -> None:
        logger.info("Distinct IPs processed: %d", result.total)
        logger.info("IPs successfully geolocated: %d", result.updated)
        logger.info("IPs failed (no geo data): %d", result.failed)
        logger.info("IPs skipped (invalid/private): %d", result.skipped)
        logger.info("Records still needing geo data: %d", result.remaining)
        logger.info("Finished in %.2f seconds.", result.elapsed)


def run_enrichment(
    analytics_db: str | Path,
    geo_db: str | Path,
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    cancel_token: Optional[threading.Event] = None,
) -> EnrichmentResult:
    """Open both stores, run one enrichment pass and close them again."""
    logger.info("Using GeoLite2 database: %s", geo_db)
    logger.info("Using analytics database: %s", analytics_db)

    reference = store.connect(geo_db, readonly=True)
    try:
        analytics = store.connect(analytics_db)
        try:
            job = GeoEnrichmentJob(
                analytics,
                BlockResolver(reference),
                batch_size=batch_size,
                cancel_token=cancel_token,
            )
            return job.run()
        finally:
            analytics.close()
    finally:
        reference.close()
