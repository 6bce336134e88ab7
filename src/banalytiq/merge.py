"""
Fold satellite analytics stores into the base store.

Satellites are named `<basename>.<unix_timestamp>.db` and sit next to the base
store (or in a configured directory). Only rows whose (ip, dt, url) key is
missing from the base store are copied. A merged satellite is renamed to
`<name>.bak` so discovery skips it from then on.
"""
from __future__ import annotations

import logging
import re
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from banalytiq import store

logger = logging.getLogger(__name__)

RETIRED_SUFFIX = ".bak"
DEFAULT_BATCH_SIZE = 1000

_SELECT_VISITS = "SELECT ip, dt, url, referer, ua, status FROM analytics ORDER BY dt"


class MergeError(Exception):
    def __init__(self, satellite: Path, message: str):
        super().__init__(f"{satellite}: {message}")
        self.satellite = satellite


@dataclass
class MergeResult:
    satellite: Path
    inserted: int = 0
    retired_to: Optional[Path] = None
    missing: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.missing


class DatabaseMerger:
    def __init__(
        self,
        base_db: str | Path,
        satellite_dir: Optional[str | Path] = None,
        basename: Optional[str] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self.base_db = Path(base_db)
        self.satellite_dir = Path(satellite_dir) if satellite_dir else self.base_db.parent
        self.basename = basename or self.base_db.stem
        self.batch_size = batch_size
        self._pattern = re.compile(rf"{re.escape(self.basename)}\.(\d+)\.db")

    def discover(self) -> list[Path]:
        """Satellite stores in the directory, oldest timestamp first."""
        if not self.satellite_dir.is_dir():
            logger.warning("Satellite directory %s does not exist.", self.satellite_dir)
            return []

        found = []
        for path in self.satellite_dir.iterdir():
            m = self._pattern.fullmatch(path.name)
            if m and path.is_file():
                found.append((int(m.group(1)), path))
        found.sort()
        return [path for _, path in found]

    def merge_all(self) -> list[MergeResult]:
        """Merge every discovered satellite; one failure does not stop the rest."""
        satellites = self.discover()
        logger.info("Found %d satellite database(s) in %s", len(satellites), self.satellite_dir)

        results = []
        for satellite in satellites:
            try:
                results.append(self.merge_one(satellite))
            except MergeError as exc:
                logger.error("Merge failed, leaving %s in place: %s", satellite.name, exc)
                results.append(MergeResult(satellite=satellite, error=str(exc)))

        merged = sum(1 for r in results if r.ok)
        inserted = sum(r.inserted for r in results)
        logger.info("Merged %d/%d satellite(s), %d new rows.", merged, len(results), inserted)
        return results

    def merge_one(self, satellite: str | Path) -> MergeResult:
        """
        Copy rows of `satellite` whose key is absent from the base store, then
        retire the satellite. Copied rows carry no geo data.

        Raises MergeError on any SQLite failure, leaving the satellite untouched,
        and when the satellite cannot be renamed afterwards.
        """
        satellite = Path(satellite)
        if not satellite.is_file():
            logger.warning("Satellite %s not found; nothing to merge.", satellite)
            return MergeResult(satellite=satellite, missing=True)

        start = time.monotonic()
        try:
            base = store.connect(self.base_db)
            try:
                sat = store.connect(satellite, readonly=True)
                try:
                    inserted = self._merge(base, sat, satellite)
                finally:
                    sat.close()
            finally:
                base.close()
        except sqlite3.Error as exc:
            raise MergeError(satellite, str(exc)) from exc

        retired = self._retire(satellite)
        logger.info(
            "Merged %s: %d new rows in %.2f seconds.",
            satellite.name, inserted, time.monotonic() - start,
        )
        return MergeResult(satellite=satellite, inserted=inserted, retired_to=retired)

    def _merge(self, base: sqlite3.Connection, sat: sqlite3.Connection, satellite: Path) -> int:
        base_keys = store.load_keys(base)
        sat_keys = store.load_keys(sat)
        new_keys = sat_keys - base_keys
        logger.info(
            "%s: %d rows, %d already in %s, %d new.",
            satellite.name, len(sat_keys), len(sat_keys) - len(new_keys),
            self.base_db.name, len(new_keys),
        )
        if not new_keys:
            return 0

        inserted = 0
        base.execute("BEGIN")
        try:
            for row in sat.execute(_SELECT_VISITS):
                if (row["ip"], row["dt"], row["url"]) not in new_keys:
                    continue
                base.execute(store.INSERT_VISIT, tuple(row))
                inserted += 1
                if inserted % self.batch_size == 0:
                    base.execute("COMMIT")
                    logger.info("Inserted %d rows so far...", inserted)
                    base.execute("BEGIN")
            base.execute("COMMIT")
        except sqlite3.Error:
            if base.in_transaction:
                base.execute("ROLLBACK")
            raise
        return inserted

    def _retire(self, satellite: Path) -> Path:
        target = satellite.with_name(satellite.name + RETIRED_SUFFIX)
        try:
            satellite.rename(target)
        except OSError as exc:
            raise MergeError(satellite, f"could not rename to {target.name}: {exc}") from exc
        logger.info("Renamed %s to %s", satellite.name, target.name)
        return target
