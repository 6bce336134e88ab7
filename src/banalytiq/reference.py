"""Build the SQLite reference store from a GeoLite2 City CSV pair."""
from __future__ import annotations

import logging
import sqlite3
import time
from pathlib import Path

import pandas as pd

logger = logging.getLogger(__name__)

BLOCK_COLUMNS = [
    "network",
    "latitude",
    "longitude",
    "geoname_id",
    "registered_country_geoname_id",
    "represented_country_geoname_id",
]
LOCATION_COLUMNS = ["geoname_id", "country_name", "city_name"]
_ID_COLUMNS = [c for c in BLOCK_COLUMNS if c.endswith("geoname_id")]

REFERENCE_SCHEMA = """
CREATE TABLE blocks (
    network TEXT NOT NULL,
    latitude REAL,
    longitude REAL,
    geoname_id INTEGER,
    registered_country_geoname_id INTEGER,
    represented_country_geoname_id INTEGER
);
CREATE TABLE locations (
    geoname_id INTEGER PRIMARY KEY,
    country_name TEXT,
    city_name TEXT
);
"""

REFERENCE_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_blocks_network ON blocks(network);
CREATE INDEX IF NOT EXISTS idx_locations_geoname ON locations(geoname_id);
"""


def _select(chunk: pd.DataFrame, columns: list[str]) -> pd.DataFrame:
    # Country-level exports have no coordinates or city names; keep them as NULL.
    return chunk.reindex(columns=columns)


def _load_blocks(conn: sqlite3.Connection, csv_path: Path, chunksize: int) -> int:
    total = 0
    reader = pd.read_csv(
        csv_path,
        usecols=lambda c: c in BLOCK_COLUMNS,
        dtype={"network": str},
        chunksize=chunksize,
    )
    for chunk in reader:
        chunk = _select(chunk, BLOCK_COLUMNS)
        chunk = chunk[chunk["network"].notna() & ~chunk["network"].str.contains(":", na=False)].copy()
        for col in _ID_COLUMNS:
            chunk[col] = pd.to_numeric(chunk[col], errors="coerce").astype("Int64")
        chunk.to_sql("blocks", conn, if_exists="append", index=False)
        total += len(chunk)
        logger.info("Loaded %d blocks...", total)
    return total


def _load_locations(conn: sqlite3.Connection, csv_path: Path, chunksize: int) -> int:
    total = 0
    reader = pd.read_csv(
        csv_path,
        usecols=lambda c: c in LOCATION_COLUMNS,
        chunksize=chunksize,
    )
    for chunk in reader:
        chunk = _select(chunk, LOCATION_COLUMNS).copy()
        chunk["geoname_id"] = pd.to_numeric(chunk["geoname_id"], errors="coerce").astype("Int64")
        chunk = chunk[chunk["geoname_id"].notna()].drop_duplicates("geoname_id")
        chunk.to_sql("locations", conn, if_exists="append", index=False)
        total += len(chunk)
    return total


def build_reference_db(
    blocks_csv: str | Path,
    locations_csv: str | Path,
    out_db: str | Path,
    chunksize: int = 200_000,
) -> tuple[int, int]:
    """
    Import IPv4 blocks and location names into a new SQLite file.

    Returns (blocks, locations) row counts. IPv6 rows are dropped.
    """
    blocks_csv, locations_csv, out_db = Path(blocks_csv), Path(locations_csv), Path(out_db)
    for path in (blocks_csv, locations_csv):
        if not path.is_file():
            raise FileNotFoundError(f"GeoLite2 CSV not found: {path}")
    if out_db.exists():
        raise FileExistsError(f"Reference database already exists: {out_db}")

    start = time.monotonic()
    conn = sqlite3.connect(str(out_db))
    try:
        conn.executescript(REFERENCE_SCHEMA)
        logger.info("Importing blocks from %s", blocks_csv)
        blocks = _load_blocks(conn, blocks_csv, chunksize)
        logger.info("Importing locations from %s", locations_csv)
        locations = _load_locations(conn, locations_csv, chunksize)
        conn.executescript(REFERENCE_INDEXES)
        conn.commit()
    except Exception:
        conn.close()
        out_db.unlink(missing_ok=True)
        raise
    conn.close()

    logger.info(
        "Reference database %s built: %d blocks, %d locations in %.2f seconds.",
        out_db, blocks, locations, time.monotonic() - start,
    )
    return blocks, locations
