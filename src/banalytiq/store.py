"""
SQLite helpers for the analytics store.

The analytics table is keyed by (ip, dt, url). Rows are inserted once with
empty geo fields and later updated in place by the enrichment job.
"""
from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path

from banalytiq.models import VisitRecord

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS analytics (
    ip TEXT NOT NULL DEFAULT '',
    dt INTEGER NOT NULL,
    url TEXT NOT NULL,
    referer TEXT DEFAULT '',
    ua TEXT DEFAULT '',
    status INTEGER DEFAULT NULL,
    country TEXT DEFAULT NULL,
    city TEXT DEFAULT NULL,
    latitude REAL DEFAULT NULL,
    longitude REAL DEFAULT NULL,
    PRIMARY KEY (ip, dt, url)
);
CREATE INDEX IF NOT EXISTS idx_analytics_dt ON analytics(dt);
CREATE INDEX IF NOT EXISTS idx_analytics_country ON analytics(country);
"""

# Rows still waiting for coordinates. Older writers stored '' instead of NULL.
UNRESOLVED_WHERE = (
    "(latitude IS NULL OR longitude IS NULL OR latitude = '' OR longitude = '') "
    "AND ip != ''"
)

INSERT_VISIT = (
    "INSERT INTO analytics (ip, dt, url, referer, ua, status) "
    "VALUES (?, ?, ?, ?, ?, ?)"
)

# Serializes writers inside this process; held only for the insert itself.
_WRITE_LOCK = threading.Lock()


def connect(path: str | Path, *, readonly: bool = False) -> sqlite3.Connection:
    """
    Open an existing SQLite file in autocommit mode.

    Transactions are opened explicitly by the callers (BEGIN/COMMIT) so batch
    boundaries stay visible in the code that owns them.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"SQLite database not found: {path}")

    if readonly:
        conn = sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True, isolation_level=None)
    else:
        conn = sqlite3.connect(str(path), isolation_level=None)
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute("PRAGMA cache_size = 50000")
    conn.row_factory = sqlite3.Row
    return conn


def create_db(path: str | Path) -> Path:
    """Create an analytics store at `path`; an existing file is left alone."""
    path = Path(path)
    if path.exists():
        logger.info("Database %s already exists; skipping create.", path)
        return path

    conn = sqlite3.connect(str(path))
    try:
        conn.execute("PRAGMA journal_mode = WAL")
        conn.executescript(SCHEMA)
        conn.commit()
    finally:
        conn.close()
    logger.info("Created analytics database %s", path)
    return path


def anonymize_ip(ip: str) -> str:
    """Zero the last octet of a dotted-quad address."""
    octets = ip.split(".")
    if len(octets) != 4:
        return ip
    octets[3] = "0"
    return ".".join(octets)


def record_visit(conn: sqlite3.Connection, visit: VisitRecord) -> bool:
    """
    Insert one visit without geo data. Returns False when the key already exists;
    the stored row is never overwritten.
    """
    with _WRITE_LOCK:
        cur = conn.execute(
            "INSERT OR IGNORE INTO analytics (ip, dt, url, referer, ua, status) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (visit.ip, visit.dt, visit.url, visit.referer, visit.ua, visit.status),
        )
    return cur.rowcount == 1


def load_keys(conn: sqlite3.Connection) -> set[tuple[str, int, str]]:
    return {
        (row[0], row[1], row[2])
        for row in conn.execute("SELECT ip, dt, url FROM analytics")
    }


def unresolved_ips(conn: sqlite3.Connection) -> list[str]:
    """Distinct IPs with at least one row lacking coordinates."""
    return [
        row[0]
        for row in conn.execute(f"SELECT DISTINCT ip FROM analytics WHERE {UNRESOLVED_WHERE}")
    ]


def count_unresolved(conn: sqlite3.Connection) -> tuple[int, int]:
    """(rows, distinct IPs) still needing geo data."""
    row = conn.execute(
        f"SELECT COUNT(*), COUNT(DISTINCT ip) FROM analytics WHERE {UNRESOLVED_WHERE}"
    ).fetchone()
    return row[0], row[1]
