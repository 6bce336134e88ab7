"""Write resolved coordinates back onto every analytics row of an IP."""
from __future__ import annotations

import logging
import sqlite3
from typing import Iterable

from banalytiq.models import ResolvedGeo

logger = logging.getLogger(__name__)

# Compile-time default of SQLITE_MAX_VARIABLE_NUMBER before SQLite 3.32.
_FALLBACK_VARIABLE_LIMIT = 999
_GEO_COLUMNS = ("latitude", "longitude", "country", "city")
# Each IP binds (ip, value) per column plus once in the IN list.
_PARAMS_PER_IP = 2 * len(_GEO_COLUMNS) + 1


def _variable_limit(conn: sqlite3.Connection) -> int:
    getlimit = getattr(conn, "getlimit", None)
    if getlimit is None:
        return _FALLBACK_VARIABLE_LIMIT
    return getlimit(sqlite3.SQLITE_LIMIT_VARIABLE_NUMBER)


def build_update(results: list[ResolvedGeo]) -> tuple[str, list]:
    """
    Build one UPDATE ... SET col = CASE ip WHEN ? THEN ? ... END statement.

    Every IP and value is a bound parameter.
    """
    whens = " ".join(["WHEN ? THEN ?"] * len(results))
    assignments = ", ".join(f"{col} = CASE ip {whens} END" for col in _GEO_COLUMNS)
    placeholders = ", ".join(["?"] * len(results))
    sql = f"UPDATE analytics SET {assignments} WHERE ip IN ({placeholders})"

    params: list = []
    for col in _GEO_COLUMNS:
        for geo in results:
            params.extend((geo.ip, getattr(geo, col)))
    params.extend(geo.ip for geo in results)
    return sql, params


class BatchGeoUpdater:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def apply_batch(self, results: Iterable[ResolvedGeo]) -> int:
        """
        Apply a batch of results; returns the number of distinct IPs written.

        A failing statement is logged and the whole batch is undone and counts
        as 0, including statements of the same batch that already ran.
        """
        by_ip = {geo.ip: geo for geo in results}
        if not by_ip:
            return 0
        unique = list(by_ip.values())

        per_statement = max(1, _variable_limit(self.conn) // _PARAMS_PER_IP)
        self.conn.execute("SAVEPOINT geo_batch")
        try:
            for start in range(0, len(unique), per_statement):
                sql, params = build_update(unique[start:start + per_statement])
                self.conn.execute(sql, params)
        except sqlite3.Error as exc:
            logger.error("Batch update of %d IPs failed: %s", len(unique), exc)
            self._undo()
            return 0
        self.conn.execute("RELEASE geo_batch")
        return len(unique)

    def _undo(self) -> None:
        # Some errors end the enclosing transaction, and the savepoint with it.
        if self.conn.in_transaction:
            self.conn.execute("ROLLBACK TO geo_batch")
            self.conn.execute("RELEASE geo_batch")
