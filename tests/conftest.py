import sqlite3
from pathlib import Path

import pytest

from banalytiq import store
from banalytiq.models import VisitRecord
from banalytiq.reference import REFERENCE_INDEXES, REFERENCE_SCHEMA

# (network, latitude, longitude, geoname_id, registered, represented)
BLOCKS = [
    ("98.149.168.0/21", 34.0522, -118.2437, 5368361, 6252001, None),
    ("86.104.252.0/23", 44.4268, 26.1025, None, 798549, None),
    ("81.192.0.0/10", 48.8566, 2.3522, 2988507, 3017382, None),
    ("45.10.0.0/16", 10.5, 20.25, None, None, None),
    ("23.5.0.0/16", -33.8688, 151.2093, 999999, None, None),
    ("60.1.0.0/16", 1.0, 1.0, None, None, None),
    ("60.1.2.0/24", 2.0, 2.0, None, None, None),
    ("70.70.0.0/16", None, None, 5368361, None, None),
]

LOCATIONS = [
    (5368361, "United States", "Los Angeles"),
    (6252001, "United States", None),
    (798549, "Romania", None),
    (2988507, "France", "Paris"),
]


def insert_visits(path: Path, rows) -> None:
    conn = sqlite3.connect(str(path))
    try:
        conn.executemany(
            "INSERT INTO analytics (ip, dt, url, referer, ua, status, country, city, latitude, longitude) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [
                (r.ip, r.dt, r.url, r.referer, r.ua, r.status, r.country, r.city, r.latitude, r.longitude)
                for r in rows
            ],
        )
        conn.commit()
    finally:
        conn.close()


def fetch_rows(path: Path) -> list[tuple]:
    conn = sqlite3.connect(str(path))
    try:
        return conn.execute(
            "SELECT ip, dt, url, country, city, latitude, longitude FROM analytics ORDER BY ip, dt, url"
        ).fetchall()
    finally:
        conn.close()


@pytest.fixture
def reference_db(tmp_path) -> Path:
    path = tmp_path / "geolite2.db"
    conn = sqlite3.connect(str(path))
    try:
        conn.executescript(REFERENCE_SCHEMA)
        conn.executemany("INSERT INTO blocks VALUES (?, ?, ?, ?, ?, ?)", BLOCKS)
        conn.executemany("INSERT INTO locations VALUES (?, ?, ?)", LOCATIONS)
        conn.executescript(REFERENCE_INDEXES)
        conn.commit()
    finally:
        conn.close()
    return path


@pytest.fixture
def reference(reference_db):
    conn = store.connect(reference_db, readonly=True)
    yield conn
    conn.close()


@pytest.fixture
def analytics_db(tmp_path) -> Path:
    return store.create_db(tmp_path / "banalytiq.db")


@pytest.fixture
def analytics(analytics_db):
    conn = store.connect(analytics_db)
    yield conn
    conn.close()


@pytest.fixture
def make_store(tmp_path):
    """Create an analytics store named `name` in tmp_path holding `rows`."""

    def _make(name: str, rows=()) -> Path:
        path = store.create_db(tmp_path / name)
        insert_visits(path, rows)
        return path

    return _make


def visit(ip, dt, url, **kwargs) -> VisitRecord:
    return VisitRecord(ip=ip, dt=dt, url=url, **kwargs)
