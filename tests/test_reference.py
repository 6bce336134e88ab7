import sqlite3

import pytest

from banalytiq import store
from banalytiq.reference import build_reference_db
from banalytiq.resolver import BlockResolver

BLOCKS_CSV = """\
network,geoname_id,registered_country_geoname_id,represented_country_geoname_id,is_anonymous_proxy,is_satellite_provider,postal_code,latitude,longitude,accuracy_radius
98.149.168.0/21,5368361,6252001,,0,0,90012,34.0522,-118.2437,20
86.104.252.0/23,,798549,,0,0,,44.4268,26.1025,100
45.10.0.0/16,,,,0,0,,10.5,20.25,1000
2001:db8::/32,2988507,3017382,,0,0,,48.8566,2.3522,100
"""

LOCATIONS_CSV = """\
geoname_id,locale_code,continent_code,continent_name,country_iso_code,country_name,subdivision_1_iso_code,subdivision_1_name,subdivision_2_iso_code,subdivision_2_name,city_name,metro_code,time_zone,is_in_european_union
5368361,en,NA,"North America",US,"United States",CA,California,,,"Los Angeles",803,America/Los_Angeles,0
6252001,en,NA,"North America",US,"United States",,,,,,,,0
798549,en,EU,Europe,RO,Romania,,,,,,,,1
"""


@pytest.fixture
def csv_pair(tmp_path):
    blocks = tmp_path / "GeoLite2-City-Blocks-IPv4.csv"
    locations = tmp_path / "GeoLite2-City-Locations-en.csv"
    blocks.write_text(BLOCKS_CSV, encoding="utf-8")
    locations.write_text(LOCATIONS_CSV, encoding="utf-8")
    return blocks, locations


def test_build_reference_db(tmp_path, csv_pair):
    out = tmp_path / "geolite2.db"
    assert build_reference_db(*csv_pair, out, chunksize=2) == (3, 3)

    conn = sqlite3.connect(str(out))
    try:
        blocks = conn.execute("SELECT * FROM blocks ORDER BY rowid").fetchall()
        indexes = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'index'")}
    finally:
        conn.close()

    assert blocks[0] == ("98.149.168.0/21", 34.0522, -118.2437, 5368361, 6252001, None)
    assert blocks[1] == ("86.104.252.0/23", 44.4268, 26.1025, None, 798549, None)
    assert {"idx_blocks_network", "idx_locations_geoname"} <= indexes


def test_built_store_resolves(tmp_path, csv_pair):
    out = tmp_path / "geolite2.db"
    build_reference_db(*csv_pair, out)

    conn = store.connect(out, readonly=True)
    try:
        resolver = BlockResolver(conn)
        la = resolver.resolve("98.149.170.0")
        ro = resolver.resolve("86.104.253.0")
        bare = resolver.resolve("45.10.1.0")
    finally:
        conn.close()

    assert (la.country, la.city) == ("United States", "Los Angeles")
    assert (ro.country, ro.city) == ("Romania", None)
    assert (bare.latitude, bare.country) == (10.5, None)


def test_refuses_to_overwrite(tmp_path, csv_pair):
    out = tmp_path / "geolite2.db"
    out.write_bytes(b"")
    with pytest.raises(FileExistsError):
        build_reference_db(*csv_pair, out)


def test_missing_csv(tmp_path, csv_pair):
    with pytest.raises(FileNotFoundError):
        build_reference_db(tmp_path / "nope.csv", csv_pair[1], tmp_path / "out.db")
    assert not (tmp_path / "out.db").exists()
