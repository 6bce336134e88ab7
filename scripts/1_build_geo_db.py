#!/usr/bin/env python3
"""
Build the GeoLite2 reference database used by ip2geo:
- Reads GeoLite2-City-Blocks-IPv4.csv and GeoLite2-City-Locations-en.csv.
- Writes blocks + locations tables (with lookup indexes) into one SQLite file.
"""
import argparse
import logging
import sys
from pathlib import Path

# Ensure src/ is on the path
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))
sys.path.insert(0, str(ROOT))

from banalytiq.reference import build_reference_db  # noqa: E402
from config.settings import settings  # noqa: E402

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Import GeoLite2 City CSVs into SQLite.")
    parser.add_argument("csv_dir", type=Path, help="Unpacked GeoLite2-City-CSV_<date> folder.")
    parser.add_argument(
        "--output",
        type=Path,
        default=settings.geo_db,
        help=f"Output SQLite file. Default: {settings.geo_db}",
    )
    return parser


def main():
    args = build_arg_parser().parse_args()
    blocks_csv = args.csv_dir / "GeoLite2-City-Blocks-IPv4.csv"
    locations_csv = args.csv_dir / "GeoLite2-City-Locations-en.csv"
    blocks, locations = build_reference_db(blocks_csv, locations_csv, args.output)
    print(f"Wrote {blocks} blocks and {locations} locations to {args.output}")


if __name__ == "__main__":
    main()
