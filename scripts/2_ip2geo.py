#!/usr/bin/env python3
"""
IP geolocation pipeline:
- Optionally merges satellite databases (<name>.<timestamp>.db) into the base store.
- Resolves visit IPs that still lack coordinates against the GeoLite2 database.
Run with: poetry run python scripts/2_ip2geo.py banalytiq.db --merge
"""
import sys
from pathlib import Path

# Ensure src/ is on the path
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))
sys.path.insert(0, str(ROOT))

from banalytiq.cli import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
