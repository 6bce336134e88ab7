from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os

from dotenv import load_dotenv

load_dotenv()

@dataclass
class Settings:
    analytics_db: Path = Path(os.environ.get("BANALYTIQ_DB", "banalytiq.db"))
    geo_db: Path = Path(os.environ.get("GEO_DB", "geolite2.db"))
    satellite_dir: Path | None = Path(os.environ["SATELLITE_DIR"]) if os.environ.get("SATELLITE_DIR") else None
    batch_size: int = int(os.environ.get("GEO_BATCH_SIZE", "1000"))
    log_dir: Path = Path(os.environ.get("LOG_DIR", "logs"))

settings = Settings()
