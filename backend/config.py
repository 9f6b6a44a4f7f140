import logging
import os
from dataclasses import dataclass
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_DB_PATH = str(PROJECT_ROOT / "ats.db")
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class Settings:
    db_path: str = os.getenv("ATS_DB_PATH", DEFAULT_DB_PATH)
    commit_workers: int = max(1, int(os.getenv("ATS_COMMIT_WORKERS", "8") or 8))
    log_level: str = os.getenv("ATS_LOG_LEVEL", "INFO")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, str(level).upper(), logging.INFO), format=LOG_FORMAT)
