from __future__ import annotations

from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .config import load_settings
from .db import initialize
from .logging_utils import configure_logging


def run_bootstrap(db_path: Optional[Path] = None) -> int:
    with initialize(db_path) as database:
        return database.schema_version()


if __name__ == "__main__":
    load_dotenv()
    # Re-read the environment so values from .env win over the import-time defaults.
    current = load_settings()
    configure_logging(current.log_level)
    version = run_bootstrap(current.db_path)
    print(f"Bootstrap complete. Database: {current.db_path} Schema version: {version}")
