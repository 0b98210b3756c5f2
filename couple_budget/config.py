"""Configuration management for the couple budget tracker.

This module centralizes all configuration values including paths,
defaults, and environment variable overrides.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, Optional

# Base project root - assumes this file is in couple_budget/
_PROJECT_ROOT = Path(__file__).parent.parent.resolve()

# Data directories
DATA_DIR = Path(os.getenv("COUPLE_BUDGET_DATA_DIR", _PROJECT_ROOT / "data"))
EXPORT_DIR = Path(os.getenv("COUPLE_BUDGET_EXPORT_DIR", DATA_DIR / "exports"))

# Database
DB_PATH = Path(
    os.getenv("COUPLE_BUDGET_DB_PATH", DATA_DIR / "budget.db")
).resolve()

# Due-expense sweep interval in seconds (hourly by default)
SWEEP_INTERVAL_SECONDS = float(os.getenv("COUPLE_BUDGET_SWEEP_INTERVAL", "3600"))

LOG_LEVEL = os.getenv("COUPLE_BUDGET_LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

DEFAULT_SALAIRES: Dict[str, float] = {
    "pilou": 6000.0,
    "doudou": 10000.0,
}

DEFAULT_BUDGETS: Dict[str, float] = {
    "alimentation": 500.0,
    "loyer": 1200.0,
    "abonnements": 200.0,
    "habitation": 300.0,
    "sorties": 400.0,
    "credits": 800.0,
    "epargne": 1000.0,
    "transports": 300.0,
}


def ensure_data_directories() -> None:
    """Create all required data directories if they don't exist."""
    for directory in [DATA_DIR, EXPORT_DIR, DB_PATH.parent]:
        directory.mkdir(parents=True, exist_ok=True)


def configure_logging(level: Optional[str] = None) -> None:
    """Install a basic root handler. Only entry points should call this."""
    logging.basicConfig(level=(level or LOG_LEVEL).upper(), format=LOG_FORMAT)


def get_db_path() -> str:
    """Get the database path as a string."""
    return str(DB_PATH)
