from __future__ import annotations
import os
from pathlib import Path

# --- Base paths ---
ROOT_DIR = Path(__file__).resolve().parents[1]
TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

def data_dir() -> Path:
    """Data directory: $TIMEBILL_DATA_DIR when set, otherwise <project>/data."""
    val = os.environ.get("TIMEBILL_DATA_DIR")
    if val:
        return Path(val.strip().strip('"').strip("'")).expanduser()
    return ROOT_DIR / "data"

# --- Collections (one versioned JSON file each) ---
CLIENTS_KEY = "clients_v6"
ENTRIES_KEY = "work_entries_v6"
INVOICES_KEY = "invoices_v3"
SETTINGS_KEY = "settings_v3"

# --- Rounding ---
DEFAULT_ROUNDING_INCREMENT_MINUTES = 6
MIN_ROUNDING_INCREMENT_MINUTES = 1
MAX_ROUNDING_INCREMENT_MINUTES = 30

# --- Clients ---
IMPORTED_CLIENT_NAME = "Imported Client"
UNKNOWN_CLIENT_NAME = "Unknown Client"

# --- Import CSV ---
IMPORT_DATETIME_FORMAT = "%Y-%m-%d %H:%M"
DUPLICATE_TIME_TOLERANCE_SECONDS = 1.0
DUPLICATE_RATE_TOLERANCE = 0.0001
