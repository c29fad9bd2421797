import logging
import os
from pathlib import Path

from .constants import DATA_DIR, DB_FILE_NAME

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_PATH = BASE_DIR / DATA_DIR

# POS_LEDGER_DB overrides the default data/pos_ledger.db location
DB_PATH = Path(os.environ.get("POS_LEDGER_DB", DATA_PATH / DB_FILE_NAME))

LOG_LEVEL = getattr(logging, os.environ.get("POS_LEDGER_LOG_LEVEL", "INFO").upper(), logging.INFO)
