"""Configuration for laundrytrack.

All values are read from the environment at import time.
"""

import os
from pathlib import Path

# Base directory for order and tracking records
_default_data_dir = Path(__file__).parent.parent.parent / "data"
DATA_DIR = Path(os.environ.get("LAUNDRYTRACK_DATA_DIR", _default_data_dir))
ORDERS_DIR = "orders"
TRACKING_DIR = "tracking"

# Logging
LOG_DIR = Path(os.environ.get("LAUNDRYTRACK_LOG_DIR", DATA_DIR / "logs"))
LOG_FILE = os.environ.get("LAUNDRYTRACK_LOG_FILE", "laundrytrack.log")
LOG_LEVEL = os.environ.get("LAUNDRYTRACK_LOG_LEVEL", "INFO").upper()

# Change-stream polling (orders and tracking watchers)
POLL_SECONDS = float(os.environ.get("LAUNDRYTRACK_POLL_SECONDS", "1.0"))

# Customer notifications
PICKUP_DEADLINE_DAYS = int(os.environ.get("LAUNDRYTRACK_PICKUP_DEADLINE_DAYS", "30"))
BUSINESS_NAME = os.environ.get("LAUNDRYTRACK_BUSINESS_NAME", "Lavandería El Cobre")
TRACKING_URL = os.environ.get(
    "LAUNDRYTRACK_TRACKING_URL", "https://lavanderia-el-cobre-spa.vercel.app"
)

# Phone normalization
COUNTRY_CODE = os.environ.get("LAUNDRYTRACK_COUNTRY_CODE", "56")
