"""
RUNTIME CONFIGURATION

Purpose:
- Read deployment settings from the environment
- Provide defaults suitable for local development
- Configure logging once per process

Requirements:
• Never hardcode API keys (use os.getenv)
• No side effects at import time besides reading env
"""

import logging
import os
from pathlib import Path

# Storage
DATA_DIR = Path(os.getenv("SHIPEXPRESS_DATA_DIR", "data/logs"))
BLOB_DIR = Path(os.getenv("SHIPEXPRESS_BLOB_DIR", "data/blobs"))
BLOB_BASE_URL = os.getenv("SHIPEXPRESS_BLOB_BASE_URL")

# Shipments created from the customer portal leave from this city
ORIGIN_CITY = os.getenv("SHIPEXPRESS_ORIGIN_CITY", "Accra")

# Hosted database and file storage (Supabase)
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")
SUPABASE_BUCKET = os.getenv("SUPABASE_BUCKET", "shipment-media")

# Reverse geocoding
NOMINATIM_URL = os.getenv("NOMINATIM_URL", "https://nominatim.openstreetmap.org/reverse")
GEOCODER_USER_AGENT = os.getenv("GEOCODER_USER_AGENT", "ShipExpress-App/1.0")

# Remote calls
API_TIMEOUT = int(os.getenv("API_TIMEOUT", "10"))  # seconds
MAX_RETRIES = int(os.getenv("MAX_RETRIES", "2"))

LOG_LEVEL = os.getenv("SHIPEXPRESS_LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = None) -> None:
    """Configure root logging for scripts and long-running processes."""
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO),
        format=LOG_FORMAT,
    )
