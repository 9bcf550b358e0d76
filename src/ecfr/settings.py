import os

from dotenv import load_dotenv

load_dotenv()

# Database
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///data/ecfr.db")

# eCFR API endpoints
ECFR_BASE_URL = os.environ.get("ECFR_BASE_URL", "https://www.ecfr.gov")
VERSIONER_API_URL = os.environ.get("VERSIONER_API_URL", f"{ECFR_BASE_URL}/api/versioner/v1")
ADMIN_API_URL = os.environ.get("ADMIN_API_URL", f"{ECFR_BASE_URL}/api/admin/v1")

# Full-title downloads are multi-megabyte and the upstream regularly times out
FETCH_TIMEOUT = float(os.environ.get("FETCH_TIMEOUT", "600"))
FETCH_MAX_RETRIES = int(os.environ.get("FETCH_MAX_RETRIES", "3"))
FETCH_INITIAL_DELAY = float(os.environ.get("FETCH_INITIAL_DELAY", "60"))
FETCH_MAX_DELAY = float(os.environ.get("FETCH_MAX_DELAY", "600"))

# Metadata endpoints respond quickly
METADATA_TIMEOUT = float(os.environ.get("METADATA_TIMEOUT", "60"))

# HTTP response cache
HTTP_CACHE_ENABLED = os.environ.get("HTTP_CACHE_ENABLED", "true").lower() == "true"
HTTP_CACHE_DIR = os.environ.get("HTTP_CACHE_DIR", None)
HTTP_CACHE_TTL = int(os.environ.get("HTTP_CACHE_TTL", "86400"))

# Local title-{n}.xml files for offline ingestion
LOCAL_DATA_DIR = os.environ.get("LOCAL_DATA_DIR", os.path.join("data", "raw", "titles"))

# Historical backfill checkpoints
CHECKPOINT_DIR = os.environ.get("CHECKPOINT_DIR", None)

# Titles processed concurrently. Work within a single title is always sequential.
MAX_WORKERS = int(os.environ.get("MAX_WORKERS", "1"))

# Title 35 (Panama Canal) is reserved and rejected by the full-text endpoint
RESERVED_TITLES = {35}
