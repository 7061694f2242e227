import os
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parents[2]

SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")

DB_PATH = Path(os.getenv("DB_PATH", str(BASE_DIR / "school_portal.db")))

ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")

SOURCE_FETCH_TIMEOUT = float(os.getenv("SOURCE_FETCH_TIMEOUT", "5"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
