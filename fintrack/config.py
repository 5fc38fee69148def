"""Runtime configuration for FinTrack.

Values come from the environment (optionally a local ``.env`` file).
"""

import os

from dotenv import load_dotenv

# Try loading .env (DATABASE_URL, TOKEN_TTL_MINUTES, etc.)
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./fintrack.db")

# Lifetime of issued API tokens in minutes; 0 or less disables expiry
TOKEN_TTL_MINUTES = int(os.getenv("TOKEN_TTL_MINUTES", "60"))

DEFAULT_TIMEZONE = os.getenv("FINTRACK_DEFAULT_TIMEZONE", "UTC")

LOG_LEVEL = os.getenv("FINTRACK_LOG_LEVEL", "INFO").upper()

SLOW_REQUEST_MS = float(os.getenv("FINTRACK_SLOW_REQUEST_MS", "1000"))

PAGE_SIZE = int(os.getenv("FINTRACK_PAGE_SIZE", "15"))
