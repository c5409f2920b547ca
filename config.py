import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

# Published spreadsheets: one for 2024-12..2025-12, a new one from 2026.
SHEET_BASE_URL = os.getenv(
    "SHEET_BASE_URL",
    "https://docs.google.com/spreadsheets/d/e/"
    "2PACX-1vSW5wXPoqAp90su9NGIwIojj3QbpUbPWGOArmUp1iykP-8vjcF1E7V_A_ExsAhNeA/pub",
).strip()
SHEET_2026_BASE_URL = os.getenv(
    "SHEET_2026_BASE_URL",
    "https://docs.google.com/spreadsheets/d/e/"
    "2PACX-1vS9B_AT9_Cmokg5gAXHRzIkQFQMxzgutcEjP-ywamo0mpU7I4Ks6GV8zAzHaDxcLw/pub",
).strip()
NEW_SHEET_FROM_YEAR = int(os.getenv("NEW_SHEET_FROM_YEAR", "2026"))

SHEET_GIDS_FILE: Optional[str] = os.getenv("SHEET_GIDS_FILE", "").strip() or None

REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "15"))
CACHE_TTL = int(os.getenv("CACHE_TTL", "300"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_JSON = os.getenv("LOG_JSON", "1").strip().lower() not in {"0", "false", "no", ""}
