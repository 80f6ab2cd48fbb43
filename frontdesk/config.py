import os

from dotenv import load_dotenv

load_dotenv()


def _env_or(key: str, default: str) -> str:
    v = os.getenv(key)
    return v if v is not None else default


def _env_flag(key: str, default: bool) -> bool:
    v = os.getenv(key)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "on")


TEST_MODE = _env_flag("FRONTDESK_TEST_MODE", True)  # set False for live system

if TEST_MODE:
    DB_PATH = _env_or("FRONTDESK_DB_PATH", "hotel_desk_TEST.db")
    DATA_ROOT = _env_or("FRONTDESK_DATA_ROOT", "data/desk-test")
else:
    DB_PATH = _env_or("FRONTDESK_DB_PATH", "hotel_desk.db")
    DATA_ROOT = _env_or("FRONTDESK_DATA_ROOT", "data/desk")

# Remote API base, e.g. https://hotel-backend.example.com/api. Unset = local only.
API_BASE = os.getenv("FRONTDESK_API_BASE") or None

ADMIN_PASSWORD = _env_or("FRONTDESK_ADMIN_PASSWORD", "1234")
FLUSH_INTERVAL = float(_env_or("FRONTDESK_FLUSH_INTERVAL", "5"))
POLL_INTERVAL = float(_env_or("FRONTDESK_POLL_INTERVAL", "2.5"))
HTTP_TIMEOUT = float(_env_or("FRONTDESK_HTTP_TIMEOUT", "10"))

# Hotel layout: room number = floor * 100 + index
FLOORS = 5
ROOMS_PER_FLOOR = 4
DEFAULT_RATE = 2500

# Cap for lists written to the shared snapshot
MAX_SNAPSHOT_ITEMS = 500

PAYMENT_MODES = ["Cash", "GPay"]

# Remote document store (server side)
MONGO_URI = os.getenv("MONGO_URI")
MONGO_DB_NAME = _env_or("DB_NAME", "hotel_surya")
MONGO_COLLECTION = _env_or("COLLECTION", "app_state")
PORT = int(_env_or("PORT", "4000"))
MONGO_TIMEOUT_MS = int(_env_or("MONGO_TIMEOUT_MS", "5000"))
