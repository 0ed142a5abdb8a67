# teeprice/config.py

import os

from dotenv import load_dotenv

# ------------------------------------------------------------------
# ENV & CONFIG
# ------------------------------------------------------------------

load_dotenv()


def _env_float(key: str, default: float) -> float:
    raw = str(os.getenv(key, "") or "").strip()
    if not raw:
        return float(default)
    try:
        return float(raw)
    except ValueError:
        return float(default)


def _env_int(key: str, default: int) -> int:
    raw = str(os.getenv(key, "") or "").strip()
    if not raw:
        return int(default)
    try:
        return int(float(raw))
    except ValueError:
        return int(default)


# Money
TAX_RATE = _env_float("PRICING_TAX_RATE", 0.16)
CURRENCY = (os.getenv("PRICING_CURRENCY") or "USD").strip().upper()
LOCALE = (os.getenv("PRICING_LOCALE") or "es-MX").strip()

# Rule engine
# Every calculated price ends on a multiple of this many currency units.
FINAL_ROUND_TO = max(1, _env_int("PRICING_FINAL_ROUND_TO", 5))

# Cache
CACHE_TTL_MINUTES = max(0, _env_int("PRICING_CACHE_TTL_MINUTES", 10))
CALENDAR_TTL_HOURS = max(0, _env_int("PRICING_CALENDAR_TTL_HOURS", 24))
CALENDAR_PLAYERS = 4
CALENDAR_LEAD_TIME_HOURS = 24

# Checkout quotes
QUOTE_TTL_MINUTES = max(1, _env_int("QUOTE_TTL_MINUTES", 10))
QUOTE_SECRET = os.getenv("QUOTE_SECRET", "CHANGE_ME")

# Storage
DATABASE_URL = os.getenv("DATABASE_URL")
SQLITE_FALLBACK_URL = os.getenv("SQLITE_FALLBACK_URL", "sqlite:///./teeprice.dev.db")
