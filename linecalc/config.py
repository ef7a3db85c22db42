import os
from pathlib import Path

# --- Configuration ---
# Every setting can be overridden with a LINECALC_* environment variable.


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


DEBUG_MODE = _env_flag("LINECALC_DEBUG", False)
LOG_LEVEL = os.environ.get("LINECALC_LOG_LEVEL", "DEBUG" if DEBUG_MODE else "WARNING").upper()
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

# Free endpoint, no API key required; rates are quoted per 1 USD
EXCHANGE_RATE_API_URL = os.environ.get("LINECALC_RATES_URL", "https://api.exchangerate-api.com/v4/latest/USD")
EXCHANGE_RATE_TIMEOUT = float(os.environ.get("LINECALC_RATES_TIMEOUT", "5"))
EXCHANGE_RATE_CACHE_TTL = int(os.environ.get("LINECALC_RATES_TTL", "3600"))  # Cache exchange rates for 1 hour
OFFLINE_MODE = _env_flag("LINECALC_OFFLINE", False)

WEB_HOST = os.environ.get("LINECALC_HOST", "0.0.0.0")
WEB_PORT = int(os.environ.get("LINECALC_PORT", "5200"))

HISTORY_FILE = Path(os.environ.get("LINECALC_HISTORY", Path.home() / ".linecalc_history"))
