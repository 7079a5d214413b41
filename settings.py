"""
Runtime configuration, read once from the environment.

Every path can be overridden per call (``history_dir=...``); these are only
the defaults the driver scripts and the API fall back to.
"""
import os

# ── Output layout ──────────────────────────────────────────
OUTPUT_DIR = os.environ.get("OUTPUT_DIR", "output")
HISTORY_DIR = os.environ.get("HISTORY_DIR", os.path.join(OUTPUT_DIR, "history"))
TRENDS_DIR = os.environ.get("TRENDS_DIR", os.path.join(OUTPUT_DIR, "trends"))
COMPANIES_FILE = os.environ.get("COMPANIES_FILE", "range-companies.json")
SELECTED_STOCKS_PATH = os.environ.get(
    "SELECTED_STOCKS_PATH", os.path.join(OUTPUT_DIR, "selected-stocks.json")
)

# ── Remote sources ─────────────────────────────────────────
SHIKIHO_API_URL = os.environ.get(
    "SHIKIHO_API_URL", "https://api-shikiho.toyokeizai.net/stocks/v1/stocks"
)
KABUTAN_URL = os.environ.get("KABUTAN_URL", "https://kabutan.jp/stock/")
USER_AGENT = os.environ.get(
    "SCRAPE_USER_AGENT",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36",
)

# Seconds between outbound requests, and per-request timeout.
REQUEST_INTERVAL = float(os.environ.get("REQUEST_INTERVAL", "0.5"))
REQUEST_TIMEOUT = float(os.environ.get("REQUEST_TIMEOUT", "10"))

DEFAULT_SERIES_POINTS = int(os.environ.get("DEFAULT_SERIES_POINTS", "60"))

# Companies fetched within this many days are reused by fetch_range.py.
REFRESH_AFTER_DAYS = int(os.environ.get("REFRESH_AFTER_DAYS", "30"))
