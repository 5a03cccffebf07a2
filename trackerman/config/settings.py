# trackerman/config/settings.py

"""Central static configuration for the trackerman price tracker."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Central static configuration for the trackerman price tracker."""

    # --- Marketplace ---
    MARKET_HOSTS: frozenset[str] = frozenset({
        "steamcommunity.com",
        "www.steamcommunity.com",
    })
    MARKET_BASE_URL: str = "https://steamcommunity.com"
    SEARCH_PATH: str = "/market/search"
    LISTINGS_PATH_PREFIX: str = "/market/listings/"
    SEARCH_RENDER_URL: str = (
        "https://steamcommunity.com/market/search/render"
        "?appid={appid}&norender=1&count={count}&query={query}"
    )
    DEFAULT_APP_ID: str = "730"
    SEARCH_PAGE_SIZE: int = 10          # Minimum results requested per search

    # --- Scraping defaults (runtime values live in TrackerSettings) ---
    REQUEST_TIMEOUT_MS: int = 10_000
    REQUEST_DELAY_MS: int = 1_000
    MAX_RETRIES: int = 3

    # --- Scheduler defaults ---
    SCHEDULER_INTERVAL_MINUTES: int = 30
    SCHEDULER_JOB_ID: str = "trackerman-price-cycle"

    # --- Notifications ---
    WEBHOOK_TIMEOUT: int = 10           # Seconds before a webhook post gives up
    WEBHOOK_HOSTS: frozenset[str] = frozenset({
        "discord.com",
        "discordapp.com",
    })
    DEFAULT_WEBHOOK_URL: str | None = (
        os.getenv("DISCORD_WEBHOOK_URL") or None
    )
    NOTIFICATION_FOOTER: str = "Trackerman - CS2 Item Tracker"

    # --- Browser Impersonation ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": "application/json,text/html;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "sec-ch-ua": (
            '"Google Chrome";v="131", '
            '"Chromium";v="131", '
            '"Not_A Brand";v="24"'
        ),
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": '"Windows"',
    }

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    SELECTORS_PATH: Path = BASE_DIR / "trackerman" / "config" / "selectors.json"
    DATA_DIR: Path = Path(
        os.getenv("TRACKERMAN_DATA_DIR") or BASE_DIR / "data"
    )
    LOGS_DIR: Path = Path(
        os.getenv("TRACKERMAN_LOGS_DIR") or BASE_DIR / "logs"
    )
    ITEMS_DB_NAME: str = "items.db"
    SETTINGS_FILE_NAME: str = "settings.json"
