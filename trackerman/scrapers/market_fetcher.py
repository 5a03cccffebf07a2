# trackerman/scrapers/market_fetcher.py

"""Fetch one tracked-item URL from the Steam Community Market."""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import parse_qs, quote_plus, unquote, urlparse

import cloudscraper  # type: ignore[import-untyped]
from curl_cffi import requests as curl_requests

from trackerman.config.settings import Settings
from trackerman.errors import FetchError, ValidationError
from trackerman.models.exterior import Exterior
from trackerman.models.fetch_options import FetchOptions
from trackerman.models.market_listing import MarketListing
from trackerman.models.tracker_settings import ScrapingSettings
from trackerman.parsers.exterior import ClassifiedName, classify_label
from trackerman.scrapers.listing_extractor import ListingExtractor

logger = logging.getLogger("trackerman.fetcher")


class UrlKind(Enum):
    """Shape of a tracked-item URL, which decides the extraction strategy."""

    LISTING = "listing"
    SEARCH = "search"


@dataclass(frozen=True)
class MarketUrl:
    """A validated market URL resolved to its kind and item label."""

    kind: UrlKind
    url: str
    app_id: str
    label: str


def _classify(url: str) -> MarketUrl | None:
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https"):
        return None
    if parsed.hostname not in Settings.MARKET_HOSTS:
        return None

    if parsed.path == Settings.SEARCH_PATH:
        params = parse_qs(parsed.query, keep_blank_values=True)
        if "appid" not in params or "q" not in params:
            return None
        return MarketUrl(
            kind=UrlKind.SEARCH,
            url=url,
            app_id=params["appid"][0],
            label=params["q"][0],
        )

    if parsed.path.startswith(Settings.LISTINGS_PATH_PREFIX):
        rest = parsed.path[len(Settings.LISTINGS_PATH_PREFIX):]
        app_id, _, hash_name = rest.partition("/")
        hash_name = hash_name.rstrip("/")
        if not app_id.isdigit() or not hash_name:
            return None
        return MarketUrl(
            kind=UrlKind.LISTING,
            url=url,
            app_id=app_id,
            label=unquote(hash_name),
        )
    return None


def is_valid_market_url(url: str) -> bool:
    """True for a search URL with ``appid`` and ``q``, or a listing URL."""
    return _classify(url) is not None


def classify_url(url: str) -> MarketUrl:
    """Resolve *url* to a :class:`MarketUrl` or raise ``ValidationError``."""
    market_url = _classify(url)
    if market_url is None:
        raise ValidationError(f"Invalid Steam market URL: {url}")
    return market_url


def parse_market_url(
    url: str,
    exterior_override: "str | Exterior | None" = None,
) -> ClassifiedName:
    """The (name, exterior) identity a tracked URL resolves to."""
    market_url = classify_url(url)
    if not market_url.label.strip():
        raise ValidationError(
            f"Invalid Steam market URL: missing item name in {url}"
        )
    return classify_label(market_url.label, exterior_override)


class MarketFetcher:
    """Issues one request per fetch and runs the matching extraction.

    The ``max_retries`` budget is spent inside :meth:`_fetch_get`; if it
    runs out, a single cloudscraper attempt is made before the failure
    surfaces as one :class:`FetchError`.  Scheduling-level retries are
    not this class's concern.
    """

    def __init__(
        self,
        scraping: ScrapingSettings | None = None,
        extractor: ListingExtractor | None = None,
    ) -> None:
        self.scraping = scraping or ScrapingSettings()
        self.extractor = extractor or ListingExtractor()
        self.session = curl_requests.Session(
            impersonate=Settings.IMPERSONATE_BROWSER
        )
        # The scheduler thread and on-demand fetches share one session
        self._session_lock = threading.Lock()

    def update_settings(self, scraping: ScrapingSettings) -> None:
        """Adopt new tuning; applies from the next request on."""
        self.scraping = scraping
        logger.debug(
            "Fetcher settings updated: timeout=%dms retries=%d",
            scraping.timeout_ms,
            scraping.max_retries,
        )

    @staticmethod
    def _build_headers(referer: str) -> dict[str, str]:
        return {**Settings.DEFAULT_HEADERS, "Referer": referer}

    @staticmethod
    def search_render_url(market_url: MarketUrl, count: int) -> str:
        """JSON search endpoint equivalent to a ``/market/search`` URL."""
        return Settings.SEARCH_RENDER_URL.format(
            appid=market_url.app_id or Settings.DEFAULT_APP_ID,
            count=max(count, Settings.SEARCH_PAGE_SIZE),
            query=quote_plus(market_url.label),
        )

    # ── HTTP ─────────────────────────────────────────────

    def _fetch_get(self, url: str, headers: dict[str, str]) -> str:
        """GET with the configured retry budget and cloudscraper fallback."""
        timeout = self.scraping.timeout_seconds
        last_error = "no attempt made"
        last_exc: BaseException | None = None

        for attempt in range(self.scraping.max_retries):
            try:
                with self._session_lock:
                    resp = self.session.get(
                        url, headers=headers, timeout=timeout,
                    )
                if resp.status_code == 200:
                    return resp.text
                last_error = f"HTTP {resp.status_code}"
                last_exc = None
                logger.warning(
                    "HTTP %d on attempt %d for %s",
                    resp.status_code,
                    attempt + 1,
                    url,
                )
                if resp.status_code in (429, 403):
                    time.sleep(self.scraping.delay_seconds * (attempt + 1))
            except Exception as exc:
                last_error = str(exc) or type(exc).__name__
                last_exc = exc
                logger.warning(
                    "Request error on attempt %d for %s: %s",
                    attempt + 1,
                    url,
                    exc,
                    exc_info=True,
                )
                time.sleep(self.scraping.delay_seconds * (attempt + 1))

        logger.info("curl_cffi exhausted for %s, trying cloudscraper", url)
        try:
            _cs: Any = cloudscraper
            scraper: Any = _cs.create_scraper()
            fallback: Any = scraper.get(
                url, headers=headers, timeout=timeout,
            )
            if fallback.status_code == 200:
                return str(fallback.text)
            last_error = f"HTTP {fallback.status_code}"
        except Exception as exc:
            logger.error(
                "cloudscraper fallback failed for %s: %s",
                url,
                exc,
                exc_info=True,
            )
            last_exc = exc
            last_error = str(exc) or type(exc).__name__

        raise FetchError(url, last_error, cause=last_exc) from last_exc

    # ── Public API ───────────────────────────────────────

    def fetch(
        self, url: str, options: FetchOptions,
    ) -> list[MarketListing]:
        """Fetch *url* and return post-processed price candidates.

        Raises:
            ValidationError: *url* is not a recognised market URL.
            FetchError: the request failed or returned non-200.
        """
        market_url = classify_url(url)
        logger.info(
            "Fetching %s (%s) price_type=%s count=%d",
            market_url.label,
            market_url.kind.value,
            options.price_type,
            options.count,
        )

        if market_url.kind is UrlKind.LISTING:
            body = self._fetch_get(url, self._build_headers(url))
            return self.extractor.extract_listing_page(
                body, options, fallback_label=market_url.label,
            )

        request_url = self.search_render_url(market_url, options.count)
        body = self._fetch_get(request_url, self._build_headers(url))
        return self.extractor.extract_search_results(body, options)
