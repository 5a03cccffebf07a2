# tests/test_market_fetcher.py

"""Tests for URL classification and the HTTP fetch path."""

import threading
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from trackerman.errors import FetchError, ValidationError
from trackerman.models.exterior import Exterior
from trackerman.models.fetch_options import FetchOptions
from trackerman.models.tracker_settings import ScrapingSettings
from trackerman.scrapers.market_fetcher import (
    MarketFetcher,
    UrlKind,
    classify_url,
    is_valid_market_url,
    parse_market_url,
)

FIXTURES_DIR = Path(__file__).parent / "fixtures"

SEARCH_URL = (
    "https://steamcommunity.com/market/search"
    "?appid=730&q=AWP+%7C+Asiimov+Battle-Scarred"
)
LISTING_URL = (
    "https://steamcommunity.com/market/listings/730/"
    "AK-47%20%7C%20Redline%20%28Field-Tested%29"
)


def _response(status: int, fixture: str | None = None) -> MagicMock:
    """Build a mock HTTP response."""
    resp = MagicMock()
    resp.status_code = status
    resp.text = (
        (FIXTURES_DIR / fixture).read_text(encoding="utf-8")
        if fixture
        else ""
    )
    return resp


class TestUrlValidation(unittest.TestCase):
    """Market URL acceptance rules."""

    def test_accepts_search_url(self) -> None:
        """Search URLs need appid and q."""
        self.assertTrue(is_valid_market_url(SEARCH_URL))

    def test_accepts_www_host(self) -> None:
        """The www. host variant is accepted."""
        self.assertTrue(is_valid_market_url(
            "https://www.steamcommunity.com/market/search?appid=730&q=x"
        ))

    def test_accepts_listing_url(self) -> None:
        """Direct listing URLs are accepted."""
        self.assertTrue(is_valid_market_url(LISTING_URL))

    def test_rejects_missing_params(self) -> None:
        """A search URL without appid is rejected."""
        self.assertFalse(is_valid_market_url(
            "https://steamcommunity.com/market/search?q=AWP"
        ))

    def test_rejects_other_hosts(self) -> None:
        """Only the market host is accepted."""
        self.assertFalse(is_valid_market_url(
            "https://example.com/market/search?appid=730&q=AWP"
        ))

    def test_rejects_other_paths_and_schemes(self) -> None:
        """Unknown paths and non-http schemes are rejected."""
        for url in (
            "https://steamcommunity.com/market/",
            "https://steamcommunity.com/market/listings/abc/AWP",
            "https://steamcommunity.com/market/listings/730/",
            "ftp://steamcommunity.com/market/search?appid=730&q=AWP",
            "not a url",
        ):
            with self.subTest(url=url):
                self.assertFalse(is_valid_market_url(url))

    def test_classify_url_kinds(self) -> None:
        """Search and listing URLs are told apart."""
        search = classify_url(SEARCH_URL)
        self.assertIs(search.kind, UrlKind.SEARCH)
        self.assertEqual(search.app_id, "730")
        self.assertEqual(search.label, "AWP | Asiimov Battle-Scarred")

        listing = classify_url(LISTING_URL)
        self.assertIs(listing.kind, UrlKind.LISTING)
        self.assertEqual(listing.label, "AK-47 | Redline (Field-Tested)")

    def test_classify_url_invalid(self) -> None:
        """Invalid URLs raise ValidationError."""
        with self.assertRaises(ValidationError):
            classify_url("https://example.com/")


class TestParseMarketUrl(unittest.TestCase):
    """Item identity from a tracked URL."""

    def test_search_identity(self) -> None:
        """The q parameter is classified."""
        identity = parse_market_url(SEARCH_URL)
        self.assertEqual(identity.name, "AWP | Asiimov")
        self.assertIs(identity.exterior, Exterior.BATTLE_SCARRED)

    def test_listing_identity(self) -> None:
        """The unquoted listing name is classified."""
        identity = parse_market_url(LISTING_URL)
        self.assertEqual(identity.name, "AK-47 | Redline")
        self.assertIs(identity.exterior, Exterior.FIELD_TESTED)

    def test_override(self) -> None:
        """An exterior override replaces the detected tier."""
        identity = parse_market_url(SEARCH_URL, "Well-Worn")
        self.assertIs(identity.exterior, Exterior.WELL_WORN)

    def test_blank_query_rejected(self) -> None:
        """An empty q parameter has no item name."""
        with self.assertRaises(ValidationError):
            parse_market_url(
                "https://steamcommunity.com/market/search?appid=730&q="
            )


@patch("trackerman.scrapers.market_fetcher.curl_requests.Session")
class TestMarketFetcher(unittest.TestCase):
    """HTTP behaviour with a mocked curl_cffi session."""

    def _fetcher(
        self,
        mock_session_cls: MagicMock,
        scraping: ScrapingSettings | None = None,
    ) -> tuple[MarketFetcher, MagicMock]:
        session = MagicMock()
        mock_session_cls.return_value = session
        return MarketFetcher(scraping), session

    def test_search_uses_render_endpoint(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """Search URLs are fetched through the JSON render endpoint."""
        fetcher, session = self._fetcher(mock_session_cls)
        session.get.return_value = _response(200, "search_render.json")

        listings = fetcher.fetch(SEARCH_URL, FetchOptions())

        requested = session.get.call_args.args[0]
        self.assertIn("/market/search/render", requested)
        self.assertIn("count=10", requested)
        self.assertIn("query=AWP+%7C+Asiimov+Battle-Scarred", requested)
        self.assertEqual(
            session.get.call_args.kwargs["headers"]["Referer"], SEARCH_URL,
        )
        self.assertEqual(len(listings), 1)
        self.assertEqual(listings[0].price, 61.20)

    def test_listing_fetches_url_directly(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """Listing URLs are fetched as-is."""
        fetcher, session = self._fetcher(mock_session_cls)
        session.get.return_value = _response(200, "listing_page.html")

        listings = fetcher.fetch(LISTING_URL, FetchOptions(count=2))

        self.assertEqual(session.get.call_args.args[0], LISTING_URL)
        self.assertEqual([c.price for c in listings], [0.0, 9.99])

    def test_large_count_is_requested(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """Counts above the page size are passed through."""
        market_url = classify_url(SEARCH_URL)
        self.assertIn(
            "count=25", MarketFetcher.search_render_url(market_url, 25),
        )

    def test_timeout_from_settings(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """The configured timeout is passed in seconds."""
        fetcher, session = self._fetcher(
            mock_session_cls, ScrapingSettings(timeout_ms=2500),
        )
        session.get.return_value = _response(200, "search_render.json")
        fetcher.fetch(SEARCH_URL, FetchOptions())
        self.assertEqual(session.get.call_args.kwargs["timeout"], 2.5)

    def test_recovers_on_retry(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """A transient failure is retried within the budget."""
        fetcher, session = self._fetcher(mock_session_cls)
        session.get.side_effect = [
            _response(429),
            _response(200, "search_render.json"),
        ]
        with patch(
            "trackerman.scrapers.market_fetcher.cloudscraper"
        ) as mock_cs:
            listings = fetcher.fetch(SEARCH_URL, FetchOptions())
            mock_cs.create_scraper.assert_not_called()
        self.assertEqual(session.get.call_count, 2)
        self.assertEqual(len(listings), 1)

    def test_cloudscraper_fallback(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """cloudscraper is tried once after the retries run out."""
        fetcher, session = self._fetcher(mock_session_cls)
        session.get.return_value = _response(403)
        with patch(
            "trackerman.scrapers.market_fetcher.cloudscraper"
        ) as mock_cs:
            scraper = MagicMock()
            scraper.get.return_value = _response(200, "search_render.json")
            mock_cs.create_scraper.return_value = scraper
            listings = fetcher.fetch(SEARCH_URL, FetchOptions())
        self.assertEqual(session.get.call_count, 3)
        scraper.get.assert_called_once()
        self.assertEqual(listings[0].price, 61.20)

    def test_session_requests_are_serialised(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """Concurrent fetches never use the shared session at once."""
        fetcher, session = self._fetcher(mock_session_cls)
        body = (FIXTURES_DIR / "search_render.json").read_text(encoding="utf-8")
        active = 0
        overlaps: list[int] = []
        held: list[bool] = []
        guard = threading.Lock()

        def _get(*args: object, **kwargs: object) -> MagicMock:
            nonlocal active
            with guard:
                active += 1
                overlaps.append(active)
            held.append(fetcher._session_lock.locked())
            resp = MagicMock(status_code=200, text=body)
            with guard:
                active -= 1
            return resp

        session.get.side_effect = _get
        threads = [
            threading.Thread(
                target=fetcher.fetch, args=(SEARCH_URL, FetchOptions()),
            )
            for _ in range(4)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(session.get.call_count, 4)
        self.assertEqual(max(overlaps), 1)
        self.assertEqual(held, [True] * 4)

    def test_non_success_raises_fetch_error(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """Exhausted retries and fallback surface as one FetchError."""
        fetcher, session = self._fetcher(
            mock_session_cls, ScrapingSettings(max_retries=2),
        )
        session.get.return_value = _response(500)
        with patch(
            "trackerman.scrapers.market_fetcher.cloudscraper"
        ) as mock_cs:
            mock_cs.create_scraper.return_value.get.return_value = (
                _response(503)
            )
            with self.assertRaises(FetchError) as ctx:
                fetcher.fetch(LISTING_URL, FetchOptions())
        self.assertEqual(session.get.call_count, 2)
        self.assertIn("HTTP 503", str(ctx.exception))
        self.assertEqual(ctx.exception.url, LISTING_URL)

    def test_network_error_keeps_cause(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """The last underlying exception is kept as the cause."""
        fetcher, session = self._fetcher(
            mock_session_cls, ScrapingSettings(max_retries=1),
        )
        session.get.side_effect = ConnectionError("reset")
        with patch(
            "trackerman.scrapers.market_fetcher.cloudscraper"
        ) as mock_cs:
            mock_cs.create_scraper.side_effect = RuntimeError("blocked")
            with self.assertRaises(FetchError) as ctx:
                fetcher.fetch(SEARCH_URL, FetchOptions())
        self.assertIsInstance(ctx.exception.cause, RuntimeError)
        self.assertIsInstance(ctx.exception.__cause__, RuntimeError)

    def test_update_settings_applies_next_request(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """A smaller retry budget is used from the next request on."""
        fetcher, session = self._fetcher(mock_session_cls)
        fetcher.update_settings(ScrapingSettings(max_retries=1))
        session.get.return_value = _response(500)
        with patch(
            "trackerman.scrapers.market_fetcher.cloudscraper"
        ) as mock_cs:
            mock_cs.create_scraper.return_value.get.return_value = (
                _response(500)
            )
            with self.assertRaises(FetchError):
                fetcher.fetch(SEARCH_URL, FetchOptions())
        self.assertEqual(session.get.call_count, 1)

    def test_invalid_url_not_requested(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """Invalid URLs fail before any request."""
        fetcher, session = self._fetcher(mock_session_cls)
        with self.assertRaises(ValidationError):
            fetcher.fetch("https://example.com/x", FetchOptions())
        session.get.assert_not_called()


if __name__ == "__main__":
    unittest.main()
