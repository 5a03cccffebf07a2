# tests/test_tracker_service.py

"""Tests for the command facade."""

import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from trackerman.errors import (
    DuplicateItemError,
    FetchError,
    NotFoundError,
    ValidationError,
)
from trackerman.models.exterior import Exterior
from trackerman.models.fetch_options import FetchOptions
from trackerman.models.market_listing import MarketListing
from trackerman.models.tracked_item import Thresholds
from trackerman.services.tracker_service import TrackerService

FIXTURES_DIR = Path(__file__).parent / "fixtures"

REDLINE_URL = (
    "https://steamcommunity.com/market/search"
    "?appid=730&q=AK-47+%7C+Redline+Field-Tested"
)
ASIIMOV_URL = (
    "https://steamcommunity.com/market/listings/730/"
    "AWP%20%7C%20Asiimov%20%28Battle-Scarred%29"
)


def _listing(price: float) -> MarketListing:
    return MarketListing(
        name="AK-47 | Redline", exterior=Exterior.FIELD_TESTED, price=price,
    )


class TestTrackerService(unittest.TestCase):
    """Commands against a temp data directory and a mocked fetcher."""

    def setUp(self) -> None:
        """Fresh service per test."""
        self.data_dir = Path(tempfile.mkdtemp())
        self.fetcher = MagicMock()
        self.notifier = MagicMock()
        self.service = TrackerService(
            data_dir=self.data_dir,
            fetcher=self.fetcher,
            notifier=self.notifier,
        )

    def tearDown(self) -> None:
        """Stop the scheduler and close the store."""
        self.service.stop()

    # ── Items ────────────────────────────────────────────

    def test_add_item_from_search_url(self) -> None:
        """The URL's q parameter becomes the item identity."""
        item = self.service.add_item(REDLINE_URL, Thresholds(high=20))
        self.assertEqual(item.name, "AK-47 | Redline")
        self.assertIs(item.exterior, Exterior.FIELD_TESTED)
        self.assertEqual(
            [i.label for i in self.service.get_items()],
            ["AK-47 | Redline (Field-Tested)"],
        )

    def test_add_item_from_listing_url(self) -> None:
        """Listing URLs resolve through the market hash name."""
        item = self.service.add_item(ASIIMOV_URL)
        self.assertEqual(item.name, "AWP | Asiimov")
        self.assertIs(item.exterior, Exterior.BATTLE_SCARRED)

    def test_add_item_with_override(self) -> None:
        """An exterior override changes the stored tier."""
        item = self.service.add_item(REDLINE_URL, None, "Minimal Wear")
        self.assertIs(item.exterior, Exterior.MINIMAL_WEAR)

    def test_add_invalid_url(self) -> None:
        """Non-market URLs are rejected."""
        with self.assertRaises(ValidationError):
            self.service.add_item("https://example.com/market/search?q=x")

    def test_add_duplicate(self) -> None:
        """Adding the same item twice fails."""
        self.service.add_item(REDLINE_URL)
        with self.assertRaises(DuplicateItemError):
            self.service.add_item(REDLINE_URL)

    def test_remove_and_invalid_exterior(self) -> None:
        """Removal is idempotent; bad tiers are rejected."""
        self.service.add_item(REDLINE_URL)
        self.assertTrue(
            self.service.remove_item("AK-47 | Redline", "field-tested")
        )
        self.assertFalse(
            self.service.remove_item("AK-47 | Redline", "Field-Tested")
        )
        with self.assertRaises(ValidationError):
            self.service.remove_item("AK-47 | Redline", "Pristine")

    def test_update_thresholds_missing(self) -> None:
        """Thresholds on an untracked item raise NotFoundError."""
        with self.assertRaises(NotFoundError):
            self.service.update_thresholds(
                "AK-47 | Redline", "Field-Tested", Thresholds(low=1),
            )

    # ── Fetching ─────────────────────────────────────────

    def test_fetch_single_records_candidates(self) -> None:
        """Every returned candidate is recorded in order."""
        self.service.add_item(REDLINE_URL)
        self.fetcher.fetch.return_value = [_listing(10.0), _listing(11.0)]

        results = self.service.fetch(
            FetchOptions(fetch_type="single", count=2),
            "AK-47 | Redline",
            "Field-Tested",
        )

        self.assertEqual(len(results["AK-47 | Redline (Field-Tested)"]), 2)
        self.fetcher.fetch.assert_called_once()
        self.assertEqual(self.fetcher.fetch.call_args.args[0], REDLINE_URL)
        history = self.service.get_history("AK-47 | Redline", "Field-Tested")
        self.assertEqual([o.price for o in history[0].history], [10.0, 11.0])
        current = self.service.get_item("AK-47 | Redline", "Field-Tested")
        assert current is not None
        assert current.current is not None
        self.assertEqual(current.current.price, 11.0)

    def test_fetch_single_requires_identity(self) -> None:
        """A single fetch needs both name and exterior."""
        with self.assertRaises(ValidationError):
            self.service.fetch(FetchOptions(fetch_type="single"))

    def test_fetch_single_untracked(self) -> None:
        """Fetching an untracked item is NotFoundError."""
        with self.assertRaises(NotFoundError):
            self.service.fetch(
                FetchOptions(fetch_type="single"),
                "AK-47 | Redline",
                "Field-Tested",
            )

    def test_fetch_single_propagates_fetch_error(self) -> None:
        """On-demand single fetches surface FetchError."""
        self.service.add_item(REDLINE_URL)
        self.fetcher.fetch.side_effect = FetchError(REDLINE_URL, "HTTP 500")
        with self.assertRaises(FetchError):
            self.service.fetch(
                FetchOptions(fetch_type="single"),
                "AK-47 | Redline",
                "Field-Tested",
            )

    def test_fetch_all_isolates_failures(self) -> None:
        """A failing item maps to an empty list."""
        self.service.add_item(REDLINE_URL)
        self.service.add_item(ASIIMOV_URL)

        def fetch(url: str, options: FetchOptions) -> list[MarketListing]:
            if url == ASIIMOV_URL:
                raise FetchError(url, "HTTP 500")
            return [_listing(10.0)]

        self.fetcher.fetch.side_effect = fetch
        results = self.service.fetch(FetchOptions())
        self.assertEqual(len(results["AK-47 | Redline (Field-Tested)"]), 1)
        self.assertEqual(results["AWP | Asiimov (Battle-Scarred)"], [])

    def test_fetch_selected(self) -> None:
        """Only the selected pairs are fetched."""
        self.service.add_item(REDLINE_URL)
        self.service.add_item(ASIIMOV_URL)
        self.fetcher.fetch.return_value = [_listing(10.0)]

        results = self.service.fetch(
            FetchOptions(
                fetch_type="selected",
                selected_items=[("AWP | Asiimov", "battle-scarred")],
            )
        )
        self.assertEqual(list(results), ["AWP | Asiimov (Battle-Scarred)"])
        self.fetcher.fetch.assert_called_once()

    # ── Settings & scheduler ─────────────────────────────

    @patch("trackerman.services.scheduler.BackgroundScheduler")
    def test_update_settings_propagates(self, mock_bg: MagicMock) -> None:
        """Updates reach the fetcher, notifier and scheduler."""
        updated = self.service.update_settings({
            "auto_scheduler": {"enabled": True, "interval_minutes": 10},
            "scraping": {"max_retries": 5},
        })
        self.assertEqual(updated.scraping.max_retries, 5)
        self.fetcher.update_settings.assert_called_once_with(updated.scraping)
        self.notifier.update_settings.assert_called_once_with(updated.discord)
        self.assertTrue(self.service.get_scheduler_status().running)
        mock_bg.return_value.start.assert_called_once()

        self.service.update_settings({"auto_scheduler": {"enabled": False}})
        self.assertFalse(self.service.get_scheduler_status().running)

    def test_invalid_settings_not_propagated(self) -> None:
        """A rejected update changes nothing."""
        with self.assertRaises(ValidationError):
            self.service.update_settings(
                {"auto_scheduler": {"interval_minutes": 0}}
            )
        self.fetcher.update_settings.assert_not_called()
        self.assertEqual(
            self.service.get_settings().auto_scheduler.interval_minutes, 30,
        )

    def test_trigger_scheduler(self) -> None:
        """A manual cycle runs synchronously and reports counts."""
        self.service.add_item(REDLINE_URL)
        self.fetcher.fetch.return_value = [_listing(10.0)]
        report = self.service.trigger_scheduler()
        self.assertEqual(report.succeeded, 1)
        self.assertIsNotNone(
            self.service.get_scheduler_status().last_run
        )

    def test_import_legacy(self) -> None:
        """Legacy histories are imported into the store."""
        count = self.service.import_legacy(FIXTURES_DIR / "legacy_data.json")
        self.assertEqual(count, 4)
        self.assertEqual(len(self.service.get_items()), 2)

    def test_test_webhook_delegates(self) -> None:
        """The webhook test goes through the notifier."""
        self.notifier.test_webhook.return_value = True
        self.assertTrue(self.service.test_webhook())


if __name__ == "__main__":
    unittest.main()
