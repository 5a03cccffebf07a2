# tests/test_price_recorder.py

"""Tests for recording candidates and dispatching their alerts."""

import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock

from trackerman.models.exterior import Exterior
from trackerman.models.market_listing import MarketListing
from trackerman.models.tracked_item import Thresholds
from trackerman.services.change_detector import AlertKind
from trackerman.services.price_recorder import PriceRecorder
from trackerman.storage.snapshot_store import SnapshotStore

NAME = "AK-47 | Redline"
URL = "https://steamcommunity.com/market/search?appid=730&q=AK-47"


def _listing(price: float) -> MarketListing:
    return MarketListing(
        name=NAME,
        exterior=Exterior.FIELD_TESTED,
        price=price,
        listing_id="1",
        seller_id="7656",
        seller_name="alice",
    )


class TestPriceRecorder(unittest.TestCase):
    """Append, detect, notify."""

    def setUp(self) -> None:
        """Temp store and a mock notifier."""
        self.tmp_dir = tempfile.mkdtemp()
        self.store = SnapshotStore(Path(self.tmp_dir) / "items.db")
        self.notifier = MagicMock()
        self.recorder = PriceRecorder(self.store, self.notifier)
        self.item = self.store.add_item(
            NAME, Exterior.FIELD_TESTED, URL, Thresholds(high=100, low=5),
        )

    def tearDown(self) -> None:
        """Close the database."""
        self.store.close()

    def _kinds(self) -> list[AlertKind]:
        return [c.args[0].kind for c in self.notifier.notify.call_args_list]

    def test_first_observation_no_alert(self) -> None:
        """A first in-range observation is stored silently."""
        obs = self.recorder.record(self.item, _listing(10.0))
        assert obs is not None
        self.assertEqual(obs.seller_name, "alice")
        self.notifier.notify.assert_not_called()

    def test_change_alert(self) -> None:
        """A different price triggers a change alert."""
        self.recorder.record(self.item, _listing(10.0))
        self.recorder.record(self.item, _listing(12.5))
        self.assertEqual(self._kinds(), [AlertKind.PRICE_CHANGE])
        intent = self.notifier.notify.call_args.args[0]
        self.assertEqual(intent.previous.price, 10.0)

    def test_unchanged_price_no_alert(self) -> None:
        """Repeating a price records it without alerting."""
        self.recorder.record(self.item, _listing(10.0))
        self.recorder.record(self.item, _listing(10.0))
        self.notifier.notify.assert_not_called()
        item = self.store.get_item(NAME, Exterior.FIELD_TESTED)
        assert item is not None
        self.assertEqual(len(item.history), 2)

    def test_threshold_alerts(self) -> None:
        """Threshold alerts fire on the first observation too."""
        self.recorder.record(self.item, _listing(150.0))
        self.assertEqual(self._kinds(), [AlertKind.THRESHOLD_HIGH])

    def test_zero_price_discarded(self) -> None:
        """Unparseable prices are neither stored nor alerted on."""
        with self.assertLogs("trackerman.recorder", level="WARNING"):
            self.assertIsNone(self.recorder.record(self.item, _listing(0.0)))
        item = self.store.get_item(NAME, Exterior.FIELD_TESTED)
        assert item is not None
        self.assertEqual(item.history, [])
        self.notifier.notify.assert_not_called()


if __name__ == "__main__":
    unittest.main()
