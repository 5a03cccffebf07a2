# trackerman/services/price_recorder.py

"""Append a fetched candidate and dispatch whatever alerts it triggers."""

import logging
from datetime import datetime

from trackerman.models.market_listing import MarketListing
from trackerman.models.observation import Observation
from trackerman.models.tracked_item import TrackedItem
from trackerman.services.change_detector import AlertIntent, detect_alerts
from trackerman.services.notifier import DiscordNotifier
from trackerman.storage.snapshot_store import SnapshotStore

logger = logging.getLogger("trackerman.recorder")


class PriceRecorder:
    """Shared by timed cycles and on-demand fetches."""

    def __init__(
        self, store: SnapshotStore, notifier: DiscordNotifier,
    ) -> None:
        self.store = store
        self.notifier = notifier

    def record(
        self, item: TrackedItem, listing: MarketListing,
    ) -> Observation | None:
        """Append *listing* for *item*; ``None`` when it was discarded.

        A zero price means the text could not be parsed, so nothing is
        stored for it.  Alerts are computed against the observation the
        store reports as previously current, which keeps the comparison
        correct when a manual fetch and a timed cycle interleave.
        """
        if listing.price <= 0:
            logger.warning(
                "Discarding unusable price for %s (listing %s)",
                item.label,
                listing.listing_id,
            )
            return None

        observation = Observation(
            timestamp=datetime.now(),
            price=listing.price,
            currency=listing.currency,
            listing_id=listing.listing_id,
            seller_id=listing.seller_id,
            seller_name=listing.seller_name,
        )
        previous = self.store.append_observation(
            item.name, item.exterior, observation, item.url,
        )
        intents = detect_alerts(previous, observation, item.thresholds)
        self._dispatch(intents, item)
        return observation

    def _dispatch(
        self, intents: list[AlertIntent], item: TrackedItem,
    ) -> None:
        for intent in intents:
            logger.info(
                "Alert %s for %s at %.2f",
                intent.kind.value,
                item.label,
                intent.observation.price,
            )
            self.notifier.notify(intent, item)
