# trackerman/services/tracker_service.py

"""Command facade wiring the store, fetcher, notifier and scheduler."""

import logging
from pathlib import Path
from typing import Any

from trackerman.config.settings import Settings
from trackerman.errors import NotFoundError, ValidationError
from trackerman.models.exterior import Exterior
from trackerman.models.fetch_options import FetchOptions
from trackerman.models.market_listing import MarketListing
from trackerman.models.tracked_item import Thresholds, TrackedItem
from trackerman.models.tracker_settings import TrackerSettings
from trackerman.parsers.exterior import resolve_exterior
from trackerman.scrapers.market_fetcher import (
    MarketFetcher,
    is_valid_market_url,
    parse_market_url,
)
from trackerman.services.notifier import DiscordNotifier
from trackerman.services.price_recorder import PriceRecorder
from trackerman.services.scheduler import (
    CycleReport,
    CycleScheduler,
    SchedulerStatus,
)
from trackerman.storage.settings_store import SettingsStore
from trackerman.storage.snapshot_store import SnapshotStore

logger = logging.getLogger("trackerman.service")


class TrackerService:
    """One instance per process; every collaborator is built here once."""

    def __init__(
        self,
        data_dir: Path | None = None,
        fetcher: MarketFetcher | None = None,
        notifier: DiscordNotifier | None = None,
    ) -> None:
        directory = data_dir or Settings.DATA_DIR
        self.settings_store = SettingsStore(
            directory / Settings.SETTINGS_FILE_NAME
        )
        settings = self.settings_store.get()
        self.store = SnapshotStore(directory / Settings.ITEMS_DB_NAME)
        self.fetcher = fetcher or MarketFetcher(settings.scraping)
        self.notifier = notifier or DiscordNotifier(settings.discord)
        self.recorder = PriceRecorder(self.store, self.notifier)
        self.scheduler = CycleScheduler(
            self.store, self.fetcher, self.recorder, self.settings_store,
        )

    def initialize(self) -> None:
        """Start the scheduler when the stored settings enable it."""
        self.scheduler.start()
        logger.info("TrackerService initialised")

    def stop(self) -> None:
        """Stop the scheduler and release the store."""
        self.scheduler.stop()
        self.store.close()

    # ── Items ────────────────────────────────────────────

    def add_item(
        self,
        url: str,
        thresholds: Thresholds | None = None,
        exterior_override: "str | Exterior | None" = None,
    ) -> TrackedItem:
        """Track the item a market URL resolves to."""
        if not is_valid_market_url(url):
            raise ValidationError("Invalid Steam market URL")
        identity = parse_market_url(url, exterior_override)
        return self.store.add_item(
            identity.name, identity.exterior, url, thresholds,
        )

    def remove_item(self, name: str, exterior: str) -> bool:
        """Stop tracking; untracked items are ignored."""
        return self.store.remove_item(name, resolve_exterior(exterior))

    def update_thresholds(
        self,
        name: str,
        exterior: str,
        thresholds: Thresholds | None,
    ) -> None:
        """Replace both bounds for a tracked item."""
        self.store.update_thresholds(
            name, resolve_exterior(exterior), thresholds,
        )

    def get_items(self) -> list[TrackedItem]:
        """All items with their current snapshot only."""
        return self.store.current_view()

    def get_item(self, name: str, exterior: str) -> TrackedItem | None:
        """One item with its current snapshot only."""
        return self.store.get_item(
            name, resolve_exterior(exterior), current_only=True,
        )

    def get_history(
        self, name: str | None = None, exterior: str | None = None,
    ) -> list[TrackedItem]:
        """Full history, for every item or for one."""
        if name is None or exterior is None:
            return self.store.full_view()
        item = self.store.get_item(name, resolve_exterior(exterior))
        return [item] if item else []

    # ── Fetching ─────────────────────────────────────────

    def fetch_item(
        self, name: str, exterior: str, options: FetchOptions,
    ) -> list[MarketListing]:
        """Fetch one item now; ``FetchError`` reaches the caller."""
        item = self.store.get_item(
            name, resolve_exterior(exterior), current_only=True,
        )
        if item is None:
            raise NotFoundError(name, exterior)
        logger.info("Fetching %s on demand", item.label)
        listings = self.fetcher.fetch(item.url, options)
        for listing in listings:
            self.recorder.record(item, listing)
        return listings

    def _fetch_many(
        self, items: list[TrackedItem], options: FetchOptions,
    ) -> dict[str, list[MarketListing]]:
        results: dict[str, list[MarketListing]] = {}
        for index, item in enumerate(items):
            if index:
                self.scheduler.pause_between_items()
            try:
                listings = self.fetcher.fetch(item.url, options)
                for listing in listings:
                    self.recorder.record(item, listing)
                results[item.label] = listings
            except Exception as exc:
                logger.error(
                    "Failed to fetch data for %s: %s",
                    item.label,
                    exc,
                    exc_info=True,
                )
                results[item.label] = []
        return results

    def fetch_all(
        self, options: FetchOptions,
    ) -> dict[str, list[MarketListing]]:
        """Fetch every tracked item; failures map to an empty list."""
        return self._fetch_many(self.store.current_view(), options)

    def fetch_selected(
        self, options: FetchOptions,
    ) -> dict[str, list[MarketListing]]:
        """Fetch the (name, exterior) pairs in ``options.selected_items``."""
        wanted = {
            (name, resolve_exterior(exterior))
            for name, exterior in options.selected_items
        }
        items = [
            item for item in self.store.current_view()
            if (item.name, item.exterior) in wanted
        ]
        return self._fetch_many(items, options)

    def fetch(
        self,
        options: FetchOptions,
        name: str | None = None,
        exterior: str | None = None,
    ) -> dict[str, list[MarketListing]]:
        """Dispatch on ``options.fetch_type``."""
        if options.fetch_type == "single":
            if not name or not exterior:
                raise ValidationError(
                    "Name and exterior are required for a single fetch"
                )
            listings = self.fetch_item(name, exterior, options)
            return {f"{name} ({exterior})": listings}
        if options.fetch_type == "selected":
            return self.fetch_selected(options)
        return self.fetch_all(options)

    # ── Settings & scheduler ─────────────────────────────

    def get_settings(self) -> TrackerSettings:
        """The current runtime settings."""
        return self.settings_store.get()

    def update_settings(self, partial: dict[str, Any]) -> TrackerSettings:
        """Merge, persist and propagate a partial settings update."""
        updated = self.settings_store.update(partial)
        self.fetcher.update_settings(updated.scraping)
        self.notifier.update_settings(updated.discord)
        self.scheduler.set_request_delay(updated.scraping.delay_seconds)
        self.scheduler.update_settings(updated.auto_scheduler)
        if updated.auto_scheduler.enabled:
            self.scheduler.start()
        else:
            self.scheduler.stop()
        return updated

    def get_scheduler_status(self) -> SchedulerStatus:
        """Scheduler state for status commands."""
        return self.scheduler.get_status()

    def trigger_scheduler(self) -> CycleReport:
        """Run one cycle synchronously."""
        return self.scheduler.manual_trigger()

    def test_webhook(self) -> bool:
        """Send a test message to the configured webhook."""
        return self.notifier.test_webhook()

    def import_legacy(self, path: Path) -> int:
        """Import a legacy ``data.json`` history document."""
        return self.store.import_legacy_json(path)
