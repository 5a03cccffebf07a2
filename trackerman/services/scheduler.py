# trackerman/services/scheduler.py

"""APScheduler-driven periodic price cycles.

One cycle walks every tracked item in order, fetches its lowest price,
records it and dispatches alerts.  Items are fetched one at a time with
the configured delay in between so the marketplace is never hit in
parallel.  A failure for one item is logged and counted; the cycle moves
on to the next item and still records its completion time.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from trackerman.config.settings import Settings
from trackerman.errors import ValidationError
from trackerman.models.fetch_options import CYCLE_OPTIONS
from trackerman.models.tracker_settings import AutoSchedulerSettings
from trackerman.scrapers.market_fetcher import MarketFetcher
from trackerman.services.notifier import COLOR_ERROR
from trackerman.services.price_recorder import PriceRecorder
from trackerman.storage.settings_store import SettingsStore
from trackerman.storage.snapshot_store import SnapshotStore

logger = logging.getLogger("trackerman.scheduler")


@dataclass
class CycleReport:
    """Outcome of one pass over all tracked items."""

    started_at: datetime
    finished_at: datetime | None = None
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: dict[str, str] = field(
        default_factory=lambda: dict[str, str]()
    )


@dataclass
class SchedulerStatus:
    """Snapshot of the scheduler for status commands."""

    enabled: bool
    interval_minutes: int
    running: bool
    last_run: datetime | None = None
    next_run: datetime | None = None


class CycleScheduler:
    """Stopped/Running state machine around a background interval job."""

    def __init__(
        self,
        store: SnapshotStore,
        fetcher: MarketFetcher,
        recorder: PriceRecorder,
        settings_store: SettingsStore,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self.recorder = recorder
        self.settings_store = settings_store
        current = settings_store.get()
        self.settings: AutoSchedulerSettings = current.auto_scheduler
        self._delay_seconds: float = current.scraping.delay_seconds
        self._scheduler: BackgroundScheduler | None = None
        self._cycle_lock = threading.Lock()

    @property
    def running(self) -> bool:
        """True while the interval job is armed."""
        return self._scheduler is not None and self._scheduler.running

    # ── State machine ────────────────────────────────────

    def start(self) -> None:
        """Arm the interval job; no-op when disabled or already running."""
        if not self.settings.enabled:
            logger.info("Auto-scheduler is disabled")
            return
        if self.running:
            logger.debug("Auto-scheduler already running")
            return
        minutes = self.settings.interval_minutes
        if minutes < 1:
            raise ValidationError("Interval must be at least 1 minute")

        scheduler = BackgroundScheduler()
        scheduler.add_job(
            self._run_scheduled_cycle,
            IntervalTrigger(minutes=minutes),
            id=Settings.SCHEDULER_JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("Auto-scheduler started, every %d minutes", minutes)

    def stop(self) -> None:
        """Disarm the job; in-flight cycles finish on their own."""
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Auto-scheduler stopped")

    def update_settings(self, settings: AutoSchedulerSettings) -> None:
        """Adopt new cadence; restart only if it was running and still enabled."""
        was_running = self.running
        if was_running:
            self.stop()
        self.settings = settings
        if was_running and settings.enabled:
            self.start()

    def set_request_delay(self, delay_seconds: float) -> None:
        """Delay between items, applied from the next item on."""
        self._delay_seconds = delay_seconds

    def pause_between_items(self) -> None:
        """Sleep the configured inter-request delay."""
        time.sleep(self._delay_seconds)

    def get_status(self) -> SchedulerStatus:
        """Current state, cadence and run times."""
        next_run: datetime | None = None
        if self._scheduler is not None and self.running:
            job = self._scheduler.get_job(Settings.SCHEDULER_JOB_ID)
            if job is not None:
                next_run = job.next_run_time
        return SchedulerStatus(
            enabled=self.settings.enabled,
            interval_minutes=self.settings.interval_minutes,
            running=self.running,
            last_run=self.settings_store.get().auto_scheduler.last_run,
            next_run=next_run,
        )

    # ── Cycles ───────────────────────────────────────────

    def manual_trigger(self) -> CycleReport:
        """Run one cycle now, whatever the scheduler state."""
        logger.info("Manual cycle triggered")
        return self.run_cycle()

    def _run_scheduled_cycle(self) -> None:
        try:
            self.run_cycle()
        except Exception as exc:
            logger.error("Scheduled cycle failed: %s", exc, exc_info=True)
            self.recorder.notifier.send_general(
                "Auto-Scheduler Error",
                f"An error occurred during the scheduled fetch: {exc}",
                COLOR_ERROR,
            )

    def run_cycle(self) -> CycleReport:
        """Fetch, record and alert for every tracked item, one by one."""
        with self._cycle_lock:
            report = CycleReport(started_at=datetime.now())
            items = self.store.current_view()
            if not items:
                logger.info("No items to fetch")

            for index, item in enumerate(items):
                if index:
                    self.pause_between_items()
                try:
                    listings = self.fetcher.fetch(item.url, CYCLE_OPTIONS)
                    if not listings:
                        logger.warning("No listings for %s", item.label)
                        report.skipped += 1
                        continue
                    if self.recorder.record(item, listings[0]) is None:
                        report.skipped += 1
                        continue
                    report.succeeded += 1
                except Exception as exc:
                    logger.error(
                        "Failed to fetch %s: %s",
                        item.label,
                        exc,
                        exc_info=True,
                    )
                    report.failed += 1
                    report.errors[item.label] = str(exc)

            report.finished_at = datetime.now()
            self.settings_store.update({
                "auto_scheduler": {
                    "last_run": report.finished_at.isoformat(),
                },
            })
            logger.info(
                "Cycle complete: %d ok, %d failed, %d skipped",
                report.succeeded,
                report.failed,
                report.skipped,
            )
            return report
