# trackerman/models/tracker_settings.py

"""Runtime settings record: scheduler cadence, notifications, fetch tuning.

The record is persisted as a nested dict (see ``SettingsStore``) and is
only ever changed through :meth:`TrackerSettings.merged`, which deep-merges
a partial dict onto a copy and validates the result.  Nothing is stored
until validation passes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, cast
from urllib.parse import urlparse

from trackerman.config.settings import Settings
from trackerman.errors import ValidationError


@dataclass
class AutoSchedulerSettings:
    """Periodic cycle cadence and bookkeeping."""

    enabled: bool = False
    interval_minutes: int = Settings.SCHEDULER_INTERVAL_MINUTES
    last_run: datetime | None = None


@dataclass
class NotificationToggles:
    """Per-alert-kind switches."""

    price_update: bool = True
    threshold_high: bool = True
    threshold_low: bool = True


@dataclass
class DiscordSettings:
    """Webhook transport address and switches."""

    enabled: bool = False
    webhook_url: str | None = Settings.DEFAULT_WEBHOOK_URL
    notifications: NotificationToggles = field(
        default_factory=NotificationToggles
    )


@dataclass
class ScrapingSettings:
    """Request tuning handed to the fetcher."""

    timeout_ms: int = Settings.REQUEST_TIMEOUT_MS
    delay_between_requests_ms: int = Settings.REQUEST_DELAY_MS
    max_retries: int = Settings.MAX_RETRIES

    @property
    def timeout_seconds(self) -> float:
        """Request timeout in seconds, as curl_cffi expects it."""
        return self.timeout_ms / 1000

    @property
    def delay_seconds(self) -> float:
        """Inter-request delay in seconds."""
        return self.delay_between_requests_ms / 1000


def is_valid_webhook_url(url: str) -> bool:
    """Check that a URL points at a Discord webhook endpoint."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return (
        parsed.scheme in ("http", "https")
        and parsed.hostname in Settings.WEBHOOK_HOSTS
        and parsed.path.startswith("/api/webhooks/")
    )


def _deep_merge(
    base: dict[str, Any], update: dict[str, Any],
) -> dict[str, Any]:
    """Return *base* with *update* merged in, recursing into dicts."""
    merged = dict(base)
    for key, value in update.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(
                cast(dict[str, Any], current),
                cast(dict[str, Any], value),
            )
        else:
            merged[key] = value
    return merged


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    raw: object = data.get(key) or {}
    if not isinstance(raw, dict):
        raise ValidationError(f"Settings section '{key}' must be an object")
    return cast(dict[str, Any], raw)


@dataclass
class TrackerSettings:
    """The single process-wide runtime settings record."""

    auto_scheduler: AutoSchedulerSettings = field(
        default_factory=AutoSchedulerSettings
    )
    discord: DiscordSettings = field(default_factory=DiscordSettings)
    scraping: ScrapingSettings = field(default_factory=ScrapingSettings)

    # ── Serialisation ────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the persisted nested-dict form."""
        last_run = self.auto_scheduler.last_run
        toggles = self.discord.notifications
        return {
            "auto_scheduler": {
                "enabled": self.auto_scheduler.enabled,
                "interval_minutes": self.auto_scheduler.interval_minutes,
                "last_run": last_run.isoformat() if last_run else None,
            },
            "discord": {
                "enabled": self.discord.enabled,
                "webhook_url": self.discord.webhook_url,
                "notifications": {
                    "price_update": toggles.price_update,
                    "threshold_high": toggles.threshold_high,
                    "threshold_low": toggles.threshold_low,
                },
            },
            "scraping": {
                "timeout_ms": self.scraping.timeout_ms,
                "delay_between_requests_ms": (
                    self.scraping.delay_between_requests_ms
                ),
                "max_retries": self.scraping.max_retries,
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TrackerSettings":
        """Build a validated record from a (possibly partial) dict.

        Missing keys fall back to defaults, so older settings files keep
        loading after new options are added.
        """
        merged = _deep_merge(cls().to_dict(), data)
        sched = _section(merged, "auto_scheduler")
        discord = _section(merged, "discord")
        toggles = _section(discord, "notifications")
        scraping = _section(merged, "scraping")

        try:
            raw_last_run = sched.get("last_run")
            settings = cls(
                auto_scheduler=AutoSchedulerSettings(
                    enabled=bool(sched["enabled"]),
                    interval_minutes=int(sched["interval_minutes"]),
                    last_run=(
                        datetime.fromisoformat(str(raw_last_run))
                        if raw_last_run
                        else None
                    ),
                ),
                discord=DiscordSettings(
                    enabled=bool(discord["enabled"]),
                    webhook_url=(
                        str(discord["webhook_url"])
                        if discord.get("webhook_url")
                        else None
                    ),
                    notifications=NotificationToggles(
                        price_update=bool(toggles["price_update"]),
                        threshold_high=bool(toggles["threshold_high"]),
                        threshold_low=bool(toggles["threshold_low"]),
                    ),
                ),
                scraping=ScrapingSettings(
                    timeout_ms=int(scraping["timeout_ms"]),
                    delay_between_requests_ms=int(
                        scraping["delay_between_requests_ms"]
                    ),
                    max_retries=int(scraping["max_retries"]),
                ),
            )
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid settings value: {exc}") from exc

        settings.validate()
        return settings

    # ── Updates ──────────────────────────────────────────

    def merged(self, partial: dict[str, Any]) -> "TrackerSettings":
        """Return a new validated record with *partial* deep-merged in."""
        return TrackerSettings.from_dict(
            _deep_merge(self.to_dict(), partial)
        )

    def validate(self) -> None:
        """Raise ``ValidationError`` if any value is out of range."""
        if self.auto_scheduler.interval_minutes < 1:
            raise ValidationError("Interval must be at least 1 minute")
        if self.scraping.timeout_ms <= 0:
            raise ValidationError("timeout_ms must be positive")
        if self.scraping.delay_between_requests_ms < 0:
            raise ValidationError(
                "delay_between_requests_ms cannot be negative"
            )
        if self.scraping.max_retries < 1:
            raise ValidationError("max_retries must be at least 1")
        url = self.discord.webhook_url
        if url and not is_valid_webhook_url(url):
            raise ValidationError(f"Invalid Discord webhook URL: {url}")
