# trackerman/services/notifier.py

"""Discord webhook delivery for alert intents."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from curl_cffi import requests as curl_requests

from trackerman.config.settings import Settings
from trackerman.errors import NotificationError
from trackerman.models.tracked_item import TrackedItem
from trackerman.models.tracker_settings import (
    DiscordSettings,
    is_valid_webhook_url,
)
from trackerman.services.change_detector import (
    AlertIntent,
    AlertKind,
    price_change_percent,
)

logger = logging.getLogger("trackerman.notifier")

COLOR_PRICE_CHANGE = 0x00FF00
COLOR_THRESHOLD_HIGH = 0xFF0000
COLOR_THRESHOLD_LOW = 0x0000FF
COLOR_GENERAL = 0x0099FF
COLOR_ERROR = 0xFF0000


@dataclass
class AlertMessage:
    """Transport-neutral alert: what gets rendered into a Discord embed."""

    title: str
    body: str
    color: int
    timestamp: datetime
    url: str | None = None
    fields: list[tuple[str, str]] = field(
        default_factory=lambda: list[tuple[str, str]]()
    )

    def to_embed(self) -> dict[str, Any]:
        """Render as a Discord embed payload."""
        embed: dict[str, Any] = {
            "title": self.title,
            "description": self.body,
            "color": self.color,
            "timestamp": self.timestamp.isoformat(),
            "footer": {"text": Settings.NOTIFICATION_FOOTER},
        }
        if self.url:
            embed["url"] = self.url
        if self.fields:
            embed["fields"] = [
                {"name": name, "value": value, "inline": True}
                for name, value in self.fields
            ]
        return embed


def _format_price(price: float | None, currency: str) -> str:
    return "N/A" if price is None else f"{price:,.2f} {currency}"


def build_message(intent: AlertIntent, item: TrackedItem) -> AlertMessage:
    """Turn an alert intent into a human-readable message."""
    obs = intent.observation
    current = _format_price(obs.price, obs.currency)

    if intent.kind is AlertKind.PRICE_CHANGE:
        prev = intent.previous
        change = price_change_percent(prev, obs)
        change_text = "N/A" if change is None else f"{change:+.2f}%"
        return AlertMessage(
            title=f"Price Update - {item.name}",
            body=f"**Exterior:** {item.exterior.value}",
            color=COLOR_PRICE_CHANGE,
            timestamp=obs.timestamp,
            url=item.url,
            fields=[
                ("Current Price", current),
                (
                    "Previous Price",
                    _format_price(
                        prev.price if prev else None, obs.currency,
                    ),
                ),
                ("Price Change", change_text),
            ],
        )

    side = "High" if intent.kind is AlertKind.THRESHOLD_HIGH else "Low"
    return AlertMessage(
        title=f"Threshold Alert - {item.name}",
        body=(
            f"**Exterior:** {item.exterior.value}\n"
            f"**Threshold {side} Hit!**"
        ),
        color=(
            COLOR_THRESHOLD_HIGH
            if intent.kind is AlertKind.THRESHOLD_HIGH
            else COLOR_THRESHOLD_LOW
        ),
        timestamp=obs.timestamp,
        url=item.url,
        fields=[
            ("Current Price", current),
            (
                f"{side} Threshold",
                _format_price(intent.threshold, obs.currency),
            ),
        ],
    )


class DiscordNotifier:
    """Best-effort alert delivery; failures are logged, never raised."""

    def __init__(self, settings: DiscordSettings | None = None) -> None:
        self.settings = settings or DiscordSettings()
        self.session = curl_requests.Session(
            impersonate=Settings.IMPERSONATE_BROWSER
        )

    def update_settings(self, settings: DiscordSettings) -> None:
        """Adopt new transport settings for the next message."""
        self.settings = settings

    @staticmethod
    def is_valid_webhook_url(url: str) -> bool:
        """Check that *url* is a Discord webhook endpoint."""
        return is_valid_webhook_url(url)

    def _kind_enabled(self, kind: AlertKind) -> bool:
        toggles = self.settings.notifications
        return {
            AlertKind.PRICE_CHANGE: toggles.price_update,
            AlertKind.THRESHOLD_HIGH: toggles.threshold_high,
            AlertKind.THRESHOLD_LOW: toggles.threshold_low,
        }[kind]

    def _send_webhook(self, message: AlertMessage) -> None:
        """POST one embed; raises ``NotificationError`` on any failure."""
        url = self.settings.webhook_url
        if not url:
            raise NotificationError("No webhook URL configured")
        try:
            resp = self.session.post(
                url,
                json={"embeds": [message.to_embed()]},
                headers={"Content-Type": "application/json"},
                timeout=Settings.WEBHOOK_TIMEOUT,
            )
        except Exception as exc:
            raise NotificationError(
                f"Discord notification failed: {exc}"
            ) from exc
        if resp.status_code >= 300:
            raise NotificationError(
                f"Discord notification failed: HTTP {resp.status_code}"
            )

    def _deliver(self, message: AlertMessage) -> bool:
        try:
            self._send_webhook(message)
        except NotificationError as exc:
            logger.error(
                "Failed to deliver '%s': %s", message.title, exc,
                exc_info=True,
            )
            return False
        logger.info("Delivered '%s'", message.title)
        return True

    def notify(self, intent: AlertIntent, item: TrackedItem) -> bool:
        """Deliver *intent* if enabled; True only when the post succeeded."""
        if not self.settings.enabled or not self.settings.webhook_url:
            logger.debug(
                "Notifications disabled, dropping %s for %s",
                intent.kind.value,
                item.label,
            )
            return False
        if not self._kind_enabled(intent.kind):
            return False
        return self._deliver(build_message(intent, item))

    def send_general(
        self,
        title: str,
        description: str,
        color: int = COLOR_GENERAL,
    ) -> bool:
        """Deliver a free-form message (scheduler errors, tests)."""
        if not self.settings.enabled or not self.settings.webhook_url:
            return False
        return self._deliver(
            AlertMessage(
                title=title,
                body=description,
                color=color,
                timestamp=datetime.now(timezone.utc),
            )
        )

    def test_webhook(self) -> bool:
        """Send a test message regardless of the ``enabled`` switch."""
        if not self.settings.webhook_url:
            return False
        return self._deliver(
            AlertMessage(
                title="Webhook Test",
                body=(
                    "This is a test message from Trackerman. "
                    "Your Discord webhook is working correctly!"
                ),
                color=COLOR_PRICE_CHANGE,
                timestamp=datetime.now(timezone.utc),
            )
        )
