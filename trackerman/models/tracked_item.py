# trackerman/models/tracked_item.py

"""Tracked item with its versioned price history."""

from dataclasses import dataclass, field
from typing import Any

from trackerman.models.exterior import Exterior
from trackerman.models.observation import Observation


@dataclass(frozen=True)
class Thresholds:
    """Alert bounds; ``None`` means the bound is not configured."""

    high: float | None = None
    low: float | None = None

    @property
    def is_empty(self) -> bool:
        """True when neither bound is configured."""
        return self.high is None and self.low is None


@dataclass
class TrackedItem:
    """An item identified by (name, exterior) and its observations, oldest first."""

    name: str
    exterior: Exterior
    url: str
    history: list[Observation] = field(
        default_factory=lambda: list[Observation]()
    )
    thresholds: Thresholds | None = None

    @property
    def key(self) -> tuple[str, str]:
        """Identity pair used by the store and the CLI."""
        return (self.name, self.exterior.value)

    @property
    def label(self) -> str:
        """Human-readable ``name (exterior)`` label."""
        return f"{self.name} ({self.exterior.value})"

    @property
    def current(self) -> Observation | None:
        """The non-superseded observation, if any."""
        for obs in reversed(self.history):
            if not obs.superseded:
                return obs
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-friendly dict."""
        thresholds = (
            {"high": self.thresholds.high, "low": self.thresholds.low}
            if self.thresholds is not None
            else None
        )
        return {
            "name": self.name,
            "exterior": self.exterior.value,
            "url": self.url,
            "thresholds": thresholds,
            "history": [o.to_dict() for o in self.history],
        }
