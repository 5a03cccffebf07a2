# trackerman/models/observation.py

"""Timestamped price observation for a tracked item."""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class Observation:
    """A single price reading; ``superseded`` is False only for the current one."""

    timestamp: datetime
    price: float
    currency: str = "$"
    listing_id: str | None = None
    seller_id: str | None = None
    seller_name: str | None = None
    superseded: bool = False

    def as_superseded(self) -> "Observation":
        """Return a copy flagged as no longer current."""
        return replace(self, superseded=True)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-friendly dict."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "price": self.price,
            "currency": self.currency,
            "listing_id": self.listing_id,
            "seller_id": self.seller_id,
            "seller_name": self.seller_name,
            "superseded": self.superseded,
        }
