# trackerman/models/market_listing.py

"""Price candidate extracted from a marketplace response."""

from dataclasses import dataclass

from trackerman.models.exterior import Exterior


@dataclass
class MarketListing:
    """One candidate price observation, before it is recorded."""

    name: str
    exterior: Exterior
    price: float
    currency: str = "$"
    listing_id: str | None = None
    seller_id: str | None = None
    seller_name: str | None = None
