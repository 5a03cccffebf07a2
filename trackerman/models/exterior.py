# trackerman/models/exterior.py

"""Cosmetic wear-tier classification for tracked items."""

from enum import Enum


class Exterior(str, Enum):
    """Wear tier of an item, ``UNKNOWN`` when the label carries none."""

    FACTORY_NEW = "Factory New"
    MINIMAL_WEAR = "Minimal Wear"
    FIELD_TESTED = "Field-Tested"
    WELL_WORN = "Well-Worn"
    BATTLE_SCARRED = "Battle-Scarred"
    UNKNOWN = "Unknown"

    @classmethod
    def from_label(cls, value: "str | Exterior") -> "Exterior":
        """Resolve a tier from its display label, ignoring case."""
        if isinstance(value, Exterior):
            return value
        wanted = value.strip().lower()
        for tier in cls:
            if tier.value.lower() == wanted:
                return tier
        raise ValueError(f"Unknown exterior: {value!r}")


# Match order used when classifying free-text labels
TIER_PRIORITY: tuple[Exterior, ...] = (
    Exterior.FACTORY_NEW,
    Exterior.MINIMAL_WEAR,
    Exterior.FIELD_TESTED,
    Exterior.WELL_WORN,
    Exterior.BATTLE_SCARRED,
)
