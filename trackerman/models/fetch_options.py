# trackerman/models/fetch_options.py

"""Options controlling a fetch and the post-processing of its candidates."""

from dataclasses import dataclass, field

from trackerman.errors import ValidationError

FETCH_TYPES: frozenset[str] = frozenset({"single", "all", "selected"})
PRICE_TYPES: frozenset[str] = frozenset({"lowest", "highest"})


@dataclass
class FetchOptions:
    """How many candidates to keep, in which order, for which tier."""

    fetch_type: str = "all"
    price_type: str = "lowest"
    count: int = 1
    exterior_filter: str = ""
    selected_items: list[tuple[str, str]] = field(
        default_factory=lambda: list[tuple[str, str]]()
    )

    def __post_init__(self) -> None:
        if self.fetch_type not in FETCH_TYPES:
            raise ValidationError(
                f"fetch_type must be one of {sorted(FETCH_TYPES)}, "
                f"got {self.fetch_type!r}"
            )
        if self.price_type not in PRICE_TYPES:
            raise ValidationError(
                f"price_type must be one of {sorted(PRICE_TYPES)}, "
                f"got {self.price_type!r}"
            )
        if self.count < 1:
            raise ValidationError(
                f"count must be at least 1, got {self.count}"
            )


# Options every scheduled cycle uses
CYCLE_OPTIONS = FetchOptions(fetch_type="all", price_type="lowest", count=1)
