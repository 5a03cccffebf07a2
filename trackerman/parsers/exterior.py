# trackerman/parsers/exterior.py

"""Split raw item labels into a base name and a wear tier."""

import re
from dataclasses import dataclass

from trackerman.errors import ValidationError
from trackerman.models.exterior import TIER_PRIORITY, Exterior

_WHITESPACE_RE = re.compile(r"\s+")

# Market hash names wrap the tier in parentheses: "AWP | Asiimov (Field-Tested)"
_TIER_PATTERNS: tuple[tuple[Exterior, re.Pattern[str]], ...] = tuple(
    (
        tier,
        re.compile(
            rf"\(\s*{re.escape(tier.value)}\s*\)|\b{re.escape(tier.value)}\b",
            re.IGNORECASE,
        ),
    )
    for tier in TIER_PRIORITY
)


@dataclass(frozen=True)
class ClassifiedName:
    """Base item name and its wear tier."""

    name: str
    exterior: Exterior


def collapse_whitespace(text: str) -> str:
    """Single-space and trim *text*."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def resolve_exterior(value: "str | Exterior") -> Exterior:
    """Map a user-supplied tier label to :class:`Exterior`."""
    try:
        return Exterior.from_label(value)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


def classify_label(
    label: str,
    override: "str | Exterior | None" = None,
) -> ClassifiedName:
    """Classify *label*, e.g. ``'AWP | Asiimov Field-Tested'``.

    The first tier (in :data:`TIER_PRIORITY` order) whose label appears
    anywhere in the text wins and is removed as a whole phrase.  A
    non-blank *override* replaces the detected tier.
    """
    exterior = Exterior.UNKNOWN
    name = label
    lowered = label.lower()
    for tier, pattern in _TIER_PATTERNS:
        if tier.value.lower() in lowered:
            exterior = tier
            name = pattern.sub("", label)
            break
    name = collapse_whitespace(name)

    if isinstance(override, Exterior) or (override and override.strip()):
        exterior = resolve_exterior(override)
    return ClassifiedName(name=name, exterior=exterior)
