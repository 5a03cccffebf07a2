# trackerman/services/change_detector.py

"""Decide which alerts a freshly recorded observation should raise."""

from dataclasses import dataclass
from enum import Enum

from trackerman.models.observation import Observation
from trackerman.models.tracked_item import Thresholds


class AlertKind(Enum):
    """Trigger conditions, checked independently of each other."""

    PRICE_CHANGE = "price_change"
    THRESHOLD_HIGH = "threshold_high"
    THRESHOLD_LOW = "threshold_low"


@dataclass(frozen=True)
class AlertIntent:
    """A decision to notify, independent of whether delivery succeeds."""

    kind: AlertKind
    observation: Observation
    previous: Observation | None = None
    threshold: float | None = None


def detect_alerts(
    previous: Observation | None,
    new: Observation,
    thresholds: Thresholds | None,
) -> list[AlertIntent]:
    """Return up to three intents for *new*; pure, keeps no state.

    A price change needs a previous current observation with a
    different price.  Threshold bounds are inclusive and only checked
    when configured.
    """
    intents: list[AlertIntent] = []
    if previous is not None and previous.price != new.price:
        intents.append(
            AlertIntent(AlertKind.PRICE_CHANGE, new, previous=previous)
        )
    if thresholds is None:
        return intents
    if thresholds.high is not None and new.price >= thresholds.high:
        intents.append(
            AlertIntent(
                AlertKind.THRESHOLD_HIGH,
                new,
                previous=previous,
                threshold=thresholds.high,
            )
        )
    if thresholds.low is not None and new.price <= thresholds.low:
        intents.append(
            AlertIntent(
                AlertKind.THRESHOLD_LOW,
                new,
                previous=previous,
                threshold=thresholds.low,
            )
        )
    return intents


def price_change_percent(
    previous: Observation | None, new: Observation,
) -> float | None:
    """Relative change in percent, ``None`` without a usable baseline."""
    if previous is None or previous.price == 0:
        return None
    return (new.price - previous.price) / previous.price * 100
