"""
Alert rule definitions.

Three kinds of one-shot conditions tracked per user:
- PriceAlert: price crosses a target (ABOVE / BELOW)
- ChangeAlert: absolute daily percent change reaches a threshold
- VolumeAlert: current volume reaches N times the rolling average
"""
from dataclasses import dataclass
from enum import Enum
from typing import Hashable, Union


class AlertKind(str, Enum):
    PRICE = "price"
    CHANGE = "change"
    VOLUME = "volume"


class Direction(str, Enum):
    ABOVE = "ABOVE"
    BELOW = "BELOW"


@dataclass(frozen=True)
class PriceAlert:
    """Fires when price >= target (ABOVE) or price <= target (BELOW)."""
    identifier: str
    direction: Direction
    target_price: float

    kind = AlertKind.PRICE

    @property
    def key(self) -> Hashable:
        return (self.identifier, self.direction)

    def is_triggered(self, price: float) -> bool:
        if self.direction == Direction.ABOVE:
            return price >= self.target_price
        return price <= self.target_price


@dataclass(frozen=True)
class ChangeAlert:
    """Fires when |percent change| >= change_percent (unsigned threshold)."""
    identifier: str
    change_percent: float

    kind = AlertKind.CHANGE

    @property
    def key(self) -> Hashable:
        return self.identifier

    def is_triggered(self, percent_change: float) -> bool:
        return abs(percent_change) >= self.change_percent


@dataclass(frozen=True)
class VolumeAlert:
    """Fires when current volume >= multiplier * rolling average volume."""
    identifier: str
    multiplier: float

    kind = AlertKind.VOLUME

    @property
    def key(self) -> Hashable:
        return self.identifier

    def is_triggered(self, volume: float, average: float, sample_count: int, min_samples: int) -> bool:
        # Thin history (or an all-zero one) never triggers
        if sample_count < min_samples or average <= 0:
            return False
        return volume >= average * self.multiplier


Alert = Union[PriceAlert, ChangeAlert, VolumeAlert]
