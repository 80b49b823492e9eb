from __future__ import annotations
import math
from dataclasses import dataclass, field
from enum import Enum

from .config import CONFIG
from .ddc.parser import DisplayRecord


MIN_LEVEL = 0
MAX_LEVEL = 100


class ControllerPhase(str, Enum):
    UNINITIALIZED = "uninitialized"
    REFRESHING = "refreshing"
    READY = "ready"
    APPLYING = "applying"


@dataclass
class SelectionState:
    display: DisplayRecord | None = None
    brightness: int = field(default_factory=lambda: clamp_level(CONFIG.default_brightness))

    @property
    def fraction(self) -> float:
        return self.brightness / MAX_LEVEL


def clamp_level(value: float) -> int:
    """Round half up and clamp into the 0-100 brightness range."""
    value = float(value)
    if math.isnan(value):
        raise ValueError("brightness level is NaN")
    rounded = math.floor(value + 0.5) if math.isfinite(value) else value
    return int(max(MIN_LEVEL, min(MAX_LEVEL, rounded)))


def fraction_to_level(fraction: float) -> int:
    """Map a 0.0-1.0 slider position to an integer percentage.

    0.73 -> 73, 0.725 -> 73, 0.5 -> 50. Values outside the unit range are
    clamped. The product is taken in floating point before rounding, as the
    panel slider always did, so a fraction like 0.285 that lands just under
    a half gives 28.
    """
    return clamp_level(float(fraction) * MAX_LEVEL)
