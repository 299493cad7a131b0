"""
Data model (storm event records)
================================

Each row of the NOAA Storm Data CSV becomes a `RawRecord`. The pipeline then
derives new immutable objects at every stage instead of editing rows in place:

    RawRecord -> NormalizedRecord -> AggregateRecord -> Top-N (label, value) pairs

All records are `frozen=True` dataclasses, so a stage can never modify the
output of the stage before it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

class MagnitudeCode(Enum):
    """Order-of-magnitude suffix used by the PROPDMGEXP / CROPDMGEXP columns."""
    H = "H"
    K = "K"
    M = "M"
    B = "B"
    UNRECOGNIZED = "?"

# Total lookup: every code resolves to exactly one multiplier.
MULTIPLIERS: Dict[MagnitudeCode, float] = {
    MagnitudeCode.H: 1e2,
    MagnitudeCode.K: 1e3,
    MagnitudeCode.M: 1e6,
    MagnitudeCode.B: 1e9,
    MagnitudeCode.UNRECOGNIZED: 0.0,
}

# Damage figures are reported in billions of US$
BILLION = 1e9

METRICS: Tuple[str, ...] = (
    "fatalities",
    "injuries",
    "property_damage",
    "crop_damage",
    "total_damage",
)

METRIC_LABELS: Dict[str, str] = {
    "fatalities": "Fatalities",
    "injuries": "Injuries",
    "property_damage": "Property damage (billion US$)",
    "crop_damage": "Crop damage (billion US$)",
    "total_damage": "Total economic damage (billion US$)",
}

@dataclass(frozen=True)
class RawRecord:
    """One observed weather event, as typed at load time."""
    event_type: str
    fatalities: int
    injuries: int
    property_magnitude: float
    property_code: Optional[str]
    crop_magnitude: float
    crop_code: Optional[str]

@dataclass(frozen=True)
class NormalizedRecord:
    """A RawRecord with damage resolved to billions of US$."""
    event_type: str
    fatalities: int
    injuries: int
    property_damage: float
    crop_damage: float
    total_damage: float

@dataclass(frozen=True)
class AggregateRecord:
    """Per event type sums of every metric."""
    event_type: str
    fatalities: int = 0
    injuries: int = 0
    property_damage: float = 0.0
    crop_damage: float = 0.0
    total_damage: float = 0.0

    def metric(self, name: str):
        """Return the value of one of `METRICS`."""
        if name not in METRICS:
            raise ValueError(f"Unknown metric: {name!r}")
        return getattr(self, name)
