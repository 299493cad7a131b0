"""
Normalizer and damage calculator
================================

NOAA encodes damage as a magnitude plus a one-character suffix, e.g.
PROPDMG=25.0 with PROPDMGEXP="K" means 25,000 US$. Only H/K/M/B are
meaningful. Everything else found in the raw file ("+", "?", digits, blanks)
carries no reliable scale and contributes zero.

Both steps are pure functions; nothing here does I/O or raises on a
well-formed RawRecord.
"""

from __future__ import annotations
from typing import Iterable, Optional, Tuple
from .models import BILLION, MULTIPLIERS, MagnitudeCode, NormalizedRecord, RawRecord

_RECOGNIZED = {c.value: c for c in MagnitudeCode if c is not MagnitudeCode.UNRECOGNIZED}

def normalize_code(code: Optional[str]) -> MagnitudeCode:
    """Uppercase a suffix code and resolve it to a MagnitudeCode.

    Missing values (None, NaN) and any unknown string map to UNRECOGNIZED.
    """
    if not isinstance(code, str):
        return MagnitudeCode.UNRECOGNIZED
    return _RECOGNIZED.get(code.upper(), MagnitudeCode.UNRECOGNIZED)

def multiplier(code: MagnitudeCode) -> float:
    return MULTIPLIERS[code]

def damage(magnitude: float, code: MagnitudeCode) -> float:
    """Scale a raw magnitude to billions of US$."""
    return float(magnitude) * multiplier(code) / BILLION

def normalize_record(raw: RawRecord) -> NormalizedRecord:
    prop = damage(raw.property_magnitude, normalize_code(raw.property_code))
    crop = damage(raw.crop_magnitude, normalize_code(raw.crop_code))
    return NormalizedRecord(
        event_type=raw.event_type,
        fatalities=raw.fatalities,
        injuries=raw.injuries,
        property_damage=prop,
        crop_damage=crop,
        total_damage=prop + crop,
    )

def normalize_records(raws: Iterable[RawRecord]) -> Tuple[NormalizedRecord, ...]:
    """Normalize every record, returning a new immutable sequence."""
    return tuple(normalize_record(r) for r in raws)
