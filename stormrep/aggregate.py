"""
Aggregation by event type
=========================

Groups normalized records by their EVTYPE label and sums every metric.

Grouping is an exact string match. NOAA labels contain near-duplicates
("TSTM WIND" vs "THUNDERSTORM WIND", "FLOOD" vs "FLOODING"); these stay
separate categories.

Categories come out in first-seen order so that rankings built on top of
them break ties the same way on every run.
"""

from __future__ import annotations
from typing import Dict, Iterable, List, Sequence, Tuple
from .models import AggregateRecord, NormalizedRecord

def aggregate(records: Iterable[NormalizedRecord]) -> Tuple[AggregateRecord, ...]:
    """Sum fatalities, injuries and damage per event type.

    Returns:
        One AggregateRecord per distinct event type, in first-seen order.
    """
    # event type -> [fatalities, injuries, property, crop, total]
    sums: Dict[str, List] = {}
    for r in records:
        acc = sums.setdefault(r.event_type, [0, 0, 0.0, 0.0, 0.0])
        acc[0] += r.fatalities
        acc[1] += r.injuries
        acc[2] += r.property_damage
        acc[3] += r.crop_damage
        acc[4] += r.total_damage

    return tuple(
        AggregateRecord(
            event_type=k,
            fatalities=v[0],
            injuries=v[1],
            property_damage=v[2],
            crop_damage=v[3],
            total_damage=v[4],
        )
        for k, v in sums.items()
    )

def by_event_type(aggregates: Sequence[AggregateRecord]) -> Dict[str, AggregateRecord]:
    """Index aggregates by their event type label."""
    return {a.event_type: a for a in aggregates}
