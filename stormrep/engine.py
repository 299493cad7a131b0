"""
Core engine
===========

The pipeline is a straight line of pure stages:

1) Load dataset -> RawRecord tuple (loader.py)
2) Normalize suffix codes and compute damage -> NormalizedRecord tuple
3) Aggregate per event type -> AggregateRecord tuple
4) Select the top N event types for each metric

Each stage returns a new structure; nothing is modified in place. The
`StormEngine` object simply keeps the outputs together so the CLI and the
report can ask for rankings and exports.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple
import heapq
import logging
from .models import METRICS, AggregateRecord, NormalizedRecord, RawRecord
from .normalize import normalize_records
from .aggregate import aggregate, by_event_type

logger = logging.getLogger(__name__)

TOP_N = 5

Ranking = List[Tuple[str, float]]

@dataclass(frozen=True)
class StormEngine:
    """Holds the outputs of one pipeline run."""
    records: Tuple[NormalizedRecord, ...]
    aggregates: Tuple[AggregateRecord, ...]
    skipped: int = 0
    source_path: Optional[str] = None

    @classmethod
    def from_raw(cls, raws: Sequence[RawRecord], *, skipped: int = 0,
                 source_path: Optional[str] = None) -> "StormEngine":
        """Run the normalize and aggregate stages over loaded records."""
        records = normalize_records(raws)
        aggregates = aggregate(records)
        logger.info(f"Aggregated {len(records)} records into {len(aggregates)} event types")
        return cls(records=records, aggregates=aggregates, skipped=skipped, source_path=source_path)

    # ---------------- Rankings ----------------
    def top(self, metric: str, n: int = TOP_N) -> Ranking:
        return top_n(self.aggregates, metric, n)

    def top_all(self, n: int = TOP_N) -> Dict[str, Ranking]:
        return top_all(self.aggregates, n)

    def rank(self, metric: str) -> Ranking:
        return rank(self.aggregates, metric)

    def lookup(self, event_type: str) -> Optional[AggregateRecord]:
        return by_event_type(self.aggregates).get(event_type)

    # ---------------- Export ----------------
    def export_csv(self, path: str) -> None:
        import csv
        with open(path, "w", newline="", encoding="utf-8") as f:
            w = csv.writer(f)
            w.writerow(["event_type", *METRICS])
            for a in self.aggregates:
                w.writerow([a.event_type, *(a.metric(m) for m in METRICS)])

    def export_json(self, path: str) -> None:
        """Export the aggregate table to a JSON file."""
        import json
        payload = [
            {"event_type": a.event_type, **{m: a.metric(m) for m in METRICS}}
            for a in self.aggregates
        ]
        with open(path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)

# ---------------- Top-N selection ----------------
def top_n(aggregates: Sequence[AggregateRecord], metric: str, n: int = TOP_N) -> Ranking:
    """Return the `n` event types with the largest `metric`, descending.

    A min-heap of size n keeps the current best candidates. Entries are keyed
    by (value, -position), so on equal values the event type aggregated first
    ranks higher. Fewer than n categories simply yields a shorter list.
    """
    key = _field_key(metric)
    if n <= 0:
        return []
    heap: List[Tuple[float, int]] = []
    for pos, a in enumerate(aggregates):
        item = (key(a), -pos)
        if len(heap) < n:
            heapq.heappush(heap, item)
        elif item > heap[0]:
            heapq.heapreplace(heap, item)
    heap.sort(reverse=True)
    return [(aggregates[-neg_pos].event_type, v) for v, neg_pos in heap]

def top_all(aggregates: Sequence[AggregateRecord], n: int = TOP_N) -> Dict[str, Ranking]:
    """Run `top_n` independently for every metric."""
    return {m: top_n(aggregates, m, n) for m in METRICS}

def rank(aggregates: Sequence[AggregateRecord], metric: str) -> Ranking:
    """Full descending ranking, stable with respect to aggregation order."""
    key = _field_key(metric)
    # sorted() keeps equal keys in input order even with reverse=True
    ordered = sorted(aggregates, key=key, reverse=True)
    return [(a.event_type, key(a)) for a in ordered]

# ---------------- Helpers ----------------
_ALIASES = {
    "fatalities": "fatalities",
    "deaths": "fatalities",
    "injuries": "injuries",
    "property": "property_damage",
    "property_damage": "property_damage",
    "prop": "property_damage",
    "crop": "crop_damage",
    "crops": "crop_damage",
    "crop_damage": "crop_damage",
    "total": "total_damage",
    "total_damage": "total_damage",
    "damage": "total_damage",
    "economic": "total_damage",
}

def resolve_metric(name: str) -> str:
    """Map a metric name or alias to one of METRICS."""
    f = name.lower().strip()
    if f not in _ALIASES:
        raise ValueError(f"metric must be one of: {', '.join(METRICS)}")
    return _ALIASES[f]

def _field_key(metric: str) -> Callable[[AggregateRecord], float]:
    field = resolve_metric(metric)
    return lambda a: getattr(a, field)
