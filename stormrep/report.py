from __future__ import annotations

"""
Storm impact report generator
-----------------------------
This module turns the Top-N rankings of a `StormEngine` into a DOCX report
answering the two questions of the analysis:

1. Which event types are most harmful to population health?
2. Which event types have the greatest economic consequences?

Design goals:
- Keep the pipeline usable even if report dependencies are missing (lazy imports).
- One bar chart and one table per metric, grouped under the question it answers.
- The narrative conclusions are plain functions so they can be checked without
  building a document.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple
import logging
import os
import tempfile

from .models import METRIC_LABELS, MULTIPLIERS, AggregateRecord
from .aggregate import by_event_type
from .engine import StormEngine, TOP_N, top_n

logger = logging.getLogger(__name__)

HEALTH_METRICS = ("fatalities", "injuries")
ECONOMIC_METRICS = ("property_damage", "crop_damage", "total_damage")


# -----------------------------
# Configuration / citation types
# -----------------------------

@dataclass
class DatasetCitation:
    """Minimal dataset citation metadata for the DOCX report."""
    database_name: str = "Storm Events Database"
    institutional_author: str = "U.S. National Oceanic and Atmospheric Administration (NOAA)"
    website: str = "https://www.ncdc.noaa.gov/stormevents/"
    file_name: Optional[str] = None
    file_note: Optional[str] = "Compressed CSV export, events from 1950 to November 2011."


@dataclass
class ReportConfig:
    """High-level knobs to control how the report is written."""
    title: str = "Health and Economic Impact of Severe Weather Events"
    subtitle: str = "United States, NOAA Storm Database"
    citation: DatasetCitation = field(default_factory=DatasetCitation)

    # How many event types to show per metric
    top_n: int = TOP_N


# -----------------------------
# Narrative conclusions
# -----------------------------

def health_summary(aggregates: Sequence[AggregateRecord], event_type: str = "TORNADO") -> str:
    """One-line answer to the population health question."""
    a = by_event_type(aggregates).get(event_type)
    if a is None:
        return f"No {event_type} events are present in the dataset."
    text = f"{event_type} events caused {a.fatalities:,} fatalities and {a.injuries:,} injuries"
    if _leads(aggregates, "fatalities", event_type) and _leads(aggregates, "injuries", event_type):
        text += ", the most of any event type"
    return text + "."


def economic_summary(aggregates: Sequence[AggregateRecord], event_type: str = "FLOOD") -> str:
    """One-line answer to the economic consequences question."""
    a = by_event_type(aggregates).get(event_type)
    if a is None:
        return f"No {event_type} events are present in the dataset."
    text = f"{event_type} events caused {a.total_damage:.2f} billion US$ of property and crop damage"
    if _leads(aggregates, "total_damage", event_type):
        text += ", the most of any event type"
    return text + "."


def _leads(aggregates: Sequence[AggregateRecord], metric: str, event_type: str) -> bool:
    best = top_n(aggregates, metric, 1)
    return bool(best) and best[0][0] == event_type


def _format_value(metric: str, value: float) -> str:
    if metric in HEALTH_METRICS:
        return f"{int(value):,}"
    return f"{value:.2f}"


# -----------------------------
# Main entry point used by CLI
# -----------------------------

def generate_docx_report(
    engine: StormEngine,
    out_path: str,
    *,
    config: Optional[ReportConfig] = None,
) -> str:
    """
    Generate a DOCX report + charts from a pipeline run.

    IMPORTANT:
    - This does NOT modify the cached dataset.
    - Rankings come from `engine.top_all`; nothing is recomputed here.
    """
    config = config or ReportConfig()

    # Lazy imports: only required when a report is requested.
    try:
        from docx import Document
        from docx.shared import Pt, Inches
        from docx.enum.text import WD_ALIGN_PARAGRAPH
    except ImportError as e:
        raise ImportError(
            "Missing dependency: python-docx.\n"
            "Install it with: python -m pip install python-docx"
        ) from e

    try:
        import matplotlib
        matplotlib.use("Agg")
        import matplotlib.pyplot as plt
        import numpy as np
    except ImportError as e:
        raise ImportError(
            "Missing dependency: matplotlib (and numpy).\n"
            "Install with: python -m pip install matplotlib numpy"
        ) from e

    if not engine.aggregates:
        raise ValueError("No event types to report on (dataset is empty).")

    rankings = engine.top_all(config.top_n)

    # -----------------------------
    # 1) Charts: one horizontal bar chart per metric
    # -----------------------------
    tmpdir = tempfile.mkdtemp(prefix="stormrep_report_")
    chart_paths = {}

    def _save(filename: str) -> str:
        path = os.path.join(tmpdir, filename)
        plt.tight_layout()
        plt.savefig(path, dpi=200)
        plt.close()
        return path

    def _barh(metric: str, ranking: List[Tuple[str, float]]) -> None:
        labels = [k for k, _ in ranking]
        values = [v for _, v in ranking]
        y = np.arange(len(labels))
        plt.figure(figsize=(7, 3.5))
        plt.barh(y, values, color="C0" if metric in HEALTH_METRICS else "C1")
        plt.yticks(y, labels)
        plt.gca().invert_yaxis()
        plt.title(f"Top {len(labels)} event types by {METRIC_LABELS[metric].lower()}")
        plt.xlabel(METRIC_LABELS[metric])
        chart_paths[metric] = _save(f"top_{metric}.png")

    for metric, ranking in rankings.items():
        if ranking:
            _barh(metric, ranking)
    logger.debug(f"Rendered {len(chart_paths)} charts in {tmpdir}")

    # -----------------------------
    # 2) Build DOCX report
    # -----------------------------
    doc = Document()

    style = doc.styles["Normal"]
    style.font.name = "Calibri"
    style.font.size = Pt(11)

    def _center_title(text: str, size: int, bold: bool = False, italic: bool = False) -> None:
        p = doc.add_paragraph()
        r = p.add_run(text)
        r.bold = bold
        r.italic = italic
        r.font.size = Pt(size)
        p.alignment = WD_ALIGN_PARAGRAPH.CENTER

    def _kv(key: str, value: str) -> None:
        p = doc.add_paragraph()
        r = p.add_run(f"{key}: ")
        r.bold = True
        p.add_run(value)

    def _ranking_table(metric: str, ranking: List[Tuple[str, float]]) -> None:
        t = doc.add_table(rows=1, cols=3)
        h = t.rows[0].cells
        h[0].text = "Rank"
        h[1].text = "Event type"
        h[2].text = METRIC_LABELS[metric]
        for i, (label, value) in enumerate(ranking, start=1):
            r = t.add_row().cells
            r[0].text = str(i)
            r[1].text = label
            r[2].text = _format_value(metric, value)

    def _section(heading: str, metrics: Sequence[str], conclusion: str) -> None:
        doc.add_heading(heading, level=1)
        for metric in metrics:
            ranking = rankings[metric]
            doc.add_heading(METRIC_LABELS[metric], level=2)
            if metric in chart_paths:
                doc.add_picture(chart_paths[metric], width=Inches(6.0))
            _ranking_table(metric, ranking)
            doc.add_paragraph("")
        p = doc.add_paragraph()
        p.add_run("Conclusion: ").bold = True
        p.add_run(conclusion)

    _center_title(config.title, 20, bold=True)
    _center_title(config.subtitle, 12, italic=True)

    doc.add_paragraph("")
    doc.add_heading("Synopsis", level=1)
    doc.add_paragraph(
        "This report explores the NOAA Storm Database to find which types of severe "
        "weather events are most harmful to population health and which have the "
        "greatest economic consequences across the United States. "
        + health_summary(engine.aggregates) + " "
        + economic_summary(engine.aggregates)
    )

    # Dataset citation section
    doc.add_heading("Data", level=1)
    cit = config.citation
    _kv("Source", f"{cit.institutional_author}. {cit.database_name}. {cit.website}")
    if cit.file_name:
        _kv("Data file used", cit.file_name)
    if cit.file_note:
        _kv("File note", cit.file_note)

    # Processing notes
    doc.add_heading("Data processing", level=1)
    _kv("Records used", f"{len(engine.records):,}")
    _kv("Malformed records skipped", f"{engine.skipped:,}")
    _kv("Distinct event types", f"{len(engine.aggregates):,}")
    doc.add_paragraph(
        "Damage estimates are stored as a magnitude plus a suffix code. Codes are "
        "uppercased and resolved with the table below; any other code contributes "
        "zero. Damage is expressed in billions of US$."
    )
    t = doc.add_table(rows=1, cols=2)
    t.rows[0].cells[0].text = "Suffix code"
    t.rows[0].cells[1].text = "Multiplier"
    for code, mult in MULTIPLIERS.items():
        row = t.add_row().cells
        row[0].text = "other" if code.name == "UNRECOGNIZED" else code.value
        row[1].text = f"{mult:g}"
    doc.add_paragraph(
        "Event types are grouped by their exact label; near-duplicate labels "
        "(for example 'TSTM WIND' and 'THUNDERSTORM WIND') are kept separate."
    )

    doc.add_paragraph("")
    _section("Results: population health", HEALTH_METRICS, health_summary(engine.aggregates))
    doc.add_paragraph("")
    _section("Results: economic consequences", ECONOMIC_METRICS, economic_summary(engine.aggregates))

    # -----------------------------
    # Reproducibility footer
    # -----------------------------
    doc.add_paragraph("")
    doc.add_heading("Reproducibility footer", level=1)

    from . import __version__ as stormrep_version
    from datetime import datetime as _dt
    generated_at = _dt.now().isoformat(timespec="seconds")

    doc.add_paragraph(f"stormrep version: {stormrep_version}")
    doc.add_paragraph(f"Report generated at: {generated_at}")
    if engine.source_path:
        doc.add_paragraph(f"Dataset file: {os.path.basename(engine.source_path)}")

    os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
    doc.save(out_path)
    logger.info(f"Report written to {out_path}")
    return out_path
