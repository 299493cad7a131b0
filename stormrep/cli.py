"""
stormrep Command Line Interface (CLI)
=====================================

Run the whole analysis once:

    python -m stormrep.cli
    python -m stormrep.cli --report storm_report.docx --export aggregates.csv

The first run downloads the NOAA Storm Data file into the cache path; later
runs reuse it. With `--interactive`, a small REPL (Read-Eval-Print Loop) lets
you look at other rankings and write exports/reports from the same run.

The CLI DOES NOT modify the dataset file. It loads it once and works on the
in-memory results.
"""

from __future__ import annotations
import argparse, logging, os, shlex, sys
from typing import List, Optional, Tuple
from .loader import LoaderConfig, MALFORMED_POLICIES, SOURCE_URL, DEFAULT_CACHE_PATH, StormDataError, load_storm_data
from .engine import StormEngine, TOP_N, resolve_metric
from .models import METRICS, METRIC_LABELS

logger = logging.getLogger(__name__)

HELP = """
Commands:
  help
  stats
  top <metric> [n]                 (example: top deaths 10)
  rank <metric> [n]                (full ranking, first n rows; default 20)
  show "<EVENT TYPE>"              (example: show "TORNADO")
  values [prefix]                  (example: values FLOOD)
  summary
  export csv|json "<path>"         (example: export csv "aggregates.csv")
  report "<path.docx>"
  quit

Metrics: fatalities (deaths), injuries, property_damage (property),
         crop_damage (crop), total_damage (damage, economic)
"""


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="stormrep",
        description="Health and economic impact of severe weather events (NOAA Storm Data).",
    )
    ap.add_argument("--url", default=SOURCE_URL, help="Location of the compressed StormData CSV")
    ap.add_argument("--cache", default=DEFAULT_CACHE_PATH, help="Local path of the cached dataset")
    ap.add_argument("--timeout", type=float, default=60.0, help="Download timeout in seconds")
    ap.add_argument("--retries", type=int, default=3, help="Download retries after the first attempt")
    ap.add_argument("--on-malformed", choices=MALFORMED_POLICIES, default="skip",
                    help="Skip and count rows missing required numbers, or abort on the first one")
    ap.add_argument("--top", type=int, default=TOP_N, help="How many event types per ranking")
    ap.add_argument("--report", help="Write a DOCX report to this path")
    ap.add_argument("--export", help="Write the aggregate table (.csv or .json)")
    ap.add_argument("--interactive", action="store_true", help="Start a REPL after the run")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the stormrep CLI.

    1) Load dataset (download once, then cached)
    2) Normalize + aggregate
    3) Print the Top-N results for every metric
    4) Optionally export, report, or start a REPL
    """
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    config = LoaderConfig(
        url=args.url,
        cache_path=args.cache,
        timeout=args.timeout,
        max_retries=args.retries,
        on_malformed=args.on_malformed,
    )
    try:
        loaded = load_storm_data(config)
    except StormDataError as e:
        logger.error(str(e))
        return 1

    engine = StormEngine.from_raw(loaded.records, skipped=loaded.skipped, source_path=loaded.path)
    print(f"Loaded {len(engine.records)} events ({engine.skipped} skipped), "
          f"{len(engine.aggregates)} event types.")
    _print_results(engine, args.top)

    if args.export:
        _export(engine, args.export)
    if args.report:
        _report(engine, args.report, args.top)

    if args.interactive:
        repl(engine)
    return 0


def repl(engine: StormEngine) -> None:
    print("Type 'help' for commands.")
    while True:
        try:
            line = input("stormrep> ")
        except EOFError:
            break
        if not line.strip():
            continue
        if line.strip().lower() in ("quit", "exit"):
            break
        try:
            handle(engine, line)
        except (ValueError, OSError, ImportError) as e:
            print(f"Error: {e}")


def handle(engine: StormEngine, line: str) -> None:
    """Handle one REPL command line."""
    parts = shlex.split(line)
    cmd = parts[0].lower()

    if cmd == "help":
        print(HELP)
        return

    if cmd == "stats":
        print(f"Events: {len(engine.records)} | Skipped: {engine.skipped} | Event types: {len(engine.aggregates)}")
        return

    if cmd == "summary":
        from .report import health_summary, economic_summary
        print(health_summary(engine.aggregates))
        print(economic_summary(engine.aggregates))
        return

    if cmd == "top":
        if len(parts) < 2:
            raise ValueError("usage: top <metric> [n]")
        metric = resolve_metric(parts[1])
        n = int(parts[2]) if len(parts) >= 3 else TOP_N
        _print_ranking(metric, engine.top(metric, n))
        return

    if cmd == "rank":
        if len(parts) < 2:
            raise ValueError("usage: rank <metric> [n]")
        metric = resolve_metric(parts[1])
        n = int(parts[2]) if len(parts) >= 3 else 20
        out = engine.rank(metric)
        _print_ranking(metric, out[:n])
        if len(out) > n:
            print(f"... ({len(out)} total, showing {n})")
        return

    if cmd == "show":
        if len(parts) < 2:
            raise ValueError('usage: show "<EVENT TYPE>"')
        a = engine.lookup(parts[1])
        if a is None:
            print(f"No event type {parts[1]!r}.")
            return
        for m in METRICS:
            print(f"  {METRIC_LABELS[m]}: {_fmt(m, a.metric(m))}")
        return

    if cmd == "values":
        prefix = parts[1].lower() if len(parts) >= 2 else ""
        vals = sorted(a.event_type for a in engine.aggregates)
        if prefix:
            vals = [v for v in vals if v.lower().startswith(prefix)]
        for v in vals[:50]:
            print(v)
        if len(vals) > 50:
            print(f"... ({len(vals)} total, showing 50)")
        return

    if cmd == "export":
        if len(parts) < 3:
            print('Usage: export csv "out.csv"  OR  export json "out.json"')
            return
        fmt, out_path = parts[1].lower(), parts[2]
        if fmt not in ("csv", "json"):
            print("Unknown export format. Use: csv or json")
            return
        _export(engine, out_path, fmt)
        return

    if cmd == "report":
        if len(parts) < 2:
            raise ValueError('usage: report "<path.docx>"')
        _report(engine, parts[1], TOP_N)
        return

    print("Unknown command. Type 'help'.")


def _export(engine: StormEngine, path: str, fmt: Optional[str] = None) -> None:
    fmt = fmt or ("json" if path.lower().endswith(".json") else "csv")
    if fmt == "json":
        engine.export_json(path)
    else:
        engine.export_csv(path)
    print(f"Exported {fmt.upper()} to {path}")


def _report(engine: StormEngine, path: str, top: int) -> None:
    from .report import generate_docx_report, ReportConfig, DatasetCitation
    fn = os.path.basename(engine.source_path) if engine.source_path else None
    cfg = ReportConfig(citation=DatasetCitation(file_name=fn), top_n=top)
    generate_docx_report(engine, path, config=cfg)
    print(f"Report written to {path}")


def _print_results(engine: StormEngine, n: int) -> None:
    for metric, ranking in engine.top_all(n).items():
        _print_ranking(metric, ranking)


def _print_ranking(metric: str, ranking: List[Tuple[str, float]]) -> None:
    print(f"\nTop {len(ranking)} by {METRIC_LABELS[metric]}:")
    for i, (label, value) in enumerate(ranking, start=1):
        print(f"  {i}. {label:<30} {_fmt(metric, value)}")


def _fmt(metric: str, value: float) -> str:
    if metric in ("fatalities", "injuries"):
        return f"{int(value):,}"
    return f"{value:,.6f}"


if __name__ == "__main__":
    sys.exit(main())
