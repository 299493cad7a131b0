"""
Dataset loader (NOAA Storm Data CSV -> RawRecord list)
======================================================

This module downloads the compressed NOAA Storm Data export once, caches it
on disk, and converts each row into an immutable `RawRecord`.

Key ideas:
- The download is idempotent: if the cached file exists, no network call is made.
- Only the seven columns the analysis needs are read, and their presence is
  checked up front (schema mismatch -> ParseError).
- Conversion helpers (_to_int/_to_float/_to_code) turn blanks into None so
  that a row missing a required number is reported, never silently zeroed.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
import logging
import math
import os
import re
import time

import pandas as pd
import requests

from .models import RawRecord

logger = logging.getLogger(__name__)

SOURCE_URL = "https://d396qusza40orc.cloudfront.net/repdata%2Fdata%2FStormData.csv.bz2"
DEFAULT_CACHE_PATH = os.path.join("data", "StormData.csv.bz2")

REQUIRED_COLUMNS: Tuple[str, ...] = (
    "EVTYPE",
    "FATALITIES",
    "INJURIES",
    "PROPDMG",
    "PROPDMGEXP",
    "CROPDMG",
    "CROPDMGEXP",
)

MALFORMED_POLICIES = ("skip", "abort")

# -----------------------------
# Errors
# -----------------------------

class StormDataError(RuntimeError):
    """Base class for everything that can go wrong while loading the dataset."""

class FetchError(StormDataError):
    def __init__(self, url: str, reason: str):
        super().__init__(f"Could not fetch {url}: {reason}")
        self.url = url
        self.reason = reason

class ParseError(StormDataError):
    pass

class MalformedRecordError(StormDataError):
    def __init__(self, row: int, field: str, value: object):
        super().__init__(f"Row {row}: invalid {field} value {value!r}")
        self.row = row
        self.field = field
        self.value = value

# -----------------------------
# Configuration / results
# -----------------------------

@dataclass
class LoaderConfig:
    """Where the data comes from and how hard to try to get it."""
    url: str = SOURCE_URL
    cache_path: str = DEFAULT_CACHE_PATH
    timeout: float = 60.0
    max_retries: int = 3
    # seconds; attempt k waits backoff * 2**k
    backoff: float = 1.0
    # what to do with rows missing a required number: "skip" or "abort"
    on_malformed: str = "skip"

@dataclass(frozen=True)
class LoadResult:
    records: Tuple[RawRecord, ...]
    skipped: int
    path: str

# -----------------------------
# Fetch (network + cache)
# -----------------------------

def fetch(config: LoaderConfig) -> str:
    """Download the dataset to `config.cache_path` unless it is already there.

    Returns:
        Path of the cached file.

    Raises:
        FetchError: the source could not be retrieved after all retries.
    """
    path = config.cache_path
    if os.path.exists(path) and os.path.getsize(path) > 0:
        logger.info(f"Using cached dataset: {path}")
        return path

    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    part = path + ".part"
    attempts = config.max_retries + 1
    last_error: Optional[Exception] = None

    for attempt in range(attempts):
        try:
            logger.info(f"Downloading {config.url} (attempt {attempt + 1}/{attempts})")
            with requests.get(config.url, stream=True, timeout=config.timeout) as response:
                response.raise_for_status()
                with open(part, "wb") as f:
                    for chunk in response.iter_content(chunk_size=1 << 20):
                        if chunk:
                            f.write(chunk)
            os.replace(part, path)
            logger.info(f"Saved dataset to {path} ({os.path.getsize(path)} bytes)")
            return path
        except requests.RequestException as e:
            last_error = e
            if attempt + 1 < attempts:
                wait_time = config.backoff * 2 ** attempt
                logger.warning(f"Download failed (attempt {attempt + 1}/{attempts}): {e}")
                logger.info(f"Retrying in {wait_time:g} seconds...")
                time.sleep(wait_time)

    if os.path.exists(part):
        os.remove(part)
    logger.error(f"Failed to fetch dataset after {attempts} attempts: {last_error}")
    raise FetchError(config.url, str(last_error)) from last_error

# -----------------------------
# Parse (file -> DataFrame)
# -----------------------------

def _norm(s: str) -> str:
    return re.sub(r"[^a-z0-9]+", "", str(s).lower())

_REQUIRED_NORM = {_norm(c) for c in REQUIRED_COLUMNS}

def _col(df: pd.DataFrame, name: str) -> str:
    cols = list(df.columns)
    if name in cols:
        return name
    norm_map = {_norm(c): c for c in cols}
    if _norm(name) in norm_map:
        return norm_map[_norm(name)]
    raise ParseError(f"Missing required column {name!r}. Available={cols}")

def read_table(path: str) -> pd.DataFrame:
    """Parse the (compressed) CSV into a DataFrame with the required columns.

    Every column is read as text; typing happens per row in `to_raw_record`.
    Columns are renamed to the canonical REQUIRED_COLUMNS names.
    """
    try:
        df = pd.read_csv(
            path,
            usecols=lambda c: _norm(c) in _REQUIRED_NORM,
            dtype=str,
            encoding="latin-1",
            compression="infer",
        )
    except FileNotFoundError:
        raise
    except (pd.errors.ParserError, pd.errors.EmptyDataError, OSError, EOFError, ValueError) as e:
        raise ParseError(f"{path} is not a readable CSV file: {e}") from e

    rename = {_col(df, c): c for c in REQUIRED_COLUMNS}
    df = df.rename(columns=rename)
    logger.debug(f"Parsed {len(df)} rows from {path}")
    return df[list(REQUIRED_COLUMNS)]

# -----------------------------
# Rows -> RawRecord
# -----------------------------

def _to_int(x) -> Optional[int]:
    """Convert a cell to int, returning None if missing/invalid/fractional."""
    f = _to_float(x)
    if f is None or f != int(f): return None
    return int(f)

def _to_float(x) -> Optional[float]:
    """Convert a cell to a finite float, returning None if missing/invalid."""
    if pd.isna(x): return None
    try: f = float(x)
    except (TypeError, ValueError): return None
    return f if math.isfinite(f) else None

def _to_code(x) -> Optional[str]:
    if pd.isna(x): return None
    return str(x)

def to_raw_record(values: Sequence, row: int) -> RawRecord:
    """Type one row given in REQUIRED_COLUMNS order.

    Raises:
        MalformedRecordError: event type missing, or a count/magnitude is
        missing, not a finite number, or negative, or a count is fractional.
    """
    evtype, fat, inj, pdmg, pexp, cdmg, cexp = values

    if pd.isna(evtype) or str(evtype) == "":
        raise MalformedRecordError(row, "EVTYPE", evtype)
    event_type = str(evtype)

    counts: List[int] = []
    for name, raw in (("FATALITIES", fat), ("INJURIES", inj)):
        v = _to_int(raw)
        if v is None or v < 0:
            raise MalformedRecordError(row, name, raw)
        counts.append(v)

    magnitudes: List[float] = []
    for name, raw in (("PROPDMG", pdmg), ("CROPDMG", cdmg)):
        v = _to_float(raw)
        if v is None or v < 0:
            raise MalformedRecordError(row, name, raw)
        magnitudes.append(v)

    return RawRecord(
        event_type=event_type,
        fatalities=counts[0],
        injuries=counts[1],
        property_magnitude=magnitudes[0],
        property_code=_to_code(pexp),
        crop_magnitude=magnitudes[1],
        crop_code=_to_code(cexp),
    )

def load_records(path: str, on_malformed: str = "skip") -> LoadResult:
    """Read a cached file and convert every row to a RawRecord.

    With on_malformed="skip", bad rows are counted and logged; with "abort",
    the first MalformedRecordError propagates.
    """
    if on_malformed not in MALFORMED_POLICIES:
        raise ValueError(f"on_malformed must be one of {MALFORMED_POLICIES}")

    df = read_table(path)
    records: List[RawRecord] = []
    skipped = 0
    for i, values in enumerate(df.itertuples(index=False, name=None)):
        try:
            records.append(to_raw_record(values, i))
        except MalformedRecordError as e:
            if on_malformed == "abort":
                raise
            skipped += 1
            logger.debug(f"Skipping malformed row: {e}")

    if skipped:
        logger.warning(f"Skipped {skipped} malformed rows out of {len(df)}")
    logger.info(f"Loaded {len(records)} records from {path}")
    return LoadResult(records=tuple(records), skipped=skipped, path=path)

def load_storm_data(config: Optional[LoaderConfig] = None) -> LoadResult:
    """Fetch (or reuse the cached copy of) the dataset and load it."""
    config = config or LoaderConfig()
    path = fetch(config)
    return load_records(path, on_malformed=config.on_malformed)
