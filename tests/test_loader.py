import math
import os

import pytest
import requests

from stormrep import loader
from stormrep.loader import (
    FetchError,
    LoaderConfig,
    MalformedRecordError,
    ParseError,
    REQUIRED_COLUMNS,
    fetch,
    load_records,
    load_storm_data,
    read_table,
    to_raw_record,
)
from stormrep.engine import StormEngine


class FakeResponse:
    def __init__(self, status=200, chunks=(b"payload-",  b"bytes")):
        self.status_code = status
        self.chunks = chunks

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error")

    def iter_content(self, chunk_size=1):
        yield from self.chunks


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr(loader.time, "sleep", lambda s: None)


# ---------------- fetch ----------------

def test_fetch_uses_cache_without_network(storm_csv, monkeypatch):
    def boom(*a, **kw):
        raise AssertionError("network should not be used")
    monkeypatch.setattr(loader.requests, "get", boom)
    assert fetch(LoaderConfig(cache_path=storm_csv)) == storm_csv


def test_fetch_downloads_and_retries(tmp_path, monkeypatch):
    calls = []

    def fake_get(url, stream, timeout):
        calls.append(url)
        if len(calls) == 1:
            raise requests.ConnectionError("connection reset")
        return FakeResponse()

    monkeypatch.setattr(loader.requests, "get", fake_get)
    target = tmp_path / "cache" / "StormData.csv.bz2"
    cfg = LoaderConfig(url="http://example.test/StormData.csv.bz2", cache_path=str(target), backoff=0)
    assert fetch(cfg) == str(target)
    assert target.read_bytes() == b"payload-bytes"
    assert len(calls) == 2
    assert not os.path.exists(str(target) + ".part")

    # second call is served from the cache
    fetch(cfg)
    assert len(calls) == 2


def test_fetch_gives_up_with_fetch_error(tmp_path, monkeypatch):
    calls = []

    def fake_get(url, stream, timeout):
        calls.append(url)
        raise requests.ConnectionError("unreachable")

    monkeypatch.setattr(loader.requests, "get", fake_get)
    url = "http://example.test/missing.csv.bz2"
    cfg = LoaderConfig(url=url, cache_path=str(tmp_path / "x.csv.bz2"), max_retries=2, backoff=0)
    with pytest.raises(FetchError) as info:
        fetch(cfg)
    assert info.value.url == url
    assert url in str(info.value)
    assert len(calls) == 3
    assert not (tmp_path / "x.csv.bz2").exists()


def test_fetch_non_success_status(tmp_path, monkeypatch):
    monkeypatch.setattr(loader.requests, "get", lambda url, stream, timeout: FakeResponse(status=404))
    cfg = LoaderConfig(cache_path=str(tmp_path / "x.csv.bz2"), max_retries=0)
    with pytest.raises(FetchError, match="404"):
        fetch(cfg)


# ---------------- parse ----------------

def test_read_table_keeps_required_columns(storm_csv):
    df = read_table(storm_csv)
    assert list(df.columns) == list(REQUIRED_COLUMNS)
    assert len(df) == 7


def test_read_table_matches_column_names_loosely(write_csv):
    cols = ["evtype", "Fatalities", "injuries", "propdmg", "PropDmgExp", "cropdmg", "cropdmgexp"]
    path = write_csv("lower.csv", [("FLOOD", 1, 2, 3.0, "K", 0.0, "")], columns=cols)
    df = read_table(path)
    assert list(df.columns) == list(REQUIRED_COLUMNS)
    assert df.iloc[0]["EVTYPE"] == "FLOOD"


def test_read_table_missing_column(write_csv):
    cols = ["EVTYPE", "FATALITIES", "INJURIES", "PROPDMG", "PROPDMGEXP", "CROPDMG", "OTHER"]
    path = write_csv("short.csv", [("FLOOD", 1, 2, 3.0, "K", 0.0, "")], columns=cols)
    with pytest.raises(ParseError, match="CROPDMGEXP"):
        read_table(path)


def test_read_table_rejects_corrupt_archive(tmp_path):
    path = tmp_path / "StormData.csv.bz2"
    path.write_bytes(b"<html>not a bzip2 archive</html>")
    with pytest.raises(ParseError):
        read_table(str(path))


def test_read_table_rejects_empty_file(tmp_path):
    path = tmp_path / "empty.csv"
    path.write_text("")
    with pytest.raises(ParseError):
        read_table(str(path))


# ---------------- records ----------------

def test_to_raw_record_types_values():
    rec = to_raw_record(("TORNADO", "5", "10.0", "25", "k", "0", float("nan")), 0)
    assert rec.event_type == "TORNADO"
    assert (rec.fatalities, rec.injuries) == (5, 10)
    assert rec.property_magnitude == 25.0
    assert rec.property_code == "k"
    assert rec.crop_code is None


@pytest.mark.parametrize("values,field", [
    ((float("nan"), "0", "0", "0", "K", "0", "K"), "EVTYPE"),
    (("FLOOD", float("nan"), "0", "0", "K", "0", "K"), "FATALITIES"),
    (("FLOOD", "0", "many", "0", "K", "0", "K"), "INJURIES"),
    (("FLOOD", "0", "0", "-1", "K", "0", "K"), "PROPDMG"),
    (("FLOOD", "0", "0", "1", "K", float("nan"), "K"), "CROPDMG"),
    (("FLOOD", "inf", "0", "0", "K", "0", "K"), "FATALITIES"),
    (("FLOOD", "0", "1e400", "0", "K", "0", "K"), "INJURIES"),
    (("FLOOD", "2.7", "0", "0", "K", "0", "K"), "FATALITIES"),
    (("FLOOD", "0", "0", "inf", "X", "0", None), "PROPDMG"),
    (("FLOOD", "0", "0", "0", None, "-inf", None), "CROPDMG"),
])
def test_to_raw_record_rejects_missing_numbers(values, field):
    with pytest.raises(MalformedRecordError) as info:
        to_raw_record(values, 12)
    assert info.value.field == field
    assert info.value.row == 12


def test_to_raw_record_accepts_whole_counts_written_as_decimals():
    rec = to_raw_record(("FLOOD", "0.00", "3.0", "1e3", "K", "0", None), 0)
    assert (rec.fatalities, rec.injuries) == (0, 3)
    assert rec.property_magnitude == 1000.0


def test_load_records_skips_non_finite_and_fractional_rows(write_csv):
    rows = [
        ("FLOOD", "1", "0", "2.0", "K", "0", ""),
        ("FLOOD", "inf", "0", "0", "", "0", ""),
        ("FLOOD", "0", "1e400", "0", "", "0", ""),
        ("FLOOD", "2.7", "0", "0", "", "0", ""),
        ("HAIL", "0", "0", "inf", "X", "0", ""),
    ]
    result = load_records(write_csv("bad_numbers.csv", rows), on_malformed="skip")
    assert result.skipped == 4
    assert len(result.records) == 1
    engine = StormEngine.from_raw(result.records)
    assert [a.event_type for a in engine.aggregates] == ["FLOOD"]
    assert math.isfinite(engine.aggregates[0].total_damage)


def test_load_records_keeps_label_as_given(write_csv):
    path = write_csv("labels.csv", [("TSTM WIND", 0, 1, 0.0, "", 0.0, ""), ("Tstm Wind", 0, 1, 0.0, "", 0.0, "")])
    result = load_records(path)
    assert [r.event_type for r in result.records] == ["TSTM WIND", "Tstm Wind"]


def test_load_records_skips_and_counts(malformed_csv):
    result = load_records(malformed_csv, on_malformed="skip")
    assert result.skipped == 1
    assert len(result.records) == 7
    assert result.path == malformed_csv


def test_load_records_abort_policy(malformed_csv):
    with pytest.raises(MalformedRecordError, match="FATALITIES"):
        load_records(malformed_csv, on_malformed="abort")


def test_load_records_unknown_policy(storm_csv):
    with pytest.raises(ValueError):
        load_records(storm_csv, on_malformed="ignore")


def test_load_storm_data_end_to_end(storm_csv):
    result = load_storm_data(LoaderConfig(cache_path=storm_csv))
    engine = StormEngine.from_raw(result.records)
    assert engine.lookup("TORNADO").fatalities == 8
    assert math.isclose(engine.lookup("TORNADO").property_damage, 0.002525)
    assert engine.lookup("FLOOD").crop_damage == pytest.approx(0.000005)


def test_running_twice_on_cached_file_is_identical(storm_csv):
    first = StormEngine.from_raw(load_storm_data(LoaderConfig(cache_path=storm_csv)).records)
    second = StormEngine.from_raw(load_storm_data(LoaderConfig(cache_path=storm_csv)).records)
    assert first.aggregates == second.aggregates
