import pandas as pd
import pytest

from stormrep.models import AggregateRecord, RawRecord


SAMPLE_ROWS = [
    # EVTYPE, FATALITIES, INJURIES, PROPDMG, PROPDMGEXP, CROPDMG, CROPDMGEXP
    ("TORNADO", 5, 10, 25.0, "K", 0.0, ""),
    ("TORNADO", 3, 2, 2.5, "M", 1.0, "m"),
    ("FLOOD", 0, 1, 1.5, "B", 3.0, "X"),
    ("FLOOD", 1, 0, 10.0, "h", 5.0, "k"),
    ("TSTM WIND", 0, 4, 50.0, "K", 0.0, ""),
    ("HAIL", 0, 0, 0.0, "B", 0.0, "B"),
    ("EXCESSIVE HEAT", 4, 20, 0.0, "", 0.0, ""),
]

COLUMNS = ["EVTYPE", "FATALITIES", "INJURIES", "PROPDMG", "PROPDMGEXP", "CROPDMG", "CROPDMGEXP"]


def _write(path, rows, columns=COLUMNS):
    df = pd.DataFrame(rows, columns=columns)
    # extra columns like the real export, which the loader must ignore
    df.insert(0, "STATE", "AL")
    df["REMARKS"] = "remark, with a comma"
    df.to_csv(path, index=False)
    return str(path)


@pytest.fixture
def storm_csv(tmp_path):
    """A small bzip2 StormData file in the real column layout."""
    return _write(tmp_path / "StormData.csv.bz2", SAMPLE_ROWS)


@pytest.fixture
def malformed_csv(tmp_path):
    rows = SAMPLE_ROWS + [("FLOOD", None, 1, 2.0, "K", 0.0, "")]
    return _write(tmp_path / "StormData.csv.bz2", rows)


@pytest.fixture
def write_csv(tmp_path):
    def _factory(name, rows, columns=COLUMNS):
        return _write(tmp_path / name, rows, columns)
    return _factory


@pytest.fixture
def raw_records():
    return [
        RawRecord(
            event_type=e, fatalities=f, injuries=i,
            property_magnitude=p, property_code=pc or None,
            crop_magnitude=c, crop_code=cc or None,
        )
        for e, f, i, p, pc, c, cc in SAMPLE_ROWS
    ]


@pytest.fixture
def three_aggregates():
    return (
        AggregateRecord("TORNADO", fatalities=8, injuries=12, property_damage=0.5, crop_damage=0.1, total_damage=0.6),
        AggregateRecord("FLOOD", fatalities=1, injuries=1, property_damage=1.5, crop_damage=0.0, total_damage=1.5),
        AggregateRecord("HAIL", fatalities=0, injuries=0, property_damage=0.0, crop_damage=0.0, total_damage=0.0),
    )
