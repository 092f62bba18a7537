import numpy as np
import pandas as pd
import pytest

from transmissibility.incidence import DEFAULT_START, IncidenceSeries


def test_default_calendar_and_read_only_counts():
    series = IncidenceSeries([4, 3, 4, 6])
    assert len(series) == 4
    assert series.total == 17
    assert series.dates[0] == DEFAULT_START
    assert np.all(np.diff(series.dates).astype(int) == 1)
    with pytest.raises(ValueError):
        series.counts[0] = 10


def test_invalid_counts_and_dates():
    with pytest.raises(ValueError):
        IncidenceSeries([1, -1, 2])
    with pytest.raises(ValueError):
        IncidenceSeries([1.5, 2])
    with pytest.raises(ValueError):
        IncidenceSeries([[1, 2], [3, 4]])
    # A missing day must be an explicit zero, not a gap
    with pytest.raises(ValueError):
        IncidenceSeries([1, 2], dates=["2014-01-01", "2014-01-03"])
    with pytest.raises(ValueError):
        IncidenceSeries([1, 2, 3], dates=["2014-01-01", "2014-01-02"])
    with pytest.raises(ValueError, match="integers"):
        IncidenceSeries(["4", "x", "2"])
    with pytest.raises(ValueError, match="integers"):
        IncidenceSeries([4, None, 2])


def test_from_onset_dates_fills_zero_days():
    onsets = ["2014-01-01", "2014-01-01", "2014-01-04", None, "not a date"]
    series = IncidenceSeries.from_onset_dates(onsets)
    assert series.counts.tolist() == [2, 0, 0, 1]
    assert series.dates[0] == np.datetime64("2014-01-01")
    assert series.dates[-1] == np.datetime64("2014-01-04")


def test_from_onset_dates_with_explicit_range():
    onsets = ["2014-01-02", "2014-01-03", "2014-01-09"]
    series = IncidenceSeries.from_onset_dates(onsets, first_date="2014-01-01", last_date="2014-01-05")
    # The onset on the 9th is outside the range and dropped
    assert series.counts.tolist() == [0, 1, 1, 0, 0]

    with pytest.raises(ValueError):
        IncidenceSeries.from_onset_dates([None])
    with pytest.raises(ValueError):
        IncidenceSeries.from_onset_dates(onsets, first_date="2014-01-05", last_date="2014-01-01")


def test_truncate_and_head_leave_original_untouched():
    series = IncidenceSeries(np.arange(10), start="2014-04-01")
    short = series.truncate(3)
    assert len(short) == 7
    assert short.dates[-1] == np.datetime64("2014-04-07")
    assert len(series) == 10

    assert series.head(2).counts.tolist() == [0, 1]
    assert len(series.truncate(0)) == 10
    with pytest.raises(ValueError):
        series.truncate(11)


def test_aggregate_weekly_drops_partial_week():
    series = IncidenceSeries(np.ones(17, dtype=int), start="2014-04-01")
    weekly = series.aggregate_weekly()
    assert weekly.interval == 7
    assert weekly.counts.tolist() == [7, 7]
    assert np.array_equal(weekly.dates, np.array(["2014-04-01", "2014-04-08"], dtype="datetime64[D]"))

    with pytest.raises(ValueError):
        weekly.aggregate_weekly()


def test_first_nonzero_day():
    assert IncidenceSeries([0, 0, 3, 1]).first_nonzero_day() == 3
    assert IncidenceSeries([0, 0]).first_nonzero_day() is None


def test_csv_round_trip(tmp_path):
    series = IncidenceSeries([4, 3, 0, 6, 9], start="2014-04-01")
    path = series.to_csv(tmp_path / "incidence.csv")

    df = pd.read_csv(path)
    assert list(df.columns) == ["date", "count"]
    assert df["date"].iloc[0] == "2014-04-01"

    loaded = IncidenceSeries.from_csv(path)
    assert loaded.counts.tolist() == series.counts.tolist()
    assert np.array_equal(loaded.dates, series.dates)
    assert loaded.interval == 1

    with pytest.raises(FileNotFoundError):
        IncidenceSeries.from_csv(tmp_path / "missing.csv")
    with pytest.raises(ValueError):
        IncidenceSeries.from_frame(df.rename(columns={"count": "cases"}))


def test_from_frame_checks_step_and_counts():
    weekly = IncidenceSeries.from_frame(pd.DataFrame({
        "date": ["2014-04-01", "2014-04-08", "2014-04-15"],
        "count": [10, 14, 9],
    }))
    assert weekly.interval == 7
    assert weekly.total == 33

    # Rows two days apart are neither daily nor weekly
    with pytest.raises(ValueError, match="1 or 7 days"):
        IncidenceSeries.from_frame(pd.DataFrame({
            "date": ["2014-04-01", "2014-04-03", "2014-04-05"],
            "count": [1, 2, 3],
        }))
    with pytest.raises(ValueError, match="integers"):
        IncidenceSeries.from_frame(pd.DataFrame({
            "date": ["2014-04-01", "2014-04-02"],
            "count": ["3", "three"],
        }))


def test_require_daily():
    series = IncidenceSeries(np.arange(14))
    assert series.require_daily() is series
    with pytest.raises(ValueError, match="daily"):
        series.aggregate_weekly().require_daily()
