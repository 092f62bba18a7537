import numpy as np
import pandas as pd
import pytest

from transmissibility.estimate import (
    REstimates,
    TimeWindow,
    estimate_r,
    estimate_window,
    sliding_windows,
    weekly_windows,
)
from transmissibility.incidence import IncidenceSeries
from transmissibility.serial_interval import SerialIntervalSampler, ShiftedGamma


def growing_series(n=30, r=0.08, start="2014-06-01"):
    t = np.arange(n)
    return IncidenceSeries(np.round(5 * np.exp(r * t)).astype(int), start=start)


def test_weekly_windows():
    assert weekly_windows(20) == [(2, 8), (9, 15), (16, 20)]
    assert weekly_windows(8) == [(2, 8)]
    assert weekly_windows(10, width=3) == [(2, 4), (5, 7), (8, 10)]
    with pytest.raises(ValueError):
        weekly_windows(1)


def test_sliding_windows():
    assert sliding_windows(10) == [(2, 8), (3, 9), (4, 10)]
    assert all(w.end - w.start == 6 for w in sliding_windows(30))
    with pytest.raises(ValueError):
        sliding_windows(7)


def test_estimate_r_default_windows():
    series = growing_series()
    si = ShiftedGamma(8.6, 6.3)
    estimates = estimate_r(series, si)

    assert isinstance(estimates, REstimates)
    assert [(p.t_start, p.t_end) for p in estimates] == [(2, 8), (9, 15), (16, 22), (23, 29), (30, 30)]
    assert estimates.last().t_end == 30
    # Each window is estimated on its own
    solo = estimate_window(series, si, (9, 15))
    assert estimates[1].mean == pytest.approx(solo.mean)


def test_estimates_are_ordered_by_start():
    series = growing_series()
    windows = [TimeWindow(20, 26), (5, 11), (2, 30)]
    estimates = estimate_r(series, ShiftedGamma(8.6, 6.3), windows=windows)
    assert [p.t_start for p in estimates] == [2, 5, 20]


def test_one_bad_window_aborts_the_run():
    series = growing_series()
    with pytest.raises(ValueError):
        estimate_r(series, ShiftedGamma(8.6, 6.3), windows=[(2, 8), (1, 7)])
    with pytest.raises(ValueError):
        estimate_r(series, ShiftedGamma(8.6, 6.3), windows=[])


def test_estimates_with_serial_interval_draws():
    series = growing_series()
    draws = [ShiftedGamma(m, 0.7 * m) for m in (6.0, 8.0, 10.0)]
    estimates = estimate_r(series, draws, windows=sliding_windows(len(series)))
    assert len(estimates) == 23
    assert all(p.is_mixture for p in estimates)


def test_frame_and_csv(tmp_path):
    series = growing_series()
    estimates = estimate_r(series, ShiftedGamma(8.6, 6.3))
    df = estimates.to_frame()

    assert len(df) == len(estimates)
    for col in ("t_start", "t_end", "date_start", "date_end", "mean", "std", "median", "q2.5", "q97.5", "warnings"):
        assert col in df.columns
    assert df["date_start"].iloc[0] == pd.Timestamp("2014-06-02")
    assert df["date_end"].iloc[-1] == pd.Timestamp("2014-06-30")
    assert np.all(df["q2.5"] <= df["median"])
    assert np.all(df["median"] <= df["q97.5"])

    path = estimates.to_csv(tmp_path / "out" / "r.csv")
    loaded = pd.read_csv(path)
    assert loaded["t_start"].tolist() == df["t_start"].tolist()


def test_warnings_are_collected():
    series = IncidenceSeries([0] * 8 + [1, 2, 3, 5, 8, 13, 21])
    estimates = estimate_r(series, ShiftedGamma(8.6, 6.3))
    # First window has no cases at all
    assert any(w.startswith("[2, 8]") for w in estimates.warnings)


class FixedDrawsSampler(SerialIntervalSampler):
    """Hands out the same serial interval draws with a chosen convergence flag."""

    def __init__(self, ok):
        self.ok = ok
        self.requested = None

    def sample(self, n_draws, rng=None):
        self.requested = n_draws
        means = np.linspace(6.0, 10.0, n_draws)
        return [ShiftedGamma(m, 0.7 * m) for m in means]

    def converged(self):
        return self.ok


def test_estimates_from_a_sampler_carry_its_convergence():
    series = growing_series()
    good = FixedDrawsSampler(True)
    estimates = estimate_r(series, good, n_si_draws=5)
    assert good.requested == 5
    assert all(p.is_mixture for p in estimates)
    assert not any("did not converge" in w for p in estimates for w in p.warnings)

    bad = estimate_r(series, FixedDrawsSampler(False), n_si_draws=5)
    assert all(any("did not converge" in w for w in p.warnings) for p in bad)
    assert [p.mean for p in bad] == pytest.approx([p.mean for p in estimates])


def test_weekly_series_cannot_be_estimated():
    weekly = growing_series(n=70).aggregate_weekly()
    with pytest.raises(ValueError, match="daily"):
        estimate_r(weekly, ShiftedGamma(8.6, 6.3), windows=[(2, 5)])
