# src/transmissibility/growth.py
"""
Log-linear growth of an incidence curve.

log(I_t) = a + r t is fitted by least squares on the days with at least one
case. r is the growth rate per day; log(2)/r is the doubling time (r > 0) or
halving time (r < 0). The fit can be split at a date, typically the peak, to
get a growth phase and a decay phase.

r and R are linked through the serial interval (Wallinga & Lipsitch):
R = 1 / sum_k w(k) exp(-r k).
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union
import logging
import math

import numpy as np
import pandas as pd
from scipy.optimize import brentq
from scipy.stats import linregress
from scipy.stats import t as student_t

from .incidence import IncidenceSeries
from .serial_interval import SerialInterval

logger = logging.getLogger(__name__)

LOG2 = math.log(2.0)


@dataclass(frozen=True, eq=False)
class LogLinearFit:
    r: float
    r_ci: Tuple[float, float]
    intercept: float
    residual_sd: float
    n_points: int
    origin: np.datetime64
    x_mean: float
    sxx: float
    dates: np.ndarray
    level: float = 0.95

    @property
    def doubling_time(self) -> Optional[float]:
        return LOG2 / self.r if self.r > 0 else None

    @property
    def halving_time(self) -> Optional[float]:
        return LOG2 / -self.r if self.r < 0 else None

    @property
    def doubling_time_ci(self) -> Optional[Tuple[float, float]]:
        if self.r <= 0:
            return None
        lo, hi = self.r_ci
        return (LOG2 / hi, LOG2 / lo if lo > 0 else math.inf)

    @property
    def halving_time_ci(self) -> Optional[Tuple[float, float]]:
        if self.r >= 0:
            return None
        lo, hi = self.r_ci
        return (LOG2 / -lo, LOG2 / -hi if hi < 0 else math.inf)

    def predict(self, dates=None) -> pd.DataFrame:
        """Fitted incidence with a prediction interval at ``self.level``."""
        d = self.dates if dates is None else np.asarray(pd.to_datetime(pd.Series(list(dates))), dtype="datetime64[D]")
        x = (d - self.origin).astype(int).astype(float)
        fit = self.intercept + self.r * x
        tq = student_t.ppf(0.5 + self.level / 2.0, df=self.n_points - 2)
        se = self.residual_sd * np.sqrt(1.0 + 1.0 / self.n_points + (x - self.x_mean) ** 2 / self.sxx)
        return pd.DataFrame({
            "date": pd.to_datetime(d),
            "fit": np.exp(fit),
            "lwr": np.exp(fit - tq * se),
            "upr": np.exp(fit + tq * se),
        })


def _fit(series: IncidenceSeries, level: float) -> LogLinearFit:
    counts = series.counts
    keep = counts > 0
    n_zero = int((~keep).sum())
    if n_zero:
        logger.warning("Log-linear fit ignores %d time step(s) with zero incidence", n_zero)
    if int(keep.sum()) < 3:
        raise ValueError("Log-linear fit needs at least 3 time steps with non-zero incidence")

    origin = series.dates[0]
    x = (series.dates[keep] - origin).astype(int).astype(float)
    y = np.log(counts[keep].astype(float))
    res = linregress(x, y)

    n = x.size
    resid = y - (res.intercept + res.slope * x)
    residual_sd = float(np.sqrt(np.sum(resid ** 2) / (n - 2)))
    tq = student_t.ppf(0.5 + level / 2.0, df=n - 2)
    r_ci = (float(res.slope - tq * res.stderr), float(res.slope + tq * res.stderr))

    logger.debug("Log-linear fit on %d points: r=%.4f (%.4f, %.4f)", n, res.slope, *r_ci)
    return LogLinearFit(
        r=float(res.slope),
        r_ci=r_ci,
        intercept=float(res.intercept),
        residual_sd=residual_sd,
        n_points=n,
        origin=origin,
        x_mean=float(x.mean()),
        sxx=float(np.sum((x - x.mean()) ** 2)),
        dates=series.dates,
        level=level,
    )


def find_peak(series: IncidenceSeries) -> np.datetime64:
    """Date of the highest count (the first one on ties)."""
    if len(series) == 0:
        raise ValueError("Empty incidence series has no peak")
    return series.dates[int(np.argmax(series.counts))]


def fit_log_linear(
    series: IncidenceSeries,
    split=None,
    level: float = 0.95,
) -> Union[LogLinearFit, Tuple[LogLinearFit, LogLinearFit]]:
    """Fit log-linear growth, optionally as two phases split at ``split``.

    With ``split`` the result is ``(before, after)``: ``before`` covers the
    dates strictly before ``split`` and ``after`` the dates from ``split`` on.
    """
    if not 0.0 < level < 1.0:
        raise ValueError("level must be in (0, 1)")
    if split is None:
        return _fit(series, level)

    split_date = np.datetime64(pd.Timestamp(split).date(), "D")
    n_before = int(np.sum(series.dates < split_date))
    if n_before == 0 or n_before == len(series):
        raise ValueError(f"split date {split_date} leaves an empty phase")
    before = series.head(n_before)
    after = IncidenceSeries(series.counts[n_before:], dates=series.dates[n_before:], interval=series.interval)
    return _fit(before, level), _fit(after, level)


def r_to_R(r: float, si: SerialInterval, max_lag: Optional[int] = None) -> float:
    """Reproduction number implied by a growth rate ``r`` (per time step)."""
    max_lag = si.support_max() if max_lag is None else int(max_lag)
    w = si.infectivity_profile(max_lag)
    k = np.arange(1, w.size + 1)
    denom = float(np.sum(w * np.exp(-r * k)))
    if denom <= 0:
        raise ValueError("Serial interval has no mass at lags >= 1")
    return 1.0 / denom


def R_to_r(R: float, si: SerialInterval, max_lag: Optional[int] = None) -> float:
    """Growth rate implied by a reproduction number ``R`` (inverse of r_to_R)."""
    if R <= 0:
        raise ValueError("R must be > 0")
    max_lag = si.support_max() if max_lag is None else int(max_lag)
    w = si.infectivity_profile(max_lag)
    k = np.arange(1, w.size + 1)

    def f(r):
        with np.errstate(over="ignore"):
            return float(np.sum(w * np.exp(-r * k))) - 1.0 / R

    # f decreases in r; widen the bracket until the sign changes
    lo, hi = -0.5, 0.5
    while f(lo) < 0 and lo > -5.0:
        lo *= 2.0
    while f(hi) > 0 and hi < 5.0:
        hi *= 2.0
    if f(lo) < 0 or f(hi) > 0:
        raise ValueError(f"No growth rate found for R={R}")
    return float(brentq(f, lo, hi, xtol=1e-12))
