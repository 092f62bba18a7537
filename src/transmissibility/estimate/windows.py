# src/transmissibility/estimate/windows.py
"""
Estimate R over a sequence of time windows.

Each window is estimated independently from its own sufficient statistics;
nothing is smoothed across windows.
"""

from pathlib import Path
from collections.abc import Sequence
from typing import Iterable, List, Optional, Union
import logging

import numpy as np
import pandas as pd

from ..incidence import IncidenceSeries
from ..serial_interval import SerialInterval, SerialIntervalSampler
from .posterior import (
    EstimationConfig,
    RPosterior,
    TimeWindow,
    estimate_window,
    estimate_window_variable_si,
)

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_WIDTH = 7


def weekly_windows(n: int, width: int = DEFAULT_WINDOW_WIDTH) -> List[TimeWindow]:
    """Consecutive non-overlapping windows covering days 2..n.

    The last window is cut at day n, so it may be shorter than ``width``.
    """
    if width < 1:
        raise ValueError("width must be >= 1")
    if n < 2:
        raise ValueError("Need at least 2 days of incidence to estimate R")
    starts = range(2, n + 1, width)
    return [TimeWindow(s, min(s + width - 1, n)) for s in starts]


def sliding_windows(n: int, width: int = DEFAULT_WINDOW_WIDTH) -> List[TimeWindow]:
    """Overlapping windows [t, t + width - 1] for t = 2..n - width + 1."""
    if width < 1:
        raise ValueError("width must be >= 1")
    if n < width + 1:
        raise ValueError(f"Need at least {width + 1} days of incidence for {width}-day sliding windows")
    return [TimeWindow(s, s + width - 1) for s in range(2, n - width + 2)]


class REstimates(Sequence):
    """Posteriors of R for several windows, ordered by window start."""

    def __init__(self, posteriors: Iterable[RPosterior], dates: Optional[np.ndarray] = None):
        self._posteriors = sorted(posteriors, key=lambda p: (p.t_start, p.t_end))
        self.dates = dates

    def __getitem__(self, i):
        return self._posteriors[i]

    def __len__(self):
        return len(self._posteriors)

    def last(self) -> RPosterior:
        if not self._posteriors:
            raise IndexError("No windows were estimated")
        return self._posteriors[-1]

    @property
    def warnings(self) -> List[str]:
        return [f"[{p.t_start}, {p.t_end}] {w}" for p in self._posteriors for w in p.warnings]

    def to_frame(self) -> pd.DataFrame:
        df = pd.DataFrame([p.summary() for p in self._posteriors])
        if self.dates is not None and not df.empty:
            dates = pd.to_datetime(self.dates)
            df.insert(2, "date_start", dates[df["t_start"].to_numpy() - 1])
            df.insert(3, "date_end", dates[df["t_end"].to_numpy() - 1])
        if not df.empty:
            df["warnings"] = ["; ".join(p.warnings) for p in self._posteriors]
        return df

    def to_csv(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.to_frame().to_csv(path, index=False, date_format="%Y-%m-%d")
        logger.info("R estimates written to: %s", path)
        return path


def estimate_r(
    series: IncidenceSeries,
    si: Union[SerialInterval, Sequence[SerialInterval], SerialIntervalSampler],
    windows: Optional[Sequence] = None,
    config: Optional[EstimationConfig] = None,
    n_si_draws: int = 100,
    rng=None,
) -> REstimates:
    """Estimate R for each window of ``series``.

    Args:
        series: observed incidence
        si: one serial interval, or a sequence of serial interval draws to
            carry serial interval uncertainty into the posteriors, or a
            SerialIntervalSampler to draw them from (its convergence flag
            becomes a caveat on every posterior)
        windows: (start, end) pairs, 1-indexed and inclusive
            (default: weekly_windows over the whole series)
        config: prior and reported quantiles
        n_si_draws, rng: number of draws taken from a sampler, and the
            numpy Generator used to pick them
    Returns:
        REstimates ordered by window start
    Raises:
        ValueError if any window is invalid; no window is estimated then
    """
    config = config or EstimationConfig()
    n = len(series.require_daily())
    if windows is None:
        windows = weekly_windows(n)
    windows = [TimeWindow(*w).validate(n) for w in windows]
    if not windows:
        raise ValueError("No windows to estimate")

    if isinstance(si, SerialInterval):
        posteriors = [estimate_window(series, si, w, config) for w in windows]
    elif isinstance(si, SerialIntervalSampler):
        draws = si.sample(n_si_draws, rng=rng)
        converged = si.converged()
        posteriors = [estimate_window_variable_si(series, draws, w, config, si_converged=converged)
                      for w in windows]
    else:
        draws = list(si)
        posteriors = [estimate_window_variable_si(series, draws, w, config) for w in windows]

    logger.info("Estimated R over %d window(s) covering days %d-%d",
                len(posteriors), min(w.start for w in windows), max(w.end for w in windows))
    return REstimates(posteriors, dates=series.dates)
