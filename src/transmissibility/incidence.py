# src/transmissibility/incidence.py
"""
Incidence series: one count of new cases per day (or per week), with no gaps.

Missing days are explicit zeros. A series is never changed in place;
truncation and weekly aggregation return new series.
"""

from pathlib import Path
from typing import Optional, Sequence, Union
import logging

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

# Day 1 when no calendar is given
DEFAULT_START = np.datetime64("1970-01-01", "D")

# Daily and weekly steps
INTERVALS = (1, 7)


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr.setflags(write=False)
    return arr


class IncidenceSeries:
    """Counts of new cases on consecutive dates.

    Args:
        counts: non-negative integer counts, one per time step
        dates: dates of each count (optional; must step by ``interval`` days)
        start: first date, used when ``dates`` is not given
        interval: days per time step (1 for daily, 7 for weekly)
    Raises:
        ValueError
    """

    def __init__(
        self,
        counts: Sequence[int],
        dates: Optional[Sequence] = None,
        start=None,
        interval: int = 1,
    ):
        try:
            c = np.asarray(counts, dtype=float)
        except (TypeError, ValueError) as exc:
            raise ValueError("counts must be integers") from exc
        if c.ndim != 1:
            raise ValueError("counts must be a 1D sequence")
        if c.size and (not np.all(np.isfinite(c)) or np.any(np.mod(c, 1) != 0)):
            raise ValueError("counts must be integers")
        if np.any(c < 0):
            raise ValueError("counts must be >= 0")
        if interval < 1:
            raise ValueError("interval must be >= 1 day")

        if dates is None:
            first = DEFAULT_START if start is None else np.datetime64(pd.Timestamp(start).date(), "D")
            d = first + np.arange(c.size) * int(interval)
        else:
            d = pd.to_datetime(pd.Series(list(dates))).to_numpy().astype("datetime64[D]")
            if d.size != c.size:
                raise ValueError("dates and counts must have the same length")
            if d.size > 1:
                steps = np.diff(d).astype(int)
                if np.any(steps != int(interval)):
                    raise ValueError(f"dates must be strictly increasing in steps of {interval} day(s) with no gaps")

        self._counts = _readonly(c.astype(int))
        self._dates = _readonly(np.asarray(d, dtype="datetime64[D]"))
        self.interval = int(interval)

    # ---------- constructors ----------

    @classmethod
    def from_onset_dates(cls, onsets, first_date=None, last_date=None) -> "IncidenceSeries":
        """Daily counts from a line list of symptom onset dates.

        Unparseable or missing dates are dropped. Days between ``first_date``
        and ``last_date`` (default: earliest and latest onset) with no onset
        are zero.
        """
        parsed = pd.to_datetime(pd.Series(list(onsets), dtype=object), errors="coerce")
        n_missing = int(parsed.isna().sum())
        onset = parsed.dropna().dt.normalize()
        if n_missing:
            logger.info("Ignored %d onset(s) with a missing date", n_missing)

        if onset.empty and (first_date is None or last_date is None):
            raise ValueError("No valid onset dates and no date range given")

        first = pd.Timestamp(first_date) if first_date is not None else onset.min()
        last = pd.Timestamp(last_date) if last_date is not None else onset.max()
        if last < first:
            raise ValueError("last_date must not be before first_date")

        n_outside = int(((onset < first) | (onset > last)).sum())
        if n_outside:
            logger.warning("%d onset(s) fall outside %s..%s and were dropped", n_outside, first.date(), last.date())

        full_index = pd.date_range(first, last, freq="D")
        daily = onset.value_counts().reindex(full_index, fill_value=0)
        return cls(daily.to_numpy(dtype=int), dates=full_index)

    @classmethod
    def from_frame(cls, df: pd.DataFrame, date_col: str = "date", count_col: str = "count") -> "IncidenceSeries":
        for col in (date_col, count_col):
            if col not in df.columns:
                raise ValueError(f"Missing column '{col}'")
        dates = pd.to_datetime(df[date_col])
        interval = 1
        if len(dates) > 1:
            interval = int((dates.iloc[1] - dates.iloc[0]).days)
        if interval not in INTERVALS:
            raise ValueError(f"Incidence rows must be 1 or 7 days apart (got {interval})")
        return cls(df[count_col].to_numpy(), dates=dates, interval=interval)

    @classmethod
    def from_csv(cls, path: Union[str, Path], date_col: str = "date", count_col: str = "count") -> "IncidenceSeries":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Incidence CSV not found: {path}")
        return cls.from_frame(pd.read_csv(path), date_col=date_col, count_col=count_col)

    # ---------- accessors ----------

    @property
    def counts(self) -> np.ndarray:
        return self._counts

    @property
    def dates(self) -> np.ndarray:
        return self._dates

    @property
    def total(self) -> int:
        return int(self._counts.sum())

    def __len__(self):
        return int(self._counts.size)

    def __repr__(self):
        if len(self) == 0:
            return "IncidenceSeries(empty)"
        return f"IncidenceSeries({self._dates[0]}..{self._dates[-1]}, n={len(self)}, total={self.total})"

    def require_daily(self) -> "IncidenceSeries":
        """Return self, or raise ValueError unless the series is daily.

        Serial interval weights are per day, so the renewal sum is only
        defined on a daily series.
        """
        if self.interval != 1:
            raise ValueError(
                f"Renewal estimation and projection need daily incidence (interval is {self.interval} days)"
            )
        return self

    def first_nonzero_day(self) -> Optional[int]:
        """1-indexed position of the first non-zero count (None if all zero)."""
        nz = np.flatnonzero(self._counts)
        return int(nz[0]) + 1 if nz.size else None

    # ---------- derived series ----------

    def truncate(self, n_drop: int) -> "IncidenceSeries":
        """New series without the last ``n_drop`` time steps."""
        if n_drop < 0 or n_drop > len(self):
            raise ValueError("n_drop must be between 0 and the series length")
        keep = len(self) - int(n_drop)
        return IncidenceSeries(self._counts[:keep], dates=self._dates[:keep], interval=self.interval)

    def head(self, n: int) -> "IncidenceSeries":
        """New series with the first ``n`` time steps."""
        if n < 0 or n > len(self):
            raise ValueError("n must be between 0 and the series length")
        return self.truncate(len(self) - int(n))

    def aggregate_weekly(self) -> "IncidenceSeries":
        """Weekly sums starting on the first date; a trailing partial week is dropped."""
        if self.interval != 1:
            raise ValueError("Only a daily series can be aggregated to weeks")
        n_weeks = len(self) // 7
        if len(self) % 7:
            logger.debug("Dropping %d day(s) of a partial final week", len(self) % 7)
        weekly = self._counts[: n_weeks * 7].reshape(n_weeks, 7).sum(axis=1)
        return IncidenceSeries(weekly, dates=self._dates[: n_weeks * 7 : 7], interval=7)

    # ---------- IO ----------

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"date": pd.to_datetime(self._dates), "count": self._counts})

    def to_csv(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.to_frame().to_csv(path, index=False, date_format="%Y-%m-%d")
        logger.info("Incidence written to: %s", path)
        return path
