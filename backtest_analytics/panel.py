"""
Panel: the time x security matrix every analytic operates on.

A Panel holds float values, an explicit missing mask, an ordered sequence of
unique strictly increasing timestamps (rows) and unique column labels
(securities, factors or portfolios). It is immutable: the numpy buffers are
flagged read-only and every transform returns a new Panel.

Two panels are aligned iff their timestamp sequences are identical. Pairwise
operations call `check_aligned` before touching any data.
"""

import logging
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .exceptions import ConfigurationError, ShapeError

logger = logging.getLogger(__name__)


class Panel:
    """Immutable time x column matrix with explicit missing-value semantics."""

    __slots__ = ("_timestamps", "_columns", "_values", "_missing")

    def __init__(self, timestamps, columns, values, missing=None):
        timestamps = pd.Index(timestamps)
        columns = pd.Index(columns)
        try:
            values = np.array(values, dtype=np.float64, copy=True)
        except ValueError as e:
            raise ShapeError(f"values are not a rectangular 2-D array: {e}") from e
        expected = (len(timestamps), len(columns))

        if values.ndim != 2:
            if values.size != 0 or expected[0] * expected[1] != 0:
                raise ShapeError(f"values must be 2-D, got {values.ndim}-D array")
            values = values.reshape(expected)
        if values.shape != expected:
            raise ShapeError(
                f"values shape {values.shape} does not match "
                f"{len(timestamps)} timestamps x {len(columns)} columns"
            )
        if not timestamps.is_unique or not timestamps.is_monotonic_increasing:
            raise ShapeError("timestamps must be unique and strictly increasing")
        if not columns.is_unique:
            raise ShapeError("column labels must be unique")

        nan_mask = np.isnan(values)
        if missing is None:
            missing = nan_mask
        else:
            missing = np.array(missing, dtype=bool)
            if missing.shape != values.shape:
                raise ShapeError(
                    f"missing mask shape {missing.shape} does not match values {values.shape}"
                )
            missing = missing | nan_mask
        values[missing] = np.nan

        values.flags.writeable = False
        missing.flags.writeable = False
        self._timestamps = timestamps
        self._columns = columns
        self._values = values
        self._missing = missing

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_frame(cls, frame: pd.DataFrame):
        """Build a Panel from a wide DataFrame (index = time, NaN = missing)."""
        return cls(frame.index, frame.columns, frame.to_numpy(dtype=np.float64, na_value=np.nan))

    def _with_data(self, timestamps, values, missing=None, columns=None):
        """New panel of the same kind sharing this panel's metadata."""
        return Panel(timestamps, self._columns if columns is None else columns, values, missing)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def timestamps(self) -> pd.Index:
        return self._timestamps

    @property
    def columns(self) -> pd.Index:
        return self._columns

    @property
    def values(self) -> np.ndarray:
        """Read-only value matrix; missing cells are NaN."""
        return self._values

    @property
    def missing(self) -> np.ndarray:
        """Read-only boolean mask, True where a cell is missing."""
        return self._missing

    @property
    def present(self) -> np.ndarray:
        return ~self._missing

    @property
    def shape(self) -> Tuple[int, int]:
        return self._values.shape

    @property
    def n_periods(self) -> int:
        return self._values.shape[0]

    @property
    def n_columns(self) -> int:
        return self._values.shape[1]

    def __len__(self):
        return self.n_periods

    def __repr__(self):
        if self.n_periods:
            span = f"{self._timestamps[0]} .. {self._timestamps[-1]}"
        else:
            span = "empty"
        return (f"{type(self).__name__}({self.n_periods} periods x {self.n_columns} columns, "
                f"{span}, {int(self._missing.sum())} missing)")

    def to_frame(self) -> pd.DataFrame:
        """Wide DataFrame copy for the presentation layer (missing -> NaN)."""
        return pd.DataFrame(self._values.copy(), index=self._timestamps, columns=self._columns)

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    def row(self, i: int) -> Tuple[np.ndarray, np.ndarray]:
        """Present values of period i plus the position mask they came from."""
        mask = ~self._missing[i]
        return self._values[i][mask], mask

    def column(self, j: int) -> Tuple[np.ndarray, np.ndarray]:
        """Present values of column position j plus their period mask."""
        mask = ~self._missing[:, j]
        return self._values[:, j][mask], mask

    def present_count(self, axis: int = 1) -> np.ndarray:
        """Count of present cells per row (axis=1) or per column (axis=0)."""
        return (~self._missing).sum(axis=axis)

    def select_columns(self, labels: Sequence) -> "Panel":
        positions = self._columns.get_indexer(labels)
        if (positions < 0).any():
            unknown = [lab for lab, p in zip(labels, positions) if p < 0]
            raise ShapeError(f"Unknown column labels: {unknown}")
        return self._with_data(self._timestamps, self._values[:, positions],
                               self._missing[:, positions], columns=self._columns[positions])

    # ------------------------------------------------------------------
    # Time transforms
    # ------------------------------------------------------------------

    def slice(self, start: Optional[int] = None, stop: Optional[int] = None) -> "Panel":
        """Contiguous positional time range [start, stop)."""
        rows = slice(start, stop)
        return self._with_data(self._timestamps[rows], self._values[rows], self._missing[rows])

    def lag(self, k: int) -> "Panel":
        """
        Delay the value series by k periods.

        The first k timestamps are dropped and the remaining timestamps carry
        the values observed k periods earlier. Nothing is filled: lagging
        shortens the usable history, it never invents data. Re-aligning the
        counterpart panel (usually `other.slice(k)`) is the caller's job.
        """
        if isinstance(k, bool) or not isinstance(k, (int, np.integer)) or k < 0:
            raise ConfigurationError(f"lag must be a non-negative integer, got {k!r}")
        if k == 0:
            return self._with_data(self._timestamps, self._values, self._missing)
        n = self.n_periods
        if k >= n:
            empty = np.empty((0, self.n_columns))
            return self._with_data(self._timestamps[:0], empty, empty.astype(bool))
        return self._with_data(self._timestamps[k:], self._values[:n - k], self._missing[:n - k])

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    def is_aligned(self, other: "Panel") -> bool:
        return self._timestamps.equals(other.timestamps)

    def equals(self, other: "Panel") -> bool:
        """Same timestamps, columns, missing mask and present values."""
        return (
            self.is_aligned(other)
            and self._columns.equals(other.columns)
            and np.array_equal(self._missing, other.missing)
            and np.array_equal(self._values, other.values, equal_nan=True)
        )


def check_aligned(*panels: Panel, same_columns: bool = False):
    """
    Fail fast unless every panel shares the first panel's timestamps.

    With same_columns=True the column labels must match too, since row-wise
    pairing is positional.
    """
    first = panels[0]
    for other in panels[1:]:
        if not first.is_aligned(other):
            raise ShapeError(
                f"Panels are not aligned: {first.n_periods} vs {other.n_periods} periods "
                f"or differing timestamps"
            )
        if same_columns and not first.columns.equals(other.columns):
            raise ShapeError(
                f"Column labels differ: {list(first.columns)[:5]}... vs "
                f"{list(other.columns)[:5]}..."
            )


def as_panel(data) -> Panel:
    """Accept a Panel, a DataFrame, or a Series (single column)."""
    if isinstance(data, Panel):
        return data
    if isinstance(data, pd.Series):
        data = data.to_frame(name=data.name if data.name is not None else 0)
    if isinstance(data, pd.DataFrame):
        return Panel.from_frame(data)
    raise TypeError(f"Expected Panel, DataFrame or Series, got {type(data).__name__}")
