"""
Quantile bucketing and bucket turnover.

Securities are ranked ascending on their factor score within each period and
split into n contiguous buckets (label 1 = lowest scores). Turnover measures
how much of a bucket's membership changes between two periods.
"""

import logging
from typing import Optional

import numpy as np
from numba import jit

from .config import require_positive_int
from .exceptions import DivisionUndefined, ShapeError, warn_undefined
from .panel import Panel
from .parallel import parallel_map, row_chunks

logger = logging.getLogger(__name__)

TURNOVER_COLUMNS = ["Turnover", "NoChange", "Total"]


class QuantileAssignment(Panel):
    """
    Panel of bucket labels in [1, n_quantiles] (or missing).

    The bucket count is carried explicitly rather than inferred from the
    largest label observed, and survives slicing and lagging.
    """

    __slots__ = ("_n_quantiles",)

    def __init__(self, timestamps, columns, values, missing=None, n_quantiles: int = None):
        super().__init__(timestamps, columns, values, missing)
        require_positive_int(n_quantiles, "n_quantiles")
        labels = self.values[self.present]
        if labels.size and (
            (labels < 1).any() or (labels > n_quantiles).any() or (labels != np.round(labels)).any()
        ):
            raise ShapeError(f"labels must be integers in [1, {n_quantiles}]")
        self._n_quantiles = int(n_quantiles)

    @classmethod
    def from_frame(cls, frame, n_quantiles: int = None):
        return cls(frame.index, frame.columns, frame.to_numpy(dtype=np.float64, na_value=np.nan),
                   n_quantiles=n_quantiles)

    @property
    def n_quantiles(self) -> int:
        return self._n_quantiles

    def _with_data(self, timestamps, values, missing=None, columns=None):
        return QuantileAssignment(timestamps, self.columns if columns is None else columns,
                                  values, missing, n_quantiles=self._n_quantiles)


# =============================================================================
# Numba-Optimized Utilities
# =============================================================================

@jit(nopython=True, cache=True)
def _ntile_labels(n_present: int, n_quantiles: int) -> np.ndarray:
    """
    Labels for n_present sorted items split into n_quantiles ntiles.

    Bucket sizes differ by at most one and the larger buckets come first.
    With fewer items than buckets every item gets its own bucket 1..n_present.
    """
    labels = np.empty(n_present)
    base = n_present // n_quantiles
    extra = n_present % n_quantiles
    pos = 0
    for q in range(n_quantiles):
        size = base + 1 if q < extra else base
        for _ in range(size):
            labels[pos] = q + 1
            pos += 1
    return labels


def _bucket_block(block):
    values, n_quantiles = block
    out = np.full(values.shape, np.nan)
    for i in range(values.shape[0]):
        row = values[i]
        positions = np.flatnonzero(~np.isnan(row))
        if len(positions) == 0:
            continue
        # stable sort: tied scores keep column order
        order = np.argsort(row[positions], kind="mergesort")
        labels = np.empty(len(positions))
        labels[order] = _ntile_labels(len(positions), n_quantiles)
        out[i, positions] = labels
    return out


def assign_quantiles(factors: Panel, n_quantiles: int, n_jobs: int = 1,
                     backend: str = "loky") -> QuantileAssignment:
    """
    Assign every present factor score to one of n ordinal buckets per period.

    Parameters
    ----------
    factors : Panel
        Factor scores (time x security).
    n_quantiles : int
        Number of buckets, >= 1.

    Returns
    -------
    QuantileAssignment
        Labels 1..n (1 = lowest scores). Periods with fewer than n present
        scores only use labels 1..k; missing scores stay missing.
    """
    require_positive_int(n_quantiles, "n_quantiles")

    blocks = [(factors.values[rows], n_quantiles)
              for rows in row_chunks(factors.n_periods, n_jobs)]
    results = parallel_map(_bucket_block, blocks, n_jobs=n_jobs, backend=backend)
    labels = np.vstack(results) if results else np.empty((0, factors.n_columns))

    n_short = int((factors.present_count(axis=1) < n_quantiles).sum())
    if n_short:
        logger.debug(f"{n_short}/{factors.n_periods} periods have fewer than "
                     f"{n_quantiles} scores; some buckets are empty there")

    return QuantileAssignment(factors.timestamps, factors.columns, labels, factors.missing,
                              n_quantiles=n_quantiles)


# =============================================================================
# Turnover
# =============================================================================

def _turnover_panel(timestamps, no_change: np.ndarray, total: np.ndarray) -> Panel:
    """Stack Turnover / NoChange / Total; turnover is missing where total == 0."""
    no_change = no_change.astype(np.float64)
    total = total.astype(np.float64)
    undefined = total == 0
    turnover = np.full(len(total), np.nan)
    turnover[~undefined] = 1.0 - no_change[~undefined] / total[~undefined]

    values = np.column_stack([turnover, no_change, total])
    missing = np.column_stack([undefined, np.zeros_like(undefined), np.zeros_like(undefined)])
    return Panel(timestamps, TURNOVER_COLUMNS, values, missing)


def _bucket_membership_counts(task):
    labels, bucket, window = task
    base = labels[:-window] == bucket
    current = labels[window:] == bucket
    return (base & current).sum(axis=1), base.sum(axis=1)


def _require_periods(assignment: Panel, window: int):
    if assignment.n_periods < 2 or assignment.n_periods <= window:
        raise ShapeError(
            f"Turnover needs more than window={window} periods (and at least 2), "
            f"got {assignment.n_periods}"
        )


def bucket_turnover(assignment: Panel, bucket: int, window: int = 1) -> Panel:
    """
    Turnover of one bucket between periods t - window and t.

    Turnover = 1 - |S(t - window) & S(t)| / |S(t - window)| where S is the
    set of securities labelled `bucket`. An empty base set leaves that
    period's turnover undefined.

    Returns
    -------
    Panel
        Columns Turnover, NoChange, Total keyed by t.
    """
    require_positive_int(window, "window")
    _require_periods(assignment, window)

    no_change, total = _bucket_membership_counts((assignment.values, bucket, window))
    result = _turnover_panel(assignment.timestamps[window:], no_change, total)
    warn_undefined(int((total == 0).sum()), len(total), f"bucket {bucket} turnover periods",
                   category=DivisionUndefined)
    return result


def all_buckets_turnover(assignment: Panel, window: int = 1, n_quantiles: Optional[int] = None,
                         n_jobs: int = 1, backend: str = "loky") -> Panel:
    """
    Turnover series for every bucket 1..n, one column per bucket (Q1..Qn).

    n is taken from `n_quantiles`, then from the assignment's own bucket
    count, and only as a last resort from the largest label in the panel.
    """
    require_positive_int(window, "window")
    _require_periods(assignment, window)

    if n_quantiles is None:
        n_quantiles = getattr(assignment, "n_quantiles", None)
    if n_quantiles is None:
        labels = assignment.values[assignment.present]
        if labels.size == 0:
            raise ShapeError("assignment panel has no labels")
        n_quantiles = int(labels.max())
    require_positive_int(n_quantiles, "n_quantiles")

    tasks = [(assignment.values, bucket, window) for bucket in range(1, n_quantiles + 1)]
    counts = parallel_map(_bucket_membership_counts, tasks, n_jobs=n_jobs, backend=backend)

    columns = [f"Q{bucket}" for bucket in range(1, n_quantiles + 1)]
    turnover = np.full((assignment.n_periods - window, n_quantiles), np.nan)
    for j, (no_change, total) in enumerate(counts):
        defined = total > 0
        turnover[defined, j] = 1.0 - no_change[defined] / total[defined]

    warn_undefined(int(np.isnan(turnover).sum()), turnover.size, "bucket turnover values",
                   category=DivisionUndefined)
    return Panel(assignment.timestamps[window:], columns, turnover)


def total_turnover(assignment: Panel) -> Panel:
    """
    Whole-panel churn at lag 1: the fraction of present labels at t that
    differ from the same security's label at t - 1, ignoring bucket identity.

    Returns
    -------
    Panel
        Columns Turnover, NoChange, Total keyed by t.
    """
    _require_periods(assignment, 1)

    labels = assignment.values
    # NaN never equals anything, so a security missing in either period counts as changed
    no_change = (labels[1:] == labels[:-1]).sum(axis=1)
    total = (~assignment.missing[1:]).sum(axis=1)

    result = _turnover_panel(assignment.timestamps[1:], no_change, total)
    warn_undefined(int((total == 0).sum()), len(total), "total turnover periods",
                   category=DivisionUndefined)
    return result
