"""
Order-preserving parallel map over independent units (rows, lags, buckets,
windows). joblib returns results in submission order, so merging by position
gives the same output as the sequential path.
"""

from typing import Callable, Iterable, List

import numpy as np
from joblib import Parallel, delayed


def parallel_map(func: Callable, items: Iterable, n_jobs: int = 1,
                 backend: str = "loky") -> List:
    """Apply func to every item, sequentially when n_jobs == 1."""
    items = list(items)
    if n_jobs == 1 or len(items) <= 1:
        return [func(item) for item in items]
    return Parallel(n_jobs=n_jobs, backend=backend)(
        delayed(func)(item) for item in items
    )


def row_chunks(n_rows: int, n_jobs: int) -> List[np.ndarray]:
    """Split row positions into contiguous blocks, one per worker."""
    if n_rows == 0:
        return []
    if n_jobs == 1:
        return [np.arange(n_rows)]
    if n_jobs < 0:
        # all cores: joblib sizes the pool, blocks stay coarse
        n_chunks = min(n_rows, 32)
    else:
        n_chunks = min(n_jobs, n_rows)
    return [c for c in np.array_split(np.arange(n_rows), n_chunks) if len(c)]
