from __future__ import annotations

from typing import Sequence, Tuple

import numpy as np

from .errors import InvalidInput


def _as_series(times: Sequence[float], values: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
    t = np.asarray(times, dtype=float)
    v = np.asarray(values, dtype=float)
    if t.ndim != 1 or t.shape != v.shape or t.size == 0:
        raise InvalidInput("times and values must be non-empty 1-D sequences of equal length")
    return t, v


def time_of_peak(times: Sequence[float], values: Sequence[float]) -> Tuple[float, float]:
    """(time, value) of the first sample where values is largest."""
    t, v = _as_series(times, values)
    idx = int(np.argmax(v))
    return float(t[idx]), float(v[idx])


def value_at(times: Sequence[float], values: Sequence[float], t_query: float) -> float:
    """Value at the sample nearest to t_query."""
    t, v = _as_series(times, values)
    return float(v[int(np.argmin(np.abs(t - t_query)))])


def steady_state_time(times: Sequence[float], values: Sequence[float], fraction: float = 0.95) -> float:
    """First time at which values reaches fraction of its final value.

    Assumes a rising approach to the final value, as for a binding curve.
    """
    if not 0.0 < fraction <= 1.0:
        raise InvalidInput("fraction must lie in (0, 1]")
    t, v = _as_series(times, values)
    reached = np.nonzero(v >= fraction * v[-1])[0]
    return float(t[reached[0]])


def local_maxima(values: Sequence[float], rel_tol: float = 1e-9) -> np.ndarray:
    """Indices of interior samples strictly above both neighbours.

    Rises smaller than rel_tol times the value range are treated as flat.
    """
    v = np.asarray(values, dtype=float)
    if v.size < 3:
        return np.array([], dtype=int)
    tol = rel_tol * float(np.ptp(v))
    d = np.diff(v)
    rising = d[:-1] > tol
    falling = d[1:] < -tol
    return np.nonzero(rising & falling)[0] + 1
