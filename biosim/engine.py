from __future__ import annotations

import inspect
import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .errors import InvalidInput, NumericalInstability

logger = logging.getLogger(__name__)

State = np.ndarray
DerivativeFunction = Callable[[float, np.ndarray, Any], Sequence[float]]
InitialState = Union[Sequence[float], Mapping[str, float]]
StepFunction = Callable[[float, State], State]

METHODS = ("RK45", "RK4")

# Dormand-Prince 5(4) tableau
_C = np.array([0.0, 1 / 5, 3 / 10, 4 / 5, 8 / 9, 1.0])
_A = [
    np.array([]),
    np.array([1 / 5]),
    np.array([3 / 40, 9 / 40]),
    np.array([44 / 45, -56 / 15, 32 / 9]),
    np.array([19372 / 6561, -25360 / 2187, 64448 / 6561, -212 / 729]),
    np.array([9017 / 3168, -355 / 33, 46732 / 5247, 49 / 176, -5103 / 18656]),
]
_B = np.array([35 / 384, 0.0, 500 / 1113, 125 / 192, -2187 / 6784, 11 / 84])
# 5th minus embedded 4th order weights; the last entry belongs to the FSAL stage
_E = np.array([71 / 57600, 0.0, -71 / 16695, 71 / 1920, -17253 / 339200, 22 / 525, -1 / 40])

_SAFETY = 0.9
_MIN_FACTOR = 0.2
_MAX_FACTOR = 10.0
_ERROR_EXPONENT = -1.0 / 5.0


@dataclass(frozen=True, eq=False)
class Trajectory:
    """State samples at the requested output times.

    states[k, i] is state variable names[i] at times[k].
    """
    times: np.ndarray
    states: np.ndarray
    names: Tuple[str, ...]

    def __post_init__(self) -> None:
        # copies; the caller's arrays stay writable
        times = np.array(self.times, dtype=float)
        states = np.array(self.states, dtype=float)
        times.setflags(write=False)
        states.setflags(write=False)
        object.__setattr__(self, "times", times)
        object.__setattr__(self, "states", states)

    def __len__(self) -> int:
        return int(self.times.size)

    def __getitem__(self, name: str) -> np.ndarray:
        try:
            idx = self.names.index(name)
        except ValueError:
            raise KeyError(name) from None
        return self.states[:, idx]

    @property
    def final_state(self) -> Dict[str, float]:
        return {name: float(v) for name, v in zip(self.names, self.states[-1])}

    def to_frame(self) -> pd.DataFrame:
        df = pd.DataFrame({"time": self.times})
        for i, name in enumerate(self.names):
            df[name] = self.states[:, i]
        return df


def _rms(x: np.ndarray) -> float:
    return float(np.linalg.norm(x) / math.sqrt(x.size))


def rk4_step(fun: StepFunction, t: float, state: State, h: float) -> State:
    k1 = fun(t, state)
    k2 = fun(t + h / 2.0, state + h * k1 / 2.0)
    k3 = fun(t + h / 2.0, state + h * k2 / 2.0)
    k4 = fun(t + h, state + h * k3)
    return state + (h / 6.0) * (k1 + 2.0 * k2 + 2.0 * k3 + k4)


def dopri_step(fun: StepFunction, t: float, state: State, f: State, h: float) -> Tuple[State, State, State]:
    """One Dormand-Prince step from (t, state) with derivative f.

    Returns the 5th order solution, its derivative (reused as the first
    stage of the next step) and the local error estimate.
    """
    K = np.empty((7, state.size))
    K[0] = f
    for s in range(1, 6):
        K[s] = fun(t + _C[s] * h, state + h * np.dot(K[:s].T, _A[s]))
    next_state = state + h * np.dot(K[:6].T, _B)
    f_new = fun(t + h, next_state)
    K[6] = f_new
    return next_state, f_new, h * np.dot(K.T, _E)


def _initial_step(fun: StepFunction, t0: float, y0: State, f0: State, rtol: float, atol: float, max_step: float) -> float:
    scale = atol + np.abs(y0) * rtol
    d0 = _rms(y0 / scale)
    d1 = _rms(f0 / scale)
    if d0 < 1e-5 or d1 < 1e-5:
        h0 = 1e-6
    else:
        h0 = 0.01 * d0 / d1
    h0 = min(h0, max_step)
    f1 = fun(t0 + h0, y0 + h0 * f0)
    d2 = _rms((f1 - f0) / scale) / h0
    if d1 <= 1e-15 and d2 <= 1e-15:
        h1 = max(1e-6, h0 * 1e-3)
    else:
        h1 = (0.01 / max(d1, d2)) ** (1.0 / 5.0)
    return min(100 * h0, h1, max_step)


def _as_time_points(time_points: Sequence[float]) -> np.ndarray:
    try:
        times = np.asarray(time_points, dtype=float)
    except (TypeError, ValueError) as exc:
        raise InvalidInput(f"time_points must be numeric: {exc}") from exc
    if times.ndim != 1 or times.size == 0:
        raise InvalidInput("time_points must be a non-empty 1-D sequence")
    if not np.all(np.isfinite(times)):
        raise InvalidInput("time_points must be finite")
    if np.any(np.diff(times) <= 0):
        raise InvalidInput("time_points must be strictly increasing")
    return times


def _as_state(initial_state: InitialState, state_names: Optional[Sequence[str]] = None) -> Tuple[Tuple[str, ...], State]:
    names: Optional[Tuple[str, ...]] = None
    values: Any = initial_state
    if isinstance(initial_state, Mapping):
        names = tuple(str(k) for k in initial_state)
        values = list(initial_state.values())
    try:
        y0 = np.array(values, dtype=float)
    except (TypeError, ValueError) as exc:
        raise InvalidInput(f"initial_state must be numeric: {exc}") from exc
    if y0.ndim != 1 or y0.size == 0:
        raise InvalidInput("initial_state must be a non-empty 1-D sequence")
    if not np.all(np.isfinite(y0)):
        raise InvalidInput("initial_state must be finite")
    if state_names is not None:
        names = tuple(state_names)
    if names is None:
        names = tuple(f"y{i}" for i in range(y0.size))
    if len(names) != y0.size:
        raise InvalidInput(f"{len(names)} state names given for a state of length {y0.size}")
    if len(set(names)) != len(names):
        raise InvalidInput("state names must be unique")
    return names, y0


def _bind_derivative(derivative_fn: DerivativeFunction, parameters: Any, t0: float, y0: State) -> StepFunction:
    if not callable(derivative_fn):
        raise InvalidInput("derivative_fn must be callable")
    try:
        signature = inspect.signature(derivative_fn)
    except (TypeError, ValueError):
        signature = None
    if signature is not None:
        try:
            signature.bind(t0, y0, parameters)
        except TypeError as exc:
            raise InvalidInput(f"derivative_fn must accept (t, state, parameters): {exc}") from exc

    n = y0.size

    def fun(t: float, y: State) -> State:
        dydt = np.asarray(derivative_fn(t, y, parameters), dtype=float)
        if dydt.size != n:
            raise InvalidInput(f"derivative_fn returned {dydt.size} values for a state of length {n}")
        dydt = dydt.reshape(n)
        if not np.all(np.isfinite(dydt)):
            raise NumericalInstability(f"derivative is not finite at t={t:g}")
        return dydt

    return fun


def _rk45_path(
    fun: StepFunction,
    times: np.ndarray,
    y0: State,
    f0: State,
    rtol: float,
    atol: float,
    max_step: float,
    max_steps: int,
) -> Iterator[Tuple[float, State]]:
    t = float(times[0])
    y = y0
    f = f0
    yield t, y.copy()
    if times.size == 1:
        return

    h = _initial_step(fun, t, y, f, rtol, atol, max_step)
    n_steps = 0
    n_rejected = 0
    for t_target in times[1:]:
        t_target = float(t_target)
        while t < t_target:
            if h < 10 * np.spacing(abs(t)):
                raise NumericalInstability(f"step size underflow at t={t:g}")
            n_steps += 1
            if n_steps > max_steps:
                raise NumericalInstability(f"exceeded max_steps={max_steps} before t={t_target:g}")
            remaining = t_target - t
            h_step = min(h, remaining)
            y_new, f_new, err = dopri_step(fun, t, y, f, h_step)
            scale = atol + np.maximum(np.abs(y), np.abs(y_new)) * rtol
            err_norm = _rms(err / scale)
            if err_norm <= 1.0:
                if err_norm == 0.0:
                    factor = _MAX_FACTOR
                else:
                    factor = min(_MAX_FACTOR, _SAFETY * err_norm ** _ERROR_EXPONENT)
                if h_step < h:
                    # clipped to an output time: keep the untested proposal unless it can grow
                    h = min(max(h, h_step * factor), max_step)
                else:
                    h = min(h_step * factor, max_step)
                t = t_target if h_step == remaining else t + h_step
                y, f = y_new, f_new
            else:
                n_rejected += 1
                h = h_step * max(_MIN_FACTOR, _SAFETY * err_norm ** _ERROR_EXPONENT)
        yield t, y.copy()
    logger.debug("RK45 finished: %d steps, %d rejected", n_steps, n_rejected)


def _rk4_path(
    fun: StepFunction,
    times: np.ndarray,
    y0: State,
    max_step: float,
    max_steps: int,
) -> Iterator[Tuple[float, State]]:
    t = float(times[0])
    y = y0
    yield t, y.copy()
    n_steps = 0
    for t_target in times[1:]:
        t_target = float(t_target)
        span = t_target - t
        n = max(1, math.ceil(span / max_step - 1e-9))
        n_steps += n
        if n_steps > max_steps:
            raise NumericalInstability(f"exceeded max_steps={max_steps} before t={t_target:g}")
        h = span / n
        for k in range(n):
            y = rk4_step(fun, t + k * h, y, h)
        t = t_target
        yield t, y.copy()
    logger.debug("RK4 finished: %d steps", n_steps)


def iter_integrate(
    derivative_fn: DerivativeFunction,
    initial_state: InitialState,
    time_points: Sequence[float],
    parameters: Any = None,
    *,
    method: str = "RK45",
    rtol: float = 1e-6,
    atol: float = 1e-9,
    max_step: Optional[float] = None,
    max_steps: int = 100_000,
) -> Iterator[Tuple[float, State]]:
    """Stream (t, state) samples of an ODE solution at each of time_points.

    Inputs are validated and the derivative is probed at the initial point
    when this function is called; integration itself advances lazily as
    the returned iterator is consumed.

    - derivative_fn: f(t, state, parameters) -> d(state)/dt
    - initial_state: values at time_points[0], a sequence or a name -> value mapping
    - time_points: strictly increasing output times
    - parameters: passed through to derivative_fn untouched
    - method: "RK45" (adaptive Dormand-Prince) or "RK4" (fixed step)
    - rtol, atol: error tolerances for RK45
    - max_step: largest step; required for RK4, which splits each output
      interval into equal steps no longer than this
    - max_steps: budget of attempted steps over the whole run
    """
    method_name = method.upper()
    if method_name not in METHODS:
        raise InvalidInput(f"Unsupported method: {method}")
    if rtol <= 0 or atol <= 0:
        raise InvalidInput("rtol and atol must be positive")
    if max_step is not None and not max_step > 0:
        raise InvalidInput("max_step must be positive")
    if max_steps < 1:
        raise InvalidInput("max_steps must be at least 1")
    if method_name == "RK4" and max_step is None:
        raise InvalidInput("method RK4 needs max_step to fix the step size")

    _, y0 = _as_state(initial_state)
    times = _as_time_points(time_points)
    fun = _bind_derivative(derivative_fn, parameters, float(times[0]), y0)
    f0 = fun(float(times[0]), y0)
    step_bound = math.inf if max_step is None else float(max_step)

    if method_name == "RK4":
        return _rk4_path(fun, times, y0, step_bound, max_steps)
    return _rk45_path(fun, times, y0, f0, rtol, atol, step_bound, max_steps)


def integrate(
    derivative_fn: DerivativeFunction,
    initial_state: InitialState,
    time_points: Sequence[float],
    parameters: Any = None,
    *,
    state_names: Optional[Sequence[str]] = None,
    **options: Any,
) -> Trajectory:
    """Integrate an ODE system and return the full trajectory.

    Accepts the same options as iter_integrate. state_names labels the
    state variables; by default they come from the keys of a mapping
    initial_state, or are y0, y1, ...
    """
    names, _ = _as_state(initial_state, state_names)
    times = []
    states = []
    for t, y in iter_integrate(derivative_fn, initial_state, time_points, parameters, **options):
        times.append(t)
        states.append(y)
    return Trajectory(times=np.asarray(times, dtype=float), states=np.vstack(states), names=names)
