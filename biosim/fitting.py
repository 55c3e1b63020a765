"""Least-squares parameter estimation.

fit() implements Levenberg-Marquardt with Marquardt's diagonal scaling and a
central-difference Jacobian. Standard errors come from the approximate
covariance inv(J^T J) * s^2 with s^2 = SSR / (n - p), and confidence
intervals from the Student t distribution with n - p degrees of freedom.

fit_through_origin() is the closed-form special case y = slope * x.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy import stats

from .errors import ConvergenceFailure, InsufficientData, InvalidInput

logger = logging.getLogger(__name__)

ModelFunction = Callable[[np.ndarray, Dict[str, float]], Sequence[float]]

_FD_STEP = np.finfo(float).eps ** (1.0 / 3.0)
_RANK_RTOL = 1e-8
_MAX_DAMPING = 1e16


@dataclass(frozen=True, eq=False)
class FitResult:
    params: Dict[str, float]
    std_errors: Dict[str, float]
    conf_int: Dict[str, Tuple[float, float]]
    confidence: float
    covariance: np.ndarray  # (n_params, n_params), ordered as params
    fitted: np.ndarray
    residuals: np.ndarray  # observed - fitted
    ssr: float
    dof: int
    iterations: int

    @property
    def sigma(self) -> float:
        """Residual standard error."""
        return math.sqrt(self.ssr / self.dof)

    def summary(self) -> pd.DataFrame:
        names = list(self.params)
        est = np.array([self.params[n] for n in names])
        se = np.array([self.std_errors[n] for n in names])
        with np.errstate(divide="ignore", invalid="ignore"):
            t_values = np.where(se > 0, est / np.where(se > 0, se, 1.0), np.inf * np.sign(est))
        p_values = 2.0 * stats.t.sf(np.abs(t_values), self.dof)
        return pd.DataFrame(
            {
                "estimate": est,
                "std_error": se,
                "t_value": t_values,
                "p_value": p_values,
                "lower": [self.conf_int[n][0] for n in names],
                "upper": [self.conf_int[n][1] for n in names],
            },
            index=pd.Index(names, name="parameter"),
        )


@dataclass(frozen=True, eq=False)
class LinearFit:
    """y = slope * x fitted by ordinary least squares."""
    slope: float
    std_error: float
    conf_int: Tuple[float, float]
    confidence: float
    residuals: np.ndarray
    dof: int

    def predict(self, x: Sequence[float]) -> np.ndarray:
        return self.slope * np.asarray(x, dtype=float)

    def inverse(self, y: Sequence[float]) -> np.ndarray:
        """x values producing the given y on the fitted line."""
        if self.slope == 0.0:
            raise InvalidInput("cannot invert a line with zero slope")
        return np.asarray(y, dtype=float) / self.slope


def _as_xy(x_data: Sequence[float], y_data: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
    try:
        x = np.asarray(x_data, dtype=float)
        y = np.asarray(y_data, dtype=float)
    except (TypeError, ValueError) as exc:
        raise InvalidInput(f"x_data and y_data must be numeric: {exc}") from exc
    if x.ndim != 1 or y.ndim != 1:
        raise InvalidInput("x_data and y_data must be 1-D sequences")
    if x.size != y.size:
        raise InvalidInput(f"x_data has {x.size} values but y_data has {y.size}")
    if x.size == 0:
        raise InvalidInput("x_data and y_data are empty")
    if not (np.all(np.isfinite(x)) and np.all(np.isfinite(y))):
        raise InvalidInput("x_data and y_data must be finite")
    return x, y


def _check_confidence(confidence: float) -> None:
    if not 0.0 < confidence < 1.0:
        raise InvalidInput("confidence must lie strictly between 0 and 1")


def _t_quantile(confidence: float, dof: int) -> float:
    return float(stats.t.ppf(0.5 + confidence / 2.0, dof))


def _is_singular(J: np.ndarray) -> bool:
    # rank test on column-normalized J so that parameter scale does not matter
    norms = np.linalg.norm(J, axis=0)
    if not np.all(np.isfinite(J)) or np.any(norms == 0.0):
        return True
    s = np.linalg.svd(J / norms, compute_uv=False)
    return bool(s[-1] <= _RANK_RTOL * s[0])


def _jacobian(predict: Callable[[np.ndarray], np.ndarray], p: np.ndarray, n_obs: int) -> np.ndarray:
    J = np.empty((n_obs, p.size))
    for j in range(p.size):
        h = _FD_STEP * (abs(p[j]) if p[j] != 0.0 else 1.0)
        step = np.zeros_like(p)
        step[j] = h
        J[:, j] = (predict(p + step) - predict(p - step)) / (2.0 * h)
    return J


def fit(
    model_fn: ModelFunction,
    x_data: Sequence[float],
    y_data: Sequence[float],
    initial_params: Mapping[str, float],
    *,
    confidence: float = 0.95,
    max_iter: int = 100,
    xtol: float = 1e-8,
    ftol: float = 1e-12,
    damping: float = 1e-3,
) -> FitResult:
    """Fit model_fn(x, params) to (x_data, y_data) by nonlinear least squares.

    model_fn receives the whole x array and a dict of parameter values and
    must return one prediction per observation. initial_params fixes the
    parameter names and their starting values.

    Raises InsufficientData when there are not more observations than
    parameters, ConvergenceFailure on a singular Jacobian or when max_iter
    iterations pass without the relative parameter update dropping below
    xtol (or the relative SSR decrease below ftol).
    """
    x, y = _as_xy(x_data, y_data)
    if not callable(model_fn):
        raise InvalidInput("model_fn must be callable")
    names: List[str] = list(initial_params)
    if not names:
        raise InvalidInput("initial_params is empty")
    try:
        p = np.array([initial_params[n] for n in names], dtype=float)
    except (TypeError, ValueError) as exc:
        raise InvalidInput(f"initial parameter values must be numeric: {exc}") from exc
    if not np.all(np.isfinite(p)):
        raise InvalidInput("initial parameter values must be finite")
    _check_confidence(confidence)
    if max_iter < 1:
        raise InvalidInput("max_iter must be at least 1")

    dof = y.size - p.size
    if dof <= 0:
        raise InsufficientData(f"{y.size} observations cannot determine {p.size} parameters")

    def predict(values: np.ndarray) -> np.ndarray:
        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            out = np.asarray(model_fn(x, dict(zip(names, values.tolist()))), dtype=float)
        if out.shape != y.shape:
            raise InvalidInput(f"model_fn returned shape {out.shape}, expected {y.shape}")
        return out

    f = predict(p)
    if not np.all(np.isfinite(f)):
        raise InvalidInput("model_fn returned non-finite values at the initial guess")
    r = y - f
    ssr = float(r @ r)
    J = _jacobian(predict, p, y.size)
    if _is_singular(J):
        raise ConvergenceFailure("Jacobian is singular at the initial guess")

    lam = damping
    iterations = 0
    converged = ssr == 0.0
    while not converged:
        if iterations >= max_iter:
            raise ConvergenceFailure(f"no convergence after {max_iter} iterations")
        iterations += 1
        JtJ = J.T @ J
        A = JtJ + lam * np.diag(np.diag(JtJ))
        try:
            delta = np.linalg.solve(A, J.T @ r)
        except np.linalg.LinAlgError as exc:
            raise ConvergenceFailure("normal equations are singular") from exc
        if not np.all(np.isfinite(delta)):
            raise ConvergenceFailure("non-finite parameter update")
        if np.linalg.norm(delta) <= xtol * (np.linalg.norm(p) + xtol):
            break

        p_trial = p + delta
        f_trial = predict(p_trial)
        ssr_trial = math.inf
        if np.all(np.isfinite(f_trial)):
            r_trial = y - f_trial
            ssr_trial = float(r_trial @ r_trial)

        if ssr_trial < ssr:
            converged = ssr_trial == 0.0 or (ssr - ssr_trial) <= ftol * ssr
            p, r, ssr = p_trial, r_trial, ssr_trial
            lam = max(lam / 10.0, 1e-12)
            J = _jacobian(predict, p, y.size)
            logger.debug("iteration %d: ssr=%.6g lambda=%.3g accepted", iterations, ssr, lam)
        else:
            lam *= 10.0
            logger.debug("iteration %d: ssr=%.6g lambda=%.3g rejected", iterations, ssr_trial, lam)
            if lam > _MAX_DAMPING:
                raise ConvergenceFailure("damping grew without reducing the residuals")

    if _is_singular(J):
        raise ConvergenceFailure("Jacobian is singular at the solution")
    try:
        unscaled = np.linalg.inv(J.T @ J)
    except np.linalg.LinAlgError as exc:
        raise ConvergenceFailure("J^T J is not invertible at the solution") from exc

    covariance = unscaled * (ssr / dof)
    se = np.sqrt(np.clip(np.diag(covariance), 0.0, None))
    q = _t_quantile(confidence, dof)
    logger.debug("converged after %d iterations, ssr=%.6g", iterations, ssr)

    return FitResult(
        params={n: float(v) for n, v in zip(names, p)},
        std_errors={n: float(s) for n, s in zip(names, se)},
        conf_int={n: (float(v - q * s), float(v + q * s)) for n, v, s in zip(names, p, se)},
        confidence=confidence,
        covariance=covariance,
        fitted=y - r,
        residuals=r,
        ssr=ssr,
        dof=dof,
        iterations=iterations,
    )


def fit_through_origin(x_data: Sequence[float], y_data: Sequence[float], *, confidence: float = 0.95) -> LinearFit:
    """Least-squares line through the origin: slope = sum(x*y) / sum(x^2)."""
    x, y = _as_xy(x_data, y_data)
    _check_confidence(confidence)
    dof = x.size - 1
    if dof <= 0:
        raise InsufficientData("at least two observations are needed to fit a slope")
    sxx = float(x @ x)
    if sxx == 0.0:
        raise InvalidInput("x_data must not be all zero")
    slope = float(x @ y) / sxx
    residuals = y - slope * x
    se = math.sqrt(float(residuals @ residuals) / dof / sxx)
    q = _t_quantile(confidence, dof)
    return LinearFit(
        slope=slope,
        std_error=se,
        conf_int=(slope - q * se, slope + q * se),
        confidence=confidence,
        residuals=residuals,
        dof=dof,
    )
