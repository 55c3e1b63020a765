from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from .errors import InvalidInput
from .fitting import FitResult, LinearFit, fit, fit_through_origin


def michaelis_menten(substrate: Sequence[float], params: Mapping[str, float]) -> np.ndarray:
    """Reaction velocity V = Vmax * S / (Km + S)."""
    s = np.asarray(substrate, dtype=float)
    return params["Vmax"] * s / (params["Km"] + s)


def calibrate(nadh: Sequence[float], absorbance: Sequence[float], *, confidence: float = 0.95) -> LinearFit:
    """Beer-Lambert standard curve: absorbance = slope * [NADH], no intercept."""
    return fit_through_origin(nadh, absorbance, confidence=confidence)


def initial_velocities(
    abs_t1: Sequence[float],
    abs_t2: Sequence[float],
    calibration: LinearFit,
    interval: float = 10.0,
) -> np.ndarray:
    """NADH consumption rate between two absorbance readings interval apart."""
    if interval <= 0:
        raise InvalidInput("interval must be positive")
    a1 = np.asarray(abs_t1, dtype=float)
    a2 = np.asarray(abs_t2, dtype=float)
    if a1.shape != a2.shape:
        raise InvalidInput("abs_t1 and abs_t2 must have the same length")
    return (calibration.inverse(a1) - calibration.inverse(a2)) / interval


def default_guess(substrate: Sequence[float], velocity: Sequence[float]) -> Dict[str, float]:
    """Starting values read off the data: the top velocity, and the
    substrate level whose velocity is nearest half of it."""
    s = np.asarray(substrate, dtype=float)
    v = np.asarray(velocity, dtype=float)
    vmax = float(np.max(v))
    km = float(s[int(np.argmin(np.abs(v - vmax / 2.0)))])
    return {"Vmax": vmax, "Km": km}


def fit_michaelis_menten(
    substrate: Sequence[float],
    velocity: Sequence[float],
    initial_params: Optional[Mapping[str, float]] = None,
    **fit_options,
) -> FitResult:
    if initial_params is None:
        initial_params = default_guess(substrate, velocity)
    return fit(michaelis_menten, substrate, velocity, {"Vmax": initial_params["Vmax"], "Km": initial_params["Km"]}, **fit_options)


@dataclass(frozen=True, eq=False)
class AssayAnalysis:
    nadh: np.ndarray
    absorbance: np.ndarray
    calibration: LinearFit
    substrate: np.ndarray
    velocity: np.ndarray
    fit: FitResult

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "substrate": self.substrate,
                "velocity": self.velocity,
                "fitted": self.fit.fitted,
                "residual": self.fit.residuals,
            }
        )


def analyze_assay(
    calibration_table: pd.DataFrame,
    velocity_table: pd.DataFrame,
    *,
    interval: float = 10.0,
    initial_params: Optional[Mapping[str, float]] = None,
    **fit_options,
) -> AssayAnalysis:
    """Calibrate, convert absorbance to velocities and fit Michaelis-Menten."""
    confidence = fit_options.get("confidence", 0.95)
    nadh = calibration_table["nadh"].to_numpy(dtype=float)
    absorbance = calibration_table["absorbance"].to_numpy(dtype=float)
    cal = calibrate(nadh, absorbance, confidence=confidence)
    substrate = velocity_table["substrate"].to_numpy(dtype=float)
    velocity = initial_velocities(velocity_table["abs_t1"], velocity_table["abs_t2"], cal, interval)
    result = fit_michaelis_menten(substrate, velocity, initial_params, **fit_options)
    return AssayAnalysis(nadh=nadh, absorbance=absorbance, calibration=cal, substrate=substrate, velocity=velocity, fit=result)
