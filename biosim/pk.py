from dataclasses import dataclass
from typing import ClassVar, Sequence, Tuple
import math

import numpy as np

from .engine import Trajectory, integrate


def elimination_rate(half_life: float) -> float:
    """First-order elimination rate constant k = ln(2) / t1/2."""
    return math.log(2) / half_life


@dataclass(frozen=True)
class GutBloodParams:
    """Two-compartment gut-blood model (oral dose absorbed into blood).

    States:
      G: amount remaining in the gut
      B: amount in blood
    Equations:
      dG/dt = -a * G
      dB/dt = a * G - k * B
    k = ln(2) / half_life
    """
    absorption_rate: float  # a (1/h)
    half_life: float  # h

    STATE_NAMES: ClassVar[Tuple[str, str]] = ("G", "B")

    def k_elim(self) -> float:
        return elimination_rate(self.half_life)


def gut_blood_rhs(t: float, state: Sequence[float], params: GutBloodParams) -> Tuple[float, float]:
    G, B = state
    a = params.absorption_rate
    dG_dt = -a * G
    dB_dt = a * G - params.k_elim() * B
    return (dG_dt, dB_dt)


def simulate_gut_blood(
    params: GutBloodParams,
    gut0: float = 1000.0,
    blood0: float = 0.0,
    *,
    t_end: float = 40.0,
    dt: float = 0.01,
    **solver_options,
) -> Trajectory:
    times = np.arange(0.0, t_end + dt / 2, dt)
    return integrate(
        gut_blood_rhs,
        {"G": gut0, "B": blood0},
        times,
        params,
        **solver_options,
    )


@dataclass(frozen=True)
class OralDoseParams:
    """One-compartment oral dose with first-order absorption, solved analytically.

    C(t) = dose * ka / (ka - ke) * (exp(-ke t) - exp(-ka t))
    """
    dose: float
    absorption_rate: float  # ka (1/h)
    half_life: float  # h

    def k_elim(self) -> float:
        return elimination_rate(self.half_life)


def oral_concentration(t: Sequence[float], params: OralDoseParams) -> np.ndarray:
    t = np.asarray(t, dtype=float)
    ka = params.absorption_rate
    ke = params.k_elim()
    if math.isclose(ka, ke, rel_tol=1e-12):
        # limit of the Bateman function when ka == ke
        return params.dose * ke * t * np.exp(-ke * t)
    return (params.dose * ka / (ka - ke)) * (np.exp(-ke * t) - np.exp(-ka * t))


def oral_tmax(params: OralDoseParams) -> float:
    """Analytical time of peak concentration."""
    ka = params.absorption_rate
    ke = params.k_elim()
    if math.isclose(ka, ke, rel_tol=1e-12):
        return 1.0 / ke
    return math.log(ka / ke) / (ka - ke)
