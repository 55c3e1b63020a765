from dataclasses import dataclass
from typing import ClassVar, Sequence, Tuple

import numpy as np

from .engine import Trajectory, integrate


@dataclass(frozen=True)
class BindingParams:
    """Ligand-receptor binding at constant free ligand concentration.

    dC/dt = kon * (Rtot - C) * L - koff * C
    where C is the number of bound receptors.
    """
    kon: float
    koff: float
    receptor_total: float  # Rtot
    ligand_concentration: float  # L

    STATE_NAMES: ClassVar[Tuple[str]] = ("C",)

    def observed_rate(self) -> float:
        """Relaxation rate kon * L + koff of the approach to equilibrium."""
        return self.kon * self.ligand_concentration + self.koff


def binding_rhs(t: float, state: Sequence[float], params: BindingParams) -> Tuple[float]:
    (C,) = state
    dC_dt = params.kon * (params.receptor_total - C) * params.ligand_concentration - params.koff * C
    return (dC_dt,)


def equilibrium_bound(params: BindingParams) -> float:
    """Bound receptors at equilibrium: Rtot * kon * L / (kon * L + koff)."""
    on = params.kon * params.ligand_concentration
    return params.receptor_total * on / (on + params.koff)


def bound_at(t: Sequence[float], params: BindingParams, bound0: float = 0.0) -> np.ndarray:
    """Closed-form solution of the binding equation from C(0) = bound0."""
    t = np.asarray(t, dtype=float)
    c_eq = equilibrium_bound(params)
    return c_eq + (bound0 - c_eq) * np.exp(-params.observed_rate() * t)


def simulate_binding(
    params: BindingParams,
    bound0: float = 0.0,
    *,
    t_end: float = 300.0,
    dt: float = 0.1,
    **solver_options,
) -> Trajectory:
    times = np.arange(0.0, t_end + dt / 2, dt)
    return integrate(binding_rhs, {"C": bound0}, times, params, **solver_options)
