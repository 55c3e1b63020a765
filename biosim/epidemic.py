"""Compartmental epidemic models.

SIRS: susceptible -> infectious -> recovered -> susceptible (waning immunity).
SEIRS: the same cycle with an exposed (infected, not yet infectious) stage.
Both conserve the total population S + (E) + I + R.
"""
from dataclasses import dataclass
from typing import ClassVar, Dict, Sequence, Tuple

import numpy as np

from .engine import Trajectory, integrate


@dataclass(frozen=True)
class SIRSParams:
    beta: float  # transmission rate
    gamma: float  # recovery rate
    delta: float  # rate of immunity loss; 0 gives the SIR model
    population_size: float  # N

    STATE_NAMES: ClassVar[Tuple[str, ...]] = ("S", "I", "R")

    def basic_reproduction_number(self) -> float:
        return self.beta / self.gamma


@dataclass(frozen=True)
class SEIRSParams:
    beta: float
    sigma: float  # rate of leaving the exposed stage (1 / incubation period)
    gamma: float
    delta: float
    population_size: float

    STATE_NAMES: ClassVar[Tuple[str, ...]] = ("S", "E", "I", "R")

    def basic_reproduction_number(self) -> float:
        return self.beta / self.gamma


def sirs_rhs(t: float, state: Sequence[float], params: SIRSParams) -> Tuple[float, float, float]:
    S, I, R = state
    infection = params.beta * I * S / params.population_size
    waning = params.delta * R
    recovery = params.gamma * I
    return (-infection + waning, infection - recovery, recovery - waning)


def seirs_rhs(t: float, state: Sequence[float], params: SEIRSParams) -> Tuple[float, float, float, float]:
    S, E, I, R = state
    infection = params.beta * I * S / params.population_size
    onset = params.sigma * E
    recovery = params.gamma * I
    waning = params.delta * R
    return (-infection + waning, infection - onset, onset - recovery, recovery - waning)


def endemic_equilibrium(params: SIRSParams) -> Dict[str, float]:
    """Fixed point of the SIRS model.

    For R0 <= 1 the infection dies out and the disease-free state S = N is
    returned. Without waning immunity (delta = 0) every state with I = 0 is
    a fixed point; the disease-free one is returned, which is not where a
    run with R0 > 1 ends.
    """
    N = params.population_size
    r0 = params.basic_reproduction_number()
    if r0 <= 1.0 or params.delta == 0.0:
        return {"S": N, "I": 0.0, "R": 0.0}
    S = N / r0
    removed = N - S
    I = params.delta * removed / (params.gamma + params.delta)
    R = params.gamma * removed / (params.gamma + params.delta)
    return {"S": S, "I": I, "R": R}


def simulate_sirs(
    params: SIRSParams,
    infectious0: float = 5.0,
    recovered0: float = 0.0,
    *,
    t_end: float = 1000.0,
    dt: float = 1.0,
    **solver_options,
) -> Trajectory:
    """Integrate SIRS; the susceptible pool starts at N - I0 - R0."""
    susceptible0 = params.population_size - infectious0 - recovered0
    times = np.arange(0.0, t_end + dt / 2, dt)
    return integrate(
        sirs_rhs,
        {"S": susceptible0, "I": infectious0, "R": recovered0},
        times,
        params,
        **solver_options,
    )


def simulate_seirs(
    params: SEIRSParams,
    infectious0: float = 5.0,
    exposed0: float = 0.0,
    recovered0: float = 0.0,
    *,
    t_end: float = 1000.0,
    dt: float = 1.0,
    **solver_options,
) -> Trajectory:
    susceptible0 = params.population_size - exposed0 - infectious0 - recovered0
    times = np.arange(0.0, t_end + dt / 2, dt)
    return integrate(
        seirs_rhs,
        {"S": susceptible0, "E": exposed0, "I": infectious0, "R": recovered0},
        times,
        params,
        **solver_options,
    )
