"""BioSim: small systems-biology models on a from-scratch numerical core.

This package provides an adaptive Runge-Kutta ODE integrator and a
Levenberg-Marquardt curve fitter, plus the models built on them:
gut-blood pharmacokinetics, ligand-receptor binding, Michaelis-Menten
enzyme kinetics and SIRS/SEIRS epidemics.

Run the CLI with: python -m biosim.cli
"""

from .engine import Trajectory, integrate, iter_integrate
from .errors import BioSimError, ConvergenceFailure, InsufficientData, InvalidInput, NumericalInstability
from .fitting import FitResult, LinearFit, fit, fit_through_origin

__all__ = [
    "Trajectory",
    "integrate",
    "iter_integrate",
    "FitResult",
    "LinearFit",
    "fit",
    "fit_through_origin",
    "BioSimError",
    "InvalidInput",
    "NumericalInstability",
    "ConvergenceFailure",
    "InsufficientData",
]

__version__ = "0.1.0"
