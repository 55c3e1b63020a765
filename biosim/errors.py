"""Exceptions raised by the integrator and the curve fitter."""


class BioSimError(Exception):
    """Base class for all BioSim errors."""


class InvalidInput(BioSimError, ValueError):
    """Malformed time grid, mismatched vector lengths or a bad model callable."""


class NumericalInstability(BioSimError, ArithmeticError):
    """The derivative became non-finite or the step size collapsed."""


class ConvergenceFailure(BioSimError, RuntimeError):
    """The fitter ran out of iterations or hit a singular Jacobian."""


class InsufficientData(BioSimError, ValueError):
    """Not enough observations to estimate the requested parameters."""
