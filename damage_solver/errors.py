"""
Exceptions raised by the damage solver.

Step level failures derive from DamageSolverError so that a caller can catch
one type, cut the step and retry. Bad parameters raise ConfigurationError,
a ValueError, when a model is constructed.
"""


class DamageSolverError(RuntimeError):
    """Base class for failures of a single material point update."""


class NonConvergenceError(DamageSolverError):
    """The nonlinear solve did not meet its tolerance within the iteration cap."""
    def __init__(self, message, iterations=None, residual=None):
        super().__init__(message)
        self.iterations = iterations
        self.residual = residual


class NonPhysicalDamageError(DamageSolverError):
    """The converged damage left [0, 1) or the damaged stress is not finite."""
    def __init__(self, message, damage=None):
        super().__init__(message)
        self.damage = damage


class ConfigurationError(ValueError):
    """Malformed model parameters, detected at construction time."""
