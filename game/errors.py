"""Exceptions raised by the solvers and the match."""


class CannonError(Exception):
    """Base class for recoverable game errors."""


class SolverError(CannonError):
    """A solver could not produce a shot. The match stays where it was."""


class NoSolutionFound(SolverError):
    def __init__(self, best_distance: float = float("inf")):
        self.best_distance = best_distance
        super().__init__("AI couldn't find a solution.")


class InferenceUnavailable(SolverError):
    """The policy model has not finished loading."""

    def __init__(self, message: str = "Policy model is still loading."):
        super().__init__(message)


class InferenceFailure(SolverError):
    """The inference call raised or returned an unexpected output."""


class PolicyLoadError(CannonError):
    """A policy artifact is missing or does not match the expected schema."""
