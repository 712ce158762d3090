"""Engine error types.

- InvalidInput: profile, dose or sleep data fails basic sanity checks.
  Raised only by the scorer entry points; kinetics never raise.
- CurveSampleFailure: a single sample of a multi-point curve could not be
  computed. Recovered inside curve generation, never surfaced to callers.
"""


class JitterError(Exception):
    """Base class for engine errors."""


class InvalidInput(JitterError, ValueError):
    """Raised when calculation inputs are physically implausible.

    Attributes:
        errors: List of human-readable validation messages
    """

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "invalid input")


class CurveSampleFailure(JitterError):
    """Raised for a single failed curve sample."""

    def __init__(self, index: int, cause: Exception):
        self.index = index
        self.cause = cause
        super().__init__(f"sample {index} failed: {cause}")
