"""
Exception taxonomy for careerfit.

Validation and grant errors carry enough detail for the caller to correct the
input. ConcurrencyConflict and RecommendationError never escape the package.
"""

from typing import List


class CareerFitError(Exception):
    """Base class for all careerfit errors."""
    pass


class ValidationError(CareerFitError):
    """A submission failed validation. `errors` lists every violation."""

    def __init__(self, errors: List[str], message: str = "Invalid assessment responses"):
        super().__init__(f"{message}: " + "; ".join(errors))
        self.message = message
        self.errors = list(errors)


class InsufficientCatalog(CareerFitError):
    """Fewer active questions than a session needs."""

    def __init__(self, active: int, required: int):
        super().__init__(f"Not enough active questions. Found {active}, need {required}.")
        self.active = active
        self.required = required


class ProfileNormalizationError(CareerFitError):
    """A catalog career profile could not be read as RIASEC values."""
    pass


class GrantInvalid(CareerFitError):
    """An access grant cannot be used. `reason` is the specific cause."""

    def __init__(self, reason: str):
        super().__init__(f"Access token invalid: {reason}")
        self.reason = reason


class ConcurrencyConflict(CareerFitError):
    """A usage record for the same (grant, result) pair was inserted concurrently."""
    pass


class SessionNotFound(CareerFitError):
    pass


class SessionStateError(CareerFitError):
    """The session exists but cannot accept a submission (completed or expired)."""
    pass


class ResultNotFound(CareerFitError):
    pass


class RecommendationError(CareerFitError):
    """The narrative recommendation service failed or answered unusably."""
    pass


class NotificationError(CareerFitError):
    """Mail could not be sent because delivery is not configured."""
    pass
