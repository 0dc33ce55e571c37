"""
Error taxonomy for the maturity scoring engine.

Validation and normalization errors are raised before any state changes.
Persistence errors wrap storage failures and are raised after the compute
phase, so a computed-but-unsaved result is never reported as a success.
"""
from __future__ import annotations


class MaturityError(Exception):
    """Base class for scoring engine failures."""


class ValidationError(MaturityError):
    """Raised when submitted answers or weight settings are malformed."""

    def __init__(self, errors: list[dict] | str):
        if isinstance(errors, str):
            errors = [{"message": errors}]
        self.errors = errors
        if len(errors) == 1:
            message = errors[0].get("message", "Invalid input")
        else:
            message = f"{len(errors)} validation error(s)"
        super().__init__(message)


class NormalizationError(MaturityError):
    """Raised when a weight set cannot be brought to 100%."""

    def __init__(self, assessment_type: str, message: str):
        self.assessment_type = assessment_type
        super().__init__(f"{assessment_type}: {message}")


class PersistenceError(MaturityError):
    """Raised when a storage collaborator fails on read or write."""

    def __init__(self, operation: str, original: Exception | None = None):
        self.operation = operation
        self.original = original
        detail = f": {original}" if original else ""
        super().__init__(f"Persistence failure during {operation}{detail}")


class ConsistencyWarning(UserWarning):
    """Weight sum was off by less than the tolerance and has been corrected.

    Logged, never raised.
    """
