"""
Custom exception classes and error handling.

Two families live here:
- API exceptions: consistent HTTP error responses.
- Domain invariant errors: raised by the scoring core when a caller
  breaks a contract (completeness regression, out-of-order ranges).
  Missing input is never an exception; calculators return None instead.
"""
from datetime import date
from fastapi import HTTPException, status
from typing import Optional, Dict, Any


class APIException(HTTPException):
    """Base API exception with consistent structure."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code


class NotFoundError(APIException):
    """Resource not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found: {identifier}",
            error_code="NOT_FOUND"
        )


class ValidationError(APIException):
    """Validation error."""

    def __init__(self, detail: str, field: Optional[str] = None):
        error_code = f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            error_code=error_code
        )


class ConflictError(APIException):
    """Resource conflict (e.g., a write that would regress stored data)."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code="CONFLICT"
        )


# ---------------------------------------------------------------------------
# Domain errors
# ---------------------------------------------------------------------------

class InvariantViolation(Exception):
    """A caller broke a scoring-core contract. Never swallowed."""


class CompletenessRegressionError(InvariantViolation):
    """An upsert would replace a score with one computed from fewer inputs."""

    def __init__(self, day: date, family: str, stored: int, attempted: int):
        self.day = day
        self.family = family
        self.stored = stored
        self.attempted = attempted
        super().__init__(
            f"{family} score for {day} has completeness {stored}; "
            f"refusing write with completeness {attempted}"
        )


class OutOfOrderRangeError(InvariantViolation):
    """A progressive training-load range is not contiguous with its seed."""


class UpstreamFailure(Exception):
    """A raw-data provider failed for one day."""

    def __init__(self, day: date, source: str, cause: BaseException):
        self.day = day
        self.source = source
        self.cause = cause
        super().__init__(f"{source} failed for {day}: {cause}")
