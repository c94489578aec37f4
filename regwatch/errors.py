"""
Exception taxonomy for RegWatch.

Every failure an operation can report is one of a closed set of kinds,
each with a stable error code for logging and callers.
"""

from enum import StrEnum
from typing import Any, Dict, List, Optional


class ErrorCode(StrEnum):
    """Standard error codes for RegWatch."""
    # Input errors (1xxx)
    VALIDATION_FAILED = "RW1001"

    # State errors (2xxx)
    NOT_FOUND = "RW2000"
    INVALID_TRANSITION = "RW2001"
    ALREADY_PROCESSED = "RW2002"

    # Concurrency / storage errors (3xxx)
    CONFLICT = "RW3000"
    STORAGE_FAILURE = "RW3001"

    # Invariant violations (9xxx)
    IMMUTABILITY_VIOLATION = "RW9000"


class ComplianceError(Exception):
    """
    Base exception for RegWatch.

    All operation failures inherit from this class.
    """

    error_code: ErrorCode = ErrorCode.VALIDATION_FAILED

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging."""
        result: Dict[str, Any] = {
            "error_code": self.error_code.value,
            "error_type": type(self).__name__,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code.value}] {self.message}"


class ValidationError(ComplianceError):
    """Input failed validation. Carries every message, in rule order."""

    error_code = ErrorCode.VALIDATION_FAILED

    def __init__(self, errors: List[str], message: Optional[str] = None):
        self.errors = list(errors)
        super().__init__(
            message or "; ".join(self.errors) or "Validation failed",
            details={"errors": self.errors},
        )


class NotFoundError(ComplianceError):
    """Referenced entity, violation or alert does not exist."""

    error_code = ErrorCode.NOT_FOUND

    def __init__(self, resource_type: str, resource_id: Any):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(
            f"{resource_type} {resource_id} not found",
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class InvalidTransitionError(ComplianceError):
    """Requested state change is forbidden by a transition table."""

    error_code = ErrorCode.INVALID_TRANSITION

    def __init__(self, from_state: str, to_state: str, reason: str = ""):
        self.from_state = from_state
        self.to_state = to_state
        message = f"Transition {from_state} -> {to_state} is not allowed"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message,
            details={"from": str(from_state), "to": str(to_state)},
        )


class AlreadyProcessedError(ComplianceError):
    """Alert was already acknowledged or resolved."""

    error_code = ErrorCode.ALREADY_PROCESSED

    def __init__(self, resource_type: str, resource_id: Any, state: str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.state = state
        super().__init__(
            f"{resource_type} {resource_id} is already {state}",
            details={"resource_id": resource_id, "state": state},
        )


class ConflictError(ComplianceError):
    """A concurrent writer changed the row first."""

    error_code = ErrorCode.CONFLICT


class StorageError(ComplianceError):
    """Backend failure or timeout. The unit of work was rolled back."""

    error_code = ErrorCode.STORAGE_FAILURE


class ImmutabilityViolation(ComplianceError):
    """
    An audit entry was about to be modified or removed.

    This is a programming error, never a user error: fail fast.
    """

    error_code = ErrorCode.IMMUTABILITY_VIOLATION
