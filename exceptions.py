"""
Unified exception hierarchy for the budget tree engine.

This module defines the exception hierarchy with BudgetTreeError as the base
exception. Validation-type errors (ValidationError, InsufficientParentBudget,
SpendingFloorViolation) are carried back to callers inside Result values so
they can be shown to the user verbatim; integrity errors (NotFound,
StructuralViolation) are raised.
"""

import enum
from typing import Optional


class BudgetTreeError(Exception):
    """
    Base exception class for all budget tree errors.

    Attributes:
        message: Human-readable error message
        details: Optional dictionary with additional error context
        original_error: Optional original exception that caused this error
    """

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        original_error: Optional[Exception] = None
    ) -> None:
        """
        Initialize BudgetTreeError.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error context
            original_error: Optional original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        msg = self.message
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            msg = f"{msg} ({detail_str})"
        return msg


class ConfigError(BudgetTreeError):
    """Raised when configuration loading or validation fails."""
    pass


class DatabaseError(BudgetTreeError):
    """Raised when the persistence collaborator fails to load or save the tree."""
    pass


class ValidationReason(enum.Enum):
    """Why a user-supplied name or amount was rejected."""
    EMPTY_NAME = "EmptyName"
    NAME_TOO_SHORT = "NameTooShort"
    NAME_TOO_LONG = "NameTooLong"
    EMPTY_AMOUNT = "EmptyAmount"
    NOT_A_NUMBER = "NotANumber"
    BELOW_MINIMUM = "BelowMinimum"
    ABOVE_MAXIMUM = "AboveMaximum"
    BELOW_CHILD_ALLOCATIONS = "BelowChildAllocations"


class ValidationError(BudgetTreeError):
    """
    Bad user input to a create or edit operation.

    Attributes:
        reason: ValidationReason identifying the failed check
    """

    def __init__(
        self,
        message: str,
        reason: ValidationReason,
        details: Optional[dict] = None
    ) -> None:
        super().__init__(message, details=details)
        self.reason = reason


class InsufficientParentBudget(BudgetTreeError):
    """
    Requested allocation exceeds what the parent still has available.

    Attributes:
        available: Amount the parent can still hand out
        parent_id: Id of the parent node that was checked
    """

    def __init__(self, message: str, available: float, parent_id: Optional[str] = None) -> None:
        super().__init__(message, details={"parent_id": parent_id} if parent_id else None)
        self.available = available
        self.parent_id = parent_id


class SpendingFloorViolation(BudgetTreeError):
    """Raised in strict mode when a change would push spent below zero."""
    pass


class NotFound(BudgetTreeError):
    """An operation referenced a node or transaction id that does not exist."""
    pass


class StructuralViolation(BudgetTreeError):
    """A change would introduce a cycle, a duplicate child reference, or an orphan."""
    pass
