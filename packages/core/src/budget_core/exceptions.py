"""Custom exceptions for the budget engine.

This module provides a hierarchy of exception classes for consistent error
handling across tax calculation, category allocation and transaction
splitting. All exceptions inherit from BudgetError, making it easy to catch
all engine-specific errors.

Example:
    error = validate_category(form)
    if error is not None:
        show_field_error(error.index, error.message)

    try:
        allocation.remove_category(category_id)
    except ValidationError as e:
        # Recoverable: the user asked for something the budget refuses
        notify(e.message)
    except BudgetError as e:
        logger.error("budget_operation_failed", error=str(e))
"""

from typing import Any, Optional


class BudgetError(Exception):
    """Base exception for all budget engine errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context.
        recoverable: Whether the error is potentially recoverable.

    Example:
        >>> raise BudgetError("Something went wrong", details={"code": 500})
        BudgetError: Something went wrong
    """

    def __init__(
        self,
        message: str,
        *,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        """Initialize BudgetError.

        Args:
            message: Human-readable error description.
            details: Optional dictionary with additional context about the error.
            recoverable: Whether the error can be fixed by the caller, e.g.
                by correcting input. Defaults to False.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        """Return string representation of the error."""
        return self.message

    def __repr__(self) -> str:
        """Return detailed representation of the error."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"recoverable={self.recoverable!r})"
        )


class ValidationError(BudgetError):
    """Error raised (or returned) when user-provided data fails validation.

    Validators return instances of this class instead of raising them so
    forms can render field-level messages; mutating operations raise it.

    Attributes:
        field: The field that failed validation.
        value: The invalid value (if safe to include).
        constraint: The validation constraint that was violated.
        index: Position of the offending category form or split line.
        category_id: Identifier of the offending category, when known.

    Example:
        >>> raise ValidationError(
        ...     "Category must have a name",
        ...     field="name",
        ...     index=2,
        ...     constraint="non-blank",
        ... )
        ValidationError: Category must have a name
    """

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        constraint: Optional[str] = None,
        index: Optional[int] = None,
        category_id: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = True,
    ) -> None:
        """Initialize ValidationError.

        Args:
            message: Human-readable error description.
            field: The name of the field that failed validation.
            value: The invalid value.
            constraint: Description of the validation rule violated.
            index: Index of the category form or split line at fault.
            category_id: Id of the category at fault.
            details: Optional dictionary with additional context.
            recoverable: Defaults to True since validation errors are fixed
                by correcting input.
        """
        super().__init__(message, details=details, recoverable=recoverable)
        self.field = field
        self.value = value
        self.constraint = constraint
        self.index = index
        self.category_id = category_id

        if field:
            self.details["field"] = field
        if value is not None:
            self.details["value"] = value
        if constraint:
            self.details["constraint"] = constraint
        if index is not None:
            self.details["index"] = index
        if category_id is not None:
            self.details["category_id"] = category_id


class SplitError(ValidationError):
    """Error raised when a split-set operation is refused.

    Example:
        >>> raise SplitError(
        ...     "Cannot remove the only split",
        ...     index=0,
        ...     constraint="at least one split line",
        ... )
        SplitError: Cannot remove the only split
    """


class InvariantViolation(BudgetError):
    """Error raised when supplied budget data breaks a structural invariant.

    Typical causes are a duplicated surplus category or category rows that
    belong to another budget. The engine refuses to proceed instead of
    silently repairing the data.

    Attributes:
        invariant: Short name of the violated invariant.
    """

    def __init__(
        self,
        message: str,
        *,
        invariant: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        """Initialize InvariantViolation.

        Args:
            message: Human-readable error description.
            invariant: Short name of the violated invariant
                (e.g. "single_surplus").
            details: Optional dictionary with additional context.
            recoverable: Defaults to False; the caller must fix its data.
        """
        super().__init__(message, details=details, recoverable=recoverable)
        self.invariant = invariant

        if invariant:
            self.details["invariant"] = invariant


class NotFoundError(BudgetError):
    """Error raised by services when a repository lookup returns nothing.

    Attributes:
        entity: Kind of entity looked up ("budget", "category", ...).
        key: Identifier used for the lookup.
    """

    def __init__(
        self,
        message: str,
        *,
        entity: Optional[str] = None,
        key: Optional[Any] = None,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message, details=details, recoverable=recoverable)
        self.entity = entity
        self.key = key

        if entity:
            self.details["entity"] = entity
        if key is not None:
            self.details["key"] = key


class ConfigurationError(BudgetError):
    """Error raised when configuration is invalid or missing.

    This exception is raised when settings or static tax data are
    missing or malformed, e.g. tax tables requested for an unsupported
    tax year.

    Attributes:
        config_key: The configuration key that is problematic.
        expected: Description of the expected value or format.
        actual: The actual value found (if any).

    Example:
        >>> raise ConfigurationError(
        ...     "No tax tables for year 1999",
        ...     config_key="tax_year",
        ...     expected="One of: 2025",
        ...     actual=1999,
        ... )
        ConfigurationError: No tax tables for year 1999
    """

    def __init__(
        self,
        message: str,
        *,
        config_key: Optional[str] = None,
        expected: Optional[str] = None,
        actual: Optional[Any] = None,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        """Initialize ConfigurationError.

        Args:
            message: Human-readable error description.
            config_key: The name of the configuration key that is problematic.
            expected: Description of what value was expected.
            actual: The actual value found.
            details: Optional dictionary with additional context.
            recoverable: Defaults to False since configuration errors
                require fixing the deployment.
        """
        super().__init__(message, details=details, recoverable=recoverable)
        self.config_key = config_key
        self.expected = expected
        self.actual = actual

        if config_key:
            self.details["config_key"] = config_key
        if expected:
            self.details["expected"] = expected
        if actual is not None:
            self.details["actual"] = actual


__all__ = [
    "BudgetError",
    "ValidationError",
    "SplitError",
    "InvariantViolation",
    "NotFoundError",
    "ConfigurationError",
]
