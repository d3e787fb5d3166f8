"""Budget Core - Tax calculation, income allocation and transaction splitting."""

__version__ = "0.1.0"

from .allocation import BudgetAllocation, reconcile_surplus, remaining_budget
from .calculator import TaxCalculator, compute_tax
from .config import BudgetSettings
from .exceptions import (
    BudgetError,
    ConfigurationError,
    InvariantViolation,
    NotFoundError,
    SplitError,
    ValidationError,
)
from .models import Budget, Category, CategoryForm, CategoryType, FilingStatus, Period, TaxResult
from .splits import SplitReconciler, SplitSet

__all__ = [
    "BudgetAllocation",
    "reconcile_surplus",
    "remaining_budget",
    "TaxCalculator",
    "compute_tax",
    "BudgetSettings",
    "BudgetError",
    "ConfigurationError",
    "InvariantViolation",
    "NotFoundError",
    "SplitError",
    "ValidationError",
    "Budget",
    "Category",
    "CategoryForm",
    "CategoryType",
    "FilingStatus",
    "Period",
    "TaxResult",
    "SplitReconciler",
    "SplitSet",
]
