"""Core data models for budgets, categories and tax results.

Budget and Category are the value objects exchanged with the persistence
collaborator. CategoryForm carries raw user input (strings) until it has
been validated. TaxResult is the output of the tax calculator.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, computed_field, field_validator, model_validator

from .money import MONTHS_PER_YEAR, ZERO, parse_amount, to_decimal


def _utc_now() -> datetime:
    """Return current UTC datetime with timezone info."""
    return datetime.now(timezone.utc)


def coerce_decimal(v: Any) -> Any:
    if isinstance(v, (str, int, float)) and not isinstance(v, bool):
        try:
            return to_decimal(v)
        except InvalidOperation as exc:
            raise ValueError(f"Invalid amount: {v!r}") from exc
    return v


# =============================================================================
# ENUMERATIONS
# =============================================================================

class FilingStatus(str, Enum):
    """Federal filing status options."""
    SINGLE = "single"
    MARRIED_JOINTLY = "married-jointly"
    MARRIED_SEPARATELY = "married-separately"
    HEAD_OF_HOUSEHOLD = "head-of-household"


class Period(str, Enum):
    """Cadence an amount is expressed in."""
    MONTHLY = "monthly"
    ANNUAL = "annual"


class CategoryType(str, Enum):
    """Kinds of budget categories.

    Each kind has its own computation and validation rules; surplus and
    excluded are system categories.
    """
    FIXED = "fixed"  # Recurring bills (rent, phone)
    VARIABLE = "variable"  # Discretionary spending
    SAVINGS = "savings"  # Accumulates a running balance
    SURPLUS = "surplus"  # Derived: whatever income is left
    EXCLUDED = "excluded"  # Transfers, card payments; never counted

    @property
    def is_system(self) -> bool:
        return self in (CategoryType.SURPLUS, CategoryType.EXCLUDED)

    @property
    def supports_sub_items(self) -> bool:
        return self in (CategoryType.FIXED, CategoryType.SAVINGS)


def normalize_period(amount: Decimal, period: Period) -> Decimal:
    """Express an amount monthly: annual amounts are divided by 12."""
    if Period(period) == Period.ANNUAL:
        return amount / MONTHS_PER_YEAR
    return amount


def denormalize_period(amount: Decimal, period: Period) -> Decimal:
    """Express a monthly amount in ``period``: annual views multiply by 12."""
    if Period(period) == Period.ANNUAL:
        return amount * MONTHS_PER_YEAR
    return amount


# =============================================================================
# BUDGET
# =============================================================================

class Budget(BaseModel):
    """A user's single active budget."""
    id: Optional[int] = None
    user_id: Optional[int] = None
    name: str = "Monthly Budget"
    income: Decimal = ZERO
    income_period: Period = Period.MONTHLY
    filing_status: FilingStatus = FilingStatus.SINGLE
    deductions: Decimal = Field(default=ZERO, ge=0)  # Beyond the standard deduction
    is_active: bool = True

    @field_validator("income", "deductions", mode="before")
    @classmethod
    def coerce_amount_to_decimal(cls, v):
        """Coerce string amounts to Decimal."""
        return coerce_decimal(v)

    @property
    def monthly_income(self) -> Decimal:
        return normalize_period(self.income, self.income_period)

    @property
    def annual_income(self) -> Decimal:
        if self.income_period == Period.ANNUAL:
            return self.income
        return self.income * MONTHS_PER_YEAR


# =============================================================================
# CATEGORIES
# =============================================================================

class SubItem(BaseModel):
    """An itemized line of a fixed or savings category (e.g. each insurance bill)."""
    name: str
    amount: Decimal = Field(ge=0)
    period: Period = Period.MONTHLY

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount_to_decimal(cls, v):
        return coerce_decimal(v)

    @property
    def monthly_amount(self) -> Decimal:
        return normalize_period(self.amount, self.period)


class Category(BaseModel):
    """A budget category as stored by the persistence collaborator.

    When ``sub_items`` is a list the category is itemized: its
    ``allocated_amount`` is derived from the sub-items (monthly) and any
    value passed in is overwritten.
    """
    id: Optional[int] = None
    budget_id: Optional[int] = None
    name: str
    category_type: CategoryType = CategoryType.VARIABLE
    allocated_amount: Decimal = ZERO
    period: Period = Period.MONTHLY
    color: Optional[str] = None
    description: Optional[str] = None
    accumulated_total: Decimal = ZERO
    spent_amount: Decimal = ZERO
    sub_items: Optional[list[SubItem]] = None

    # Fixed
    expected_merchant_name: Optional[str] = None
    hide_from_transaction_lists: bool = False

    # Variable
    auto_move_surplus: bool = False
    surplus_target_category_id: Optional[int] = None
    auto_move_deficit: bool = False
    deficit_source_category_id: Optional[int] = None

    # Savings
    is_tax_deductible: bool = False
    is_subject_to_fica: bool = False
    is_unconnected_account: bool = False

    @field_validator("allocated_amount", "accumulated_total", "spent_amount", mode="before")
    @classmethod
    def coerce_amount_to_decimal(cls, v):
        """Coerce string amounts to Decimal."""
        return coerce_decimal(v)

    @model_validator(mode="after")
    def derive_amount_from_sub_items(self) -> "Category":
        if self.sub_items is not None:
            self.allocated_amount = sum(
                (item.monthly_amount for item in self.sub_items), ZERO
            )
            self.period = Period.MONTHLY
        return self

    @property
    def is_itemized(self) -> bool:
        return self.sub_items is not None

    @property
    def monthly_amount(self) -> Decimal:
        return normalize_period(self.allocated_amount, self.period)

    @property
    def annual_amount(self) -> Decimal:
        return self.monthly_amount * MONTHS_PER_YEAR

    def with_changes(self, **changes: Any) -> "Category":
        """Return a re-validated copy with ``changes`` applied."""
        data = self.model_dump()
        data.update(changes)
        return Category.model_validate(data)


def _form_amount(raw: str) -> Any:
    # Unparseable input is passed through so model validation reports it.
    parsed = parse_amount(raw)
    return raw if parsed is None else parsed


class SubItemForm(BaseModel):
    """Raw sub-item input."""
    name: str = ""
    amount: str = ""
    period: Period = Period.MONTHLY


class CategoryForm(BaseModel):
    """Unvalidated category input as typed by the user.

    Amounts are kept as strings so that non-numeric input can be reported
    instead of failing model construction.
    """
    id: Optional[int] = None
    name: str = ""
    category_type: CategoryType = CategoryType.VARIABLE
    allocated_amount: str = ""
    period: Period = Period.MONTHLY
    accumulated_total: str = "0"
    color: Optional[str] = None
    description: Optional[str] = None
    sub_items: Optional[list[SubItemForm]] = None

    expected_merchant_name: Optional[str] = None
    hide_from_transaction_lists: bool = False

    auto_move_surplus: bool = False
    surplus_target_category_id: Optional[int] = None
    auto_move_deficit: bool = False
    deficit_source_category_id: Optional[int] = None

    is_tax_deductible: bool = False
    is_subject_to_fica: bool = False
    is_unconnected_account: bool = False

    @field_validator("allocated_amount", "accumulated_total", mode="before")
    @classmethod
    def stringify_amount(cls, v):
        if v is None:
            return ""
        if isinstance(v, (int, float, Decimal)) and not isinstance(v, bool):
            return str(v)
        return v

    @classmethod
    def from_category(cls, category: Category) -> "CategoryForm":
        """Build an editable form from a stored category."""
        data = category.model_dump(exclude={"budget_id", "spent_amount", "sub_items"})
        data["allocated_amount"] = str(category.allocated_amount)
        data["accumulated_total"] = str(category.accumulated_total)
        if category.sub_items is not None:
            data["sub_items"] = [
                SubItemForm(name=item.name, amount=str(item.amount), period=item.period)
                for item in category.sub_items
            ]
        return cls.model_validate(data)

    def to_category(self, budget_id: Optional[int] = None) -> Category:
        """Convert a validated form into a Category.

        Call ``validate_category`` first; unparseable amounts raise here.
        """
        data = self.model_dump(exclude={"sub_items"})
        data["name"] = self.name.strip()
        data["budget_id"] = budget_id
        data["allocated_amount"] = _form_amount(self.allocated_amount)
        data["accumulated_total"] = _form_amount(self.accumulated_total)
        if self.sub_items is not None:
            data["sub_items"] = [
                SubItem(name=item.name.strip(), amount=_form_amount(item.amount), period=item.period)
                for item in self.sub_items
                if item.name.strip()
            ]
        return Category.model_validate(data)


# =============================================================================
# TAX RESULTS
# =============================================================================

class AuditEntry(BaseModel):
    """Audit log entry for calculation transparency."""
    timestamp: datetime = Field(default_factory=_utc_now)
    step: str
    input_value: str
    output_value: str
    source: str
    notes: Optional[str] = None


class BracketTax(BaseModel):
    """Tax owed on the slice of taxable income inside one bracket."""
    bracket: str
    rate: Decimal
    taxable_amount: Decimal
    amount: Decimal


class TaxComponent(BaseModel):
    """A single tax with the rate (percent) it was charged at."""
    amount: Decimal
    rate: Decimal


class TaxTotal(BaseModel):
    """An aggregated tax amount with its effective rate (percent of income)."""
    amount: Decimal
    effective_rate: Decimal


class FederalIncomeTax(BaseModel):
    """Progressive federal income tax."""
    amount: Decimal
    effective_rate: Decimal
    marginal_rate: Decimal
    breakdown: list[BracketTax] = Field(default_factory=list)


class FicaTax(BaseModel):
    """Employee FICA: Social Security, Medicare and Additional Medicare."""
    social_security: TaxComponent
    medicare: TaxComponent
    additional_medicare: TaxComponent
    total: TaxTotal


class TaxResult(BaseModel):
    """Complete annual tax breakdown."""
    tax_year: int
    filing_status: FilingStatus
    annual_income: Decimal
    standard_deduction: Decimal
    itemized_deductions: Decimal
    tax_deductible_contributions: Decimal
    fica_exempt_contributions: Decimal
    taxable_income: Decimal
    federal_income_tax: FederalIncomeTax
    fica: FicaTax
    federal_tax: TaxTotal  # Income tax + FICA
    state_tax: TaxComponent
    total_tax: TaxTotal
    audit_log: list[AuditEntry] = Field(default_factory=list)

    @computed_field
    @property
    def total_deductions(self) -> Decimal:
        return self.standard_deduction + self.itemized_deductions

    @computed_field
    @property
    def monthly_total_tax(self) -> Decimal:
        """Total tax spread over twelve months (unrounded)."""
        return self.total_tax.amount / MONTHS_PER_YEAR


# =============================================================================
# TRANSACTIONS
# =============================================================================

class TransactionRecord(BaseModel):
    """A bank transaction as supplied by the transaction collaborator.

    Amounts follow the provider convention: positive is money leaving the
    account.
    """
    id: int
    amount: Decimal
    name: str = ""
    merchant_name: Optional[str] = None
    provider_categories: Optional[list[str]] = None
    date: Optional[datetime] = None

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount_to_decimal(cls, v):
        return coerce_decimal(v)

    @property
    def abs_amount(self) -> Decimal:
        return abs(self.amount)


class SplitAssignment(BaseModel):
    """A committed (category, amount) row for a transaction."""
    category_id: int
    amount: Decimal

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount_to_decimal(cls, v):
        return coerce_decimal(v)
