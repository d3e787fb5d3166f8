"""Income allocation across budget categories.

The surplus category is derived: after every change to income, tax inputs
or any other category its allocated amount is re-derived as

    monthly income - monthly tax - total allocated - total savings

``BudgetAllocation`` is the editing session that enforces this: each
mutating method validates, applies the change and then runs
``reconcile_surplus`` before it returns.
"""

from decimal import Decimal
from typing import Iterable, NamedTuple, Optional, Sequence

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .calculator import TaxCalculator
from .config import BudgetSettings
from .exceptions import InvariantViolation, ValidationError
from .models import (
    Budget,
    Category,
    CategoryForm,
    CategoryType,
    FilingStatus,
    Period,
    TaxResult,
)
from .money import MONTHS_PER_YEAR, ZERO, Numeric, money, parse_amount

logger = structlog.get_logger()


# =============================================================================
# PALETTE AND SYSTEM CATEGORY DEFAULTS
# =============================================================================

COLOR_PALETTE: tuple[str, ...] = (
    "#FF5733", "#33FF57", "#3357FF", "#FF33F5", "#F5FF33",
    "#33FFF5", "#FF8C33", "#8C33FF", "#FF3333", "#33FF8C",
    "#338CFF", "#FF338C", "#8CFF33",
)

SURPLUS_COLOR = "#28a745"
EXCLUDED_COLOR = "#6c757d"
TAX_COLOR = "#DC3545"
DEFAULT_CATEGORY_COLOR = "#667eea"

AMOUNT_FIELDS = {"allocated_amount", "accumulated_total", "spent_amount"}


class TaxInputs(NamedTuple):
    """Annual tax inputs derived from a budget and its savings categories."""
    annual_income: Decimal
    filing_status: FilingStatus
    itemized_deductions: Decimal
    tax_deductible_contributions: Decimal
    fica_exempt_contributions: Decimal


class SpendingSummaryLine(BaseModel):
    """One row of the annual spending summary."""
    name: str
    monthly: Decimal
    annual: Decimal
    color: str


# =============================================================================
# AGGREGATES
# =============================================================================

def total_allocated(categories: Iterable[Category]) -> Decimal:
    """Monthly total of spending categories.

    Surplus (derived), excluded (never counted) and savings (accounted
    separately) categories are left out.
    """
    return sum(
        (
            cat.monthly_amount
            for cat in categories
            if cat.category_type in (CategoryType.FIXED, CategoryType.VARIABLE)
        ),
        ZERO,
    )


def total_savings(categories: Iterable[Category]) -> Decimal:
    """Monthly total allocated to savings categories."""
    return sum(
        (cat.monthly_amount for cat in categories if cat.category_type == CategoryType.SAVINGS),
        ZERO,
    )


def tax_inputs(budget: Budget, categories: Iterable[Category] = ()) -> TaxInputs:
    """Derive tax inputs.

    Savings marked tax-deductible reduce taxable income; those that are
    also not subject to FICA reduce Social Security and Medicare wages.
    """
    tax_deductible = ZERO
    fica_exempt = ZERO
    for cat in categories:
        if cat.category_type != CategoryType.SAVINGS or not cat.is_tax_deductible:
            continue
        tax_deductible += cat.annual_amount
        if not cat.is_subject_to_fica:
            fica_exempt += cat.annual_amount

    return TaxInputs(
        annual_income=budget.annual_income,
        filing_status=budget.filing_status,
        itemized_deductions=budget.deductions,
        tax_deductible_contributions=tax_deductible,
        fica_exempt_contributions=fica_exempt,
    )


def compute_budget_tax(
    budget: Budget,
    categories: Iterable[Category] = (),
    calculator: Optional[TaxCalculator] = None,
) -> TaxResult:
    """Annual TaxResult for a budget."""
    calculator = calculator or TaxCalculator()
    return calculator.calculate(*tax_inputs(budget, categories))


def monthly_tax(
    budget: Budget,
    categories: Iterable[Category] = (),
    calculator: Optional[TaxCalculator] = None,
) -> Decimal:
    return compute_budget_tax(budget, categories, calculator).total_tax.amount / MONTHS_PER_YEAR


def net_income(
    budget: Budget,
    categories: Iterable[Category] = (),
    calculator: Optional[TaxCalculator] = None,
) -> Decimal:
    """Monthly income after tax."""
    return budget.monthly_income - monthly_tax(budget, categories, calculator)


def remaining_budget(
    budget: Budget,
    categories: Sequence[Category],
    calculator: Optional[TaxCalculator] = None,
) -> Decimal:
    """Monthly income left after tax, spending categories and savings.

    This is the value the surplus category must hold.
    """
    return (
        net_income(budget, categories, calculator)
        - total_allocated(categories)
        - total_savings(categories)
    )


def annual_spending_summary(
    budget: Budget,
    categories: Sequence[Category],
    calculator: Optional[TaxCalculator] = None,
) -> list[SpendingSummaryLine]:
    """Taxes first, then every category except surplus and excluded."""
    tax = monthly_tax(budget, categories, calculator)
    lines = [SpendingSummaryLine(
        name="Taxes",
        monthly=money(tax),
        annual=money(tax * MONTHS_PER_YEAR),
        color=TAX_COLOR,
    )]
    for cat in categories:
        if cat.category_type.is_system:
            continue
        lines.append(SpendingSummaryLine(
            name=cat.name,
            monthly=money(cat.monthly_amount),
            annual=money(cat.annual_amount),
            color=cat.color or DEFAULT_CATEGORY_COLOR,
        ))
    return lines


def next_available_color(
    categories: Iterable[Category],
    palette: Sequence[str] = COLOR_PALETTE,
) -> str:
    """First palette colour not used by any category, else the first colour."""
    used = {cat.color for cat in categories if cat.color}
    for color in palette:
        if color not in used:
            return color
    return palette[0]


# =============================================================================
# VALIDATION
# =============================================================================

def validate_category(
    form: CategoryForm,
    index: Optional[int] = None,
) -> Optional[ValidationError]:
    """Check a category form before it is saved.

    Returns:
        The first problem found, or None when the form can be saved
    """
    def error(message: str, **kwargs) -> ValidationError:
        return ValidationError(message, index=index, category_id=form.id, **kwargs)

    if not form.name or not form.name.strip():
        return error("Category must have a name", field="name", constraint="non-blank")

    if form.category_type.is_system:
        return error(
            "Cannot create or edit system categories (Surplus, Excluded)",
            field="category_type",
            value=form.category_type.value,
            constraint="system category",
        )

    if form.sub_items is not None:
        if not form.category_type.supports_sub_items:
            return error(
                f"{form.category_type.value.capitalize()} categories cannot be itemized",
                field="sub_items",
                constraint="only fixed and savings categories have sub-items",
            )
        valid_items = 0
        for item in form.sub_items:
            if not item.name.strip():
                continue
            amount = parse_amount(item.amount)
            if amount is None or amount < 0:
                return error(
                    f'Sub-item "{item.name.strip()}" must have a valid amount (0 or greater)',
                    field="sub_items",
                    value=item.amount,
                    constraint=">= 0",
                )
            valid_items += 1
        if valid_items == 0:
            return error(
                "Itemized categories need at least one sub-item with a name and amount",
                field="sub_items",
                constraint="at least one sub-item",
            )
    else:
        amount = parse_amount(form.allocated_amount)
        if amount is None or amount < 0:
            return error(
                "Category must have a valid allocated amount (0 or greater)",
                field="allocated_amount",
                value=form.allocated_amount,
                constraint=">= 0",
            )

    if parse_amount(form.accumulated_total) is None:
        return error(
            "Accumulated total must be a number",
            field="accumulated_total",
            value=form.accumulated_total,
        )

    if form.category_type == CategoryType.VARIABLE:
        if form.auto_move_surplus and form.surplus_target_category_id is None:
            return error(
                "Choose a savings category to receive the surplus",
                field="surplus_target_category_id",
                constraint="required when auto_move_surplus is set",
            )
        if form.auto_move_deficit and form.deficit_source_category_id is None:
            return error(
                "Choose a savings category to cover the deficit",
                field="deficit_source_category_id",
                constraint="required when auto_move_deficit is set",
            )

    return None


def validate_submission(
    budget: Budget,
    categories: Sequence[Category],
    calculator: Optional[TaxCalculator] = None,
) -> list[ValidationError]:
    """Cross-check a whole budget before it is submitted.

    Over-allocation is reported, never clamped.
    """
    errors: list[ValidationError] = []

    if budget.income <= 0:
        errors.append(ValidationError(
            "Please enter your income",
            field="income",
            value=str(budget.income),
            constraint="> 0",
        ))

    user_categories = [cat for cat in categories if not cat.category_type.is_system]
    if not user_categories:
        errors.append(ValidationError(
            "Please add at least one spending category",
            field="categories",
            constraint="at least one category",
        ))

    for i, cat in enumerate(categories):
        if cat.category_type.is_system:
            continue
        problem = validate_category(CategoryForm.from_category(cat), index=i)
        if problem is not None:
            errors.append(problem)

    allocated = total_allocated(categories)
    savings = total_savings(categories)
    available = net_income(budget, categories, calculator)
    if money(allocated + savings) > money(available):
        errors.append(ValidationError(
            f"Total allocated (${money(allocated):,}) plus savings (${money(savings):,}) "
            f"exceeds income after taxes (${money(available):,})",
            field="allocated_amount",
            value=str(money(allocated + savings)),
            constraint=f"<= {money(available)}",
            details={"overage": str(money(allocated + savings - available))},
        ))

    return errors


# =============================================================================
# SURPLUS RECONCILIATION
# =============================================================================

def find_surplus(categories: Sequence[Category]) -> Optional[Category]:
    """Return the surplus category.

    Raises:
        InvariantViolation: If more than one surplus category exists
    """
    surpluses = [cat for cat in categories if cat.category_type == CategoryType.SURPLUS]
    if len(surpluses) > 1:
        raise InvariantViolation(
            f"Budget has {len(surpluses)} surplus categories; exactly one is allowed",
            invariant="single_surplus",
            details={"category_ids": [cat.id for cat in surpluses]},
        )
    return surpluses[0] if surpluses else None


def reconcile_surplus(
    budget: Budget,
    categories: Sequence[Category],
    calculator: Optional[TaxCalculator] = None,
    surplus_name: str = "Surplus",
) -> list[Category]:
    """Re-derive the surplus amount from the current remaining budget.

    Creates the surplus category when income is positive and none exists.
    Applying it twice gives the same result as applying it once.

    Returns:
        A new category list; the input is not modified
    """
    result = list(categories)
    surplus = find_surplus(result)
    remaining = money(remaining_budget(budget, result, calculator))

    if surplus is None:
        if budget.monthly_income <= 0:
            return result
        result.append(Category(
            budget_id=budget.id,
            name=surplus_name,
            category_type=CategoryType.SURPLUS,
            allocated_amount=remaining,
            period=Period.MONTHLY,
            color=SURPLUS_COLOR,
        ))
        logger.info("surplus_category_created", budget_id=budget.id, amount=str(remaining))
        return result

    index = result.index(surplus)
    if surplus.allocated_amount != remaining or surplus.period != Period.MONTHLY:
        result[index] = surplus.with_changes(
            allocated_amount=remaining,
            period=Period.MONTHLY,
            sub_items=None,
        )
        logger.debug(
            "surplus_reconciled",
            budget_id=budget.id,
            previous=str(surplus.allocated_amount),
            amount=str(remaining),
        )
    return result


# =============================================================================
# EDITING SESSION
# =============================================================================

class BudgetAllocation:
    """
    Editing session over one budget and its categories.

    Every mutation re-runs ``reconcile_surplus`` synchronously, so the
    surplus never lags behind the change that affected it. Categories are
    addressed by their position in ``categories``.
    """

    def __init__(
        self,
        budget: Budget,
        categories: Iterable[Category] = (),
        *,
        calculator: Optional[TaxCalculator] = None,
        settings: Optional[BudgetSettings] = None,
    ):
        self.settings = settings or BudgetSettings()
        self.calculator = calculator or TaxCalculator.from_settings(self.settings)
        self._budget = budget
        self._categories: list[Category] = list(categories)
        self._removed_ids: list[int] = []

        foreign = [
            cat.id for cat in self._categories
            if budget.id is not None and cat.budget_id is not None and cat.budget_id != budget.id
        ]
        if foreign:
            raise InvariantViolation(
                "Categories belong to a different budget",
                invariant="category_budget_membership",
                details={"budget_id": budget.id, "category_ids": foreign},
            )
        find_surplus(self._categories)

    # -- read side ----------------------------------------------------------

    @property
    def budget(self) -> Budget:
        return self._budget

    @property
    def categories(self) -> tuple[Category, ...]:
        return tuple(self._categories)

    @property
    def removed_category_ids(self) -> tuple[int, ...]:
        return tuple(self._removed_ids)

    @property
    def surplus(self) -> Optional[Category]:
        return find_surplus(self._categories)

    @property
    def excluded(self) -> Optional[Category]:
        return next(
            (cat for cat in self._categories if cat.category_type == CategoryType.EXCLUDED),
            None,
        )

    def index_of(self, category_id: int) -> int:
        for i, cat in enumerate(self._categories):
            if cat.id == category_id:
                return i
        raise ValidationError(
            f"Category {category_id} does not belong to this budget",
            field="category_id",
            category_id=category_id,
        )

    def tax_result(self) -> TaxResult:
        return compute_budget_tax(self._budget, self._categories, self.calculator)

    def total_allocated(self) -> Decimal:
        return total_allocated(self._categories)

    def total_savings(self) -> Decimal:
        return total_savings(self._categories)

    def net_income(self) -> Decimal:
        return net_income(self._budget, self._categories, self.calculator)

    def remaining_budget(self) -> Decimal:
        return remaining_budget(self._budget, self._categories, self.calculator)

    def annual_spending_summary(self) -> list[SpendingSummaryLine]:
        return annual_spending_summary(self._budget, self._categories, self.calculator)

    def validate_submission(self) -> list[ValidationError]:
        return validate_submission(self._budget, self._categories, self.calculator)

    # -- write side ---------------------------------------------------------

    def reconcile(self) -> Optional[Decimal]:
        """Re-derive the surplus; returns its amount (None if there is none)."""
        self._categories = reconcile_surplus(
            self._budget,
            self._categories,
            self.calculator,
            surplus_name=self.settings.surplus_category_name,
        )
        surplus = find_surplus(self._categories)
        return surplus.allocated_amount if surplus else None

    def ensure_system_categories(self) -> None:
        """Create the excluded category if missing, then reconcile (creating surplus)."""
        if self.excluded is None:
            self._categories.append(Category(
                budget_id=self._budget.id,
                name=self.settings.excluded_category_name,
                category_type=CategoryType.EXCLUDED,
                color=EXCLUDED_COLOR,
            ))
            logger.info("excluded_category_created", budget_id=self._budget.id)
        self.reconcile()

    def add_category(self, form: CategoryForm) -> Category:
        """Validate and append a new user category.

        Raises:
            ValidationError: If the form is invalid
        """
        index = len(self._categories)
        problem = validate_category(form, index=index)
        if problem is not None:
            raise problem

        category = form.to_category(budget_id=self._budget.id)
        if category.color is None:
            category = category.with_changes(color=next_available_color(self._categories))
        self._categories.append(category)
        self.reconcile()

        logger.info(
            "category_added",
            budget_id=self._budget.id,
            name=category.name,
            category_type=category.category_type.value,
            monthly_amount=str(money(category.monthly_amount)),
        )
        return self._categories[index]

    def save_category(self, index: int, form: CategoryForm) -> Category:
        """Replace the category at ``index`` with the edited form."""
        current = self._get(index)
        if current.category_type.is_system:
            raise ValidationError(
                f"The {current.name} category is managed automatically and cannot be edited",
                index=index,
                category_id=current.id,
                field="category_type",
                constraint="system category",
            )

        form = form.model_copy(update={"id": current.id})
        problem = validate_category(form, index=index)
        if problem is not None:
            raise problem

        updated = form.to_category(budget_id=current.budget_id).with_changes(
            spent_amount=current.spent_amount,
            color=form.color or current.color,
        )
        self._categories[index] = updated
        self.reconcile()
        logger.info("category_saved", budget_id=self._budget.id, index=index, name=updated.name)
        return updated

    def update_category(self, index: int, **changes) -> Category:
        """Apply field changes to the category at ``index``.

        The amount of an itemized category is owned by its sub-items and
        the surplus amount is owned by reconciliation; neither can be set
        here. Only the colour of the surplus category can change and the
        excluded category cannot change at all.
        """
        current = self._get(index)
        if current.category_type == CategoryType.EXCLUDED:
            raise ValidationError(
                "The Excluded category cannot be modified",
                index=index,
                category_id=current.id,
                constraint="system category",
            )
        if current.category_type == CategoryType.SURPLUS and set(changes) - {"color"}:
            raise ValidationError(
                "The Surplus category can only have its color changed",
                index=index,
                category_id=current.id,
                field=", ".join(sorted(set(changes) - {"color"})),
                constraint="system category",
            )
        if "allocated_amount" in changes or "period" in changes:
            itemized = changes.get("sub_items", current.sub_items) is not None
            if itemized:
                raise ValidationError(
                    "The amount of an itemized category is the sum of its sub-items",
                    index=index,
                    category_id=current.id,
                    field="allocated_amount",
                    constraint="locked while sub-items exist",
                )
        if "category_type" in changes:
            new_type = CategoryType(changes["category_type"])
            if new_type.is_system or current.category_type.is_system:
                raise ValidationError(
                    "System categories cannot change type",
                    index=index,
                    category_id=current.id,
                    field="category_type",
                    value=new_type.value,
                )

        for field in sorted(AMOUNT_FIELDS & set(changes)):
            parsed = parse_amount(changes[field])
            if parsed is None:
                raise ValidationError(
                    f"{field.replace('_', ' ').capitalize()} must be a number",
                    index=index,
                    category_id=current.id,
                    field=field,
                    value=str(changes[field]),
                )
            changes[field] = parsed
        try:
            updated = current.with_changes(**changes)
        except PydanticValidationError as exc:
            error = exc.errors()[0]
            raise ValidationError(
                f"Invalid category: {error['msg']}",
                index=index,
                category_id=current.id,
                field=".".join(str(part) for part in error["loc"]),
            ) from exc
        form = CategoryForm.from_category(updated)
        problem = validate_category(form, index=index)
        if problem is not None and current.category_type != CategoryType.SURPLUS:
            raise problem

        self._categories[index] = updated
        self.reconcile()
        return updated

    def remove_category(self, index: int) -> Category:
        """Remove a user category; surplus and excluded are protected."""
        current = self._get(index)
        if current.category_type.is_system:
            raise ValidationError(
                f"The {current.name} category cannot be removed",
                index=index,
                category_id=current.id,
                field="category_type",
                constraint="system categories are protected",
            )

        del self._categories[index]
        if current.id is not None:
            self._removed_ids.append(current.id)
            self._clear_references(current.id)
        self.reconcile()
        logger.info("category_removed", budget_id=self._budget.id, name=current.name)
        return current

    def set_income(self, income: Numeric, period: Optional[Period] = None) -> Optional[Decimal]:
        """Change income; returns the reconciled surplus amount."""
        parsed = parse_amount(income)
        if parsed is None or parsed < 0:
            raise ValidationError(
                "Income must be a number (0 or greater)",
                field="income",
                value=str(income),
                constraint=">= 0",
            )
        changes: dict = {"income": parsed}
        if period is not None:
            changes["income_period"] = Period(period)
        self._budget = self._budget.model_copy(update=changes)
        return self.reconcile()

    def set_tax_inputs(
        self,
        filing_status: Optional[FilingStatus] = None,
        deductions: Optional[Numeric] = None,
    ) -> Optional[Decimal]:
        """Change filing status and/or itemized deductions; returns the surplus amount."""
        changes: dict = {}
        if filing_status is not None:
            changes["filing_status"] = FilingStatus(filing_status)
        if deductions is not None:
            parsed = parse_amount(deductions)
            if parsed is None or parsed < 0:
                raise ValidationError(
                    "Deductions must be a number (0 or greater)",
                    field="deductions",
                    value=str(deductions),
                    constraint=">= 0",
                )
            changes["deductions"] = parsed
        self._budget = self._budget.model_copy(update=changes)
        return self.reconcile()

    def reset_tax_defaults(self) -> Optional[Decimal]:
        return self.set_tax_inputs(filing_status=FilingStatus.SINGLE, deductions=ZERO)

    # -- helpers ------------------------------------------------------------

    def _get(self, index: int) -> Category:
        if index < 0 or index >= len(self._categories):
            raise ValidationError("Invalid category index", index=index, field="index")
        return self._categories[index]

    def _clear_references(self, category_id: int) -> None:
        for i, cat in enumerate(self._categories):
            changes = {}
            if cat.surplus_target_category_id == category_id:
                changes.update(surplus_target_category_id=None, auto_move_surplus=False)
            if cat.deficit_source_category_id == category_id:
                changes.update(deficit_source_category_id=None, auto_move_deficit=False)
            if changes:
                self._categories[i] = cat.with_changes(**changes)
