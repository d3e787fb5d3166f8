"""End-of-month processing of category balances.

At month end:
1. Variable categories: the difference between allocation and spending is
   moved into (surplus) or out of (deficit) a savings category when the
   category is set to do so automatically; otherwise it is reported as
   pending a decision from the user
2. Savings categories: the accumulated total is snapshotted for the month
3. Fixed categories: the accumulated total grows by allocation minus spending

Everything here is a pure computation over Category value objects; the
caller persists the returned categories, movements and snapshots.
"""

from decimal import Decimal
from enum import Enum
from typing import Mapping, Optional, Sequence

import structlog
from pydantic import BaseModel, Field, computed_field

from .exceptions import NotFoundError, ValidationError
from .models import Category, CategoryType
from .money import MONEY_PLACES, ZERO, Numeric, money, to_decimal

logger = structlog.get_logger()


class MovementType(str, Enum):
    SURPLUS = "surplus"  # Unspent variable money into savings
    DEFICIT = "deficit"  # Savings covering variable overspending


class FundMovement(BaseModel):
    """Money moved between a variable category and a savings category."""
    from_category_id: int
    to_category_id: int
    amount: Decimal
    movement_type: MovementType
    variable_category_id: int
    year: int
    month: int = Field(ge=1, le=12)


class SavingsSnapshot(BaseModel):
    """Accumulated total of a savings category at the end of a month."""
    category_id: int
    year: int
    month: int = Field(ge=1, le=12)
    accumulated_total: Decimal


class FixedCategorySummary(BaseModel):
    """A fixed category's month: what was spent and what was left over."""
    category_id: int
    year: int
    month: int = Field(ge=1, le=12)
    total_spent: Decimal
    difference: Decimal  # allocated - spent; negative when overspent


class PendingDecision(BaseModel):
    """A variable surplus or deficit the user has to place manually."""
    category_id: int
    movement_type: MovementType
    amount: Decimal
    reason: str


class MonthEndResult(BaseModel):
    """Output of ``process_month_end``."""
    year: int
    month: int
    categories: list[Category]
    movements: list[FundMovement] = Field(default_factory=list)
    snapshots: list[SavingsSnapshot] = Field(default_factory=list)
    fixed_summaries: list[FixedCategorySummary] = Field(default_factory=list)
    pending: list[PendingDecision] = Field(default_factory=list)

    @computed_field
    @property
    def variable_movements(self) -> int:
        return len(self.movements)

    @computed_field
    @property
    def savings_snapshots(self) -> int:
        return len(self.snapshots)

    @computed_field
    @property
    def fixed_updates(self) -> int:
        return len(self.fixed_summaries)


def _check_period(year: int, month: int) -> None:
    if not 1 <= month <= 12:
        raise ValidationError(
            f"Invalid month: {month}",
            field="month",
            value=month,
            constraint="1-12",
        )
    if year < 1:
        raise ValidationError(f"Invalid year: {year}", field="year", value=year)


def _savings_by_id(categories: Sequence[Category], category_id: Optional[int]) -> Optional[Category]:
    for cat in categories:
        if cat.id == category_id and cat.category_type == CategoryType.SAVINGS:
            return cat
    return None


def _replace(categories: list[Category], updated: Category) -> None:
    for i, cat in enumerate(categories):
        if cat.id == updated.id:
            categories[i] = updated
            return


def process_month_end(
    categories: Sequence[Category],
    spending: Mapping[int, Numeric],
    year: int,
    month: int,
) -> MonthEndResult:
    """
    Close a month for one budget.

    Args:
        categories: All categories of the budget (with ids)
        spending: Amount spent this month per category id; missing ids spent 0
        year: Calendar year being closed
        month: Calendar month being closed (1-12)

    Returns:
        MonthEndResult with the updated categories and everything to persist
    """
    _check_period(year, month)
    updated = list(categories)
    result = MonthEndResult(year=year, month=month, categories=[])

    def spent_for(category: Category) -> Decimal:
        return to_decimal(spending.get(category.id, ZERO))

    # Variable categories
    for variable in [c for c in updated if c.category_type == CategoryType.VARIABLE]:
        difference = variable.monthly_amount - spent_for(variable)

        if difference > MONEY_PLACES:
            amount = money(difference)
            target = _savings_by_id(updated, variable.surplus_target_category_id)
            if not (variable.auto_move_surplus and variable.surplus_target_category_id):
                result.pending.append(PendingDecision(
                    category_id=variable.id,
                    movement_type=MovementType.SURPLUS,
                    amount=amount,
                    reason="manual",
                ))
                continue
            if target is None:
                logger.warning(
                    "surplus_target_not_savings",
                    category_id=variable.id,
                    target_id=variable.surplus_target_category_id,
                )
                continue

            _replace(updated, target.with_changes(
                accumulated_total=money(target.accumulated_total + amount)
            ))
            result.movements.append(FundMovement(
                from_category_id=variable.id,
                to_category_id=target.id,
                amount=amount,
                movement_type=MovementType.SURPLUS,
                variable_category_id=variable.id,
                year=year,
                month=month,
            ))

        elif difference < -MONEY_PLACES:
            amount = money(-difference)
            source = _savings_by_id(updated, variable.deficit_source_category_id)
            if not (variable.auto_move_deficit and variable.deficit_source_category_id):
                result.pending.append(PendingDecision(
                    category_id=variable.id,
                    movement_type=MovementType.DEFICIT,
                    amount=amount,
                    reason="manual",
                ))
                continue
            if source is None:
                logger.warning(
                    "deficit_source_not_savings",
                    category_id=variable.id,
                    source_id=variable.deficit_source_category_id,
                )
                continue
            if source.accumulated_total < amount:
                logger.warning(
                    "insufficient_savings_for_deficit",
                    category_id=variable.id,
                    source_id=source.id,
                    available=str(source.accumulated_total),
                    deficit=str(amount),
                )
                result.pending.append(PendingDecision(
                    category_id=variable.id,
                    movement_type=MovementType.DEFICIT,
                    amount=amount,
                    reason="insufficient_funds",
                ))
                continue

            _replace(updated, source.with_changes(
                accumulated_total=money(source.accumulated_total - amount)
            ))
            result.movements.append(FundMovement(
                from_category_id=source.id,
                to_category_id=variable.id,
                amount=amount,
                movement_type=MovementType.DEFICIT,
                variable_category_id=variable.id,
                year=year,
                month=month,
            ))

    # Savings snapshots, taken after this month's movements
    for savings in [c for c in updated if c.category_type == CategoryType.SAVINGS]:
        result.snapshots.append(SavingsSnapshot(
            category_id=savings.id,
            year=year,
            month=month,
            accumulated_total=money(savings.accumulated_total),
        ))

    # Fixed categories
    for fixed in [c for c in updated if c.category_type == CategoryType.FIXED]:
        spent = spent_for(fixed)
        difference = money(fixed.monthly_amount - spent)
        result.fixed_summaries.append(FixedCategorySummary(
            category_id=fixed.id,
            year=year,
            month=month,
            total_spent=money(spent),
            difference=difference,
        ))
        _replace(updated, fixed.with_changes(
            accumulated_total=money(fixed.accumulated_total + difference)
        ))

    result.categories = updated
    logger.info(
        "month_end_processed",
        year=year,
        month=month,
        variable_movements=result.variable_movements,
        savings_snapshots=result.savings_snapshots,
        fixed_updates=result.fixed_updates,
        pending=len(result.pending),
    )
    return result


def apply_fund_movement(
    categories: Sequence[Category],
    variable_category_id: int,
    savings_category_id: int,
    movement_type: MovementType,
    amount: Numeric,
    year: int,
    month: int,
) -> tuple[list[Category], FundMovement]:
    """
    Place a variable category's surplus or deficit by hand.

    Raises:
        NotFoundError: If either category is not in ``categories``
        ValidationError: If the savings side is not a savings category, the
            amount is not positive, or the movement would overdraw savings
    """
    _check_period(year, month)
    movement_type = MovementType(movement_type)
    amount = money(amount)
    if amount <= 0:
        raise ValidationError(
            "Movement amount must be greater than 0",
            field="amount",
            value=str(amount),
            constraint="> 0",
        )

    by_id = {cat.id: cat for cat in categories}
    for key in (variable_category_id, savings_category_id):
        if key not in by_id:
            raise NotFoundError(f"Category {key} not found", entity="category", key=key)

    savings = by_id[savings_category_id]
    if savings.category_type != CategoryType.SAVINGS:
        raise ValidationError(
            "Target category must be a savings category",
            field="category_type",
            value=savings.category_type.value,
            category_id=savings.id,
            constraint="savings",
        )

    if movement_type == MovementType.SURPLUS:
        new_total = savings.accumulated_total + amount
        from_id, to_id = variable_category_id, savings_category_id
    else:
        new_total = savings.accumulated_total - amount
        from_id, to_id = savings_category_id, variable_category_id

    if new_total < 0:
        raise ValidationError(
            f"Insufficient funds in {savings.name}",
            field="accumulated_total",
            value=str(savings.accumulated_total),
            category_id=savings.id,
            constraint=f">= {amount}",
        )

    updated = [
        cat.with_changes(accumulated_total=money(new_total)) if cat.id == savings_category_id else cat
        for cat in categories
    ]
    movement = FundMovement(
        from_category_id=from_id,
        to_category_id=to_id,
        amount=amount,
        movement_type=movement_type,
        variable_category_id=variable_category_id,
        year=year,
        month=month,
    )
    logger.info(
        "fund_movement_applied",
        movement_type=movement_type.value,
        from_category_id=from_id,
        to_category_id=to_id,
        amount=str(amount),
    )
    return updated, movement
