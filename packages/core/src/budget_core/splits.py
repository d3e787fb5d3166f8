"""Splitting one transaction across several categories.

A ``SplitSet`` is immutable; every ``SplitReconciler`` operation returns a
new one. Each line's allocation is either a ``FixedAmount`` typed by the
user or ``Remaining``, which resolves to whatever the fixed lines leave of
the transaction's absolute amount. A set holds at most one ``Remaining``
line.
"""

from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Sequence, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .config import BudgetSettings
from .exceptions import SplitError
from .models import Category, CategoryType, SplitAssignment, coerce_decimal
from .money import MONEY_PLACES, ZERO, Numeric, money, parse_amount, to_decimal, within_tolerance

logger = structlog.get_logger()


# =============================================================================
# SPLIT SET MODEL
# =============================================================================

class FixedAmount(BaseModel):
    """An amount entered for the line."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["fixed"] = "fixed"
    amount: Decimal = Field(default=ZERO, ge=0)

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount_to_decimal(cls, v):
        return coerce_decimal(v)


class Remaining(BaseModel):
    """The line takes whatever the fixed lines leave."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["remaining"] = "remaining"


Allocation = Annotated[Union[FixedAmount, Remaining], Field(discriminator="kind")]


class SplitLine(BaseModel):
    """One row of a split: a category (None until chosen) and its allocation."""
    model_config = ConfigDict(frozen=True)

    category_id: Optional[int] = None
    allocation: Allocation = Field(default_factory=Remaining)

    @property
    def use_remaining(self) -> bool:
        return isinstance(self.allocation, Remaining)


class SplitState(str, Enum):
    """Where a transaction is in its categorization lifecycle."""
    UNCATEGORIZED = "uncategorized"
    SINGLE_CATEGORY = "single_category"
    MULTI_SPLIT = "multi_split"
    COMMITTED = "committed"


class SplitSet(BaseModel):
    """
    The editable split of one transaction.

    ``transaction_amount`` keeps the provider's sign (positive is money
    leaving the account); every split calculation uses its absolute value.
    ``committed`` is True only for a set loaded from persisted assignments
    and not edited since.
    """
    model_config = ConfigDict(frozen=True)

    transaction_amount: Decimal
    lines: tuple[SplitLine, ...] = Field(min_length=1)
    committed: bool = False

    @field_validator("transaction_amount", mode="before")
    @classmethod
    def coerce_amount_to_decimal(cls, v):
        return coerce_decimal(v)

    @model_validator(mode="after")
    def check_single_remaining(self) -> "SplitSet":
        flagged = [i for i, line in enumerate(self.lines) if line.use_remaining]
        if len(flagged) > 1:
            raise ValueError(
                f"At most one split can use the remaining amount (lines {flagged})"
            )
        return self

    @property
    def absolute_amount(self) -> Decimal:
        return abs(self.transaction_amount)

    @property
    def is_split_mode(self) -> bool:
        return len(self.lines) > 1

    @property
    def state(self) -> SplitState:
        if self.committed:
            return SplitState.COMMITTED
        if self.is_split_mode:
            return SplitState.MULTI_SPLIT
        if self.lines[0].category_id is None:
            return SplitState.UNCATEGORIZED
        return SplitState.SINGLE_CATEGORY


# =============================================================================
# RECONCILER
# =============================================================================

class SplitReconciler:
    """
    Operations on split sets.

    Edits never touch persisted state; ``commit`` turns a valid set into
    the (category, amount) assignments handed to the transaction
    repository.
    """

    def __init__(self, tolerance: Decimal = MONEY_PLACES):
        self.tolerance = to_decimal(tolerance)

    @classmethod
    def from_settings(cls, settings: BudgetSettings) -> "SplitReconciler":
        return cls(tolerance=settings.rounding_tolerance)

    # -- construction -------------------------------------------------------

    def start(
        self,
        transaction_amount: Numeric,
        assignments: Sequence[SplitAssignment] = (),
    ) -> SplitSet:
        """Build the editing state for a transaction from its current assignments.

        No assignments gives one uncategorized line; one assignment gives a
        single line covering the whole amount; several give fixed lines
        with the last one taking the remainder.
        """
        if not assignments:
            lines: tuple[SplitLine, ...] = (SplitLine(),)
        elif len(assignments) == 1:
            lines = (SplitLine(category_id=assignments[0].category_id),)
        else:
            lines = tuple(
                SplitLine(
                    category_id=a.category_id,
                    allocation=FixedAmount(amount=abs(a.amount)),
                )
                for a in assignments[:-1]
            ) + (SplitLine(category_id=assignments[-1].category_id),)

        return SplitSet(
            transaction_amount=to_decimal(transaction_amount),
            lines=lines,
            committed=bool(assignments),
        )

    # -- resolution ---------------------------------------------------------

    def calculate_remaining(self, split_set: SplitSet, exclude_index: int) -> Decimal:
        """Absolute amount minus every fixed line other than ``exclude_index``, floored at 0."""
        fixed_total = sum(
            (
                line.allocation.amount
                for i, line in enumerate(split_set.lines)
                if i != exclude_index and not line.use_remaining
            ),
            ZERO,
        )
        return max(ZERO, split_set.absolute_amount - fixed_total)

    def resolved_amounts(self, split_set: SplitSet) -> list[Decimal]:
        """Concrete amount of each line, with the remaining line resolved."""
        return [
            self.calculate_remaining(split_set, i) if line.use_remaining else line.allocation.amount
            for i, line in enumerate(split_set.lines)
        ]

    # -- editing ------------------------------------------------------------

    def add_split(self, split_set: SplitSet) -> SplitSet:
        """Append a line that takes the remainder.

        The line that held the remainder keeps half of what it resolved to;
        the new line receives the other half.
        """
        resolved = self.resolved_amounts(split_set)
        lines = [
            line.model_copy(update={"allocation": FixedAmount(amount=money(resolved[i] / 2))})
            if line.use_remaining else line
            for i, line in enumerate(split_set.lines)
        ]
        lines.append(SplitLine())
        return self._replace(split_set, lines)

    def remove_split(self, split_set: SplitSet, index: int) -> SplitSet:
        """Remove a line; the new last line takes the remainder.

        Raises:
            SplitError: If only one line is left or the index is out of range
        """
        self._check_index(split_set, index)
        if len(split_set.lines) == 1:
            raise SplitError(
                "A transaction needs at least one split",
                index=index,
                field="lines",
                constraint="at least one split",
            )

        resolved = self.resolved_amounts(split_set)
        lines = [
            self._fixed(line, resolved[i]) if line.use_remaining else line
            for i, line in enumerate(split_set.lines)
            if i != index
        ]
        lines[-1] = lines[-1].model_copy(update={"allocation": Remaining()})
        return self._replace(split_set, lines)

    def set_amount(self, split_set: SplitSet, index: int, amount: Numeric) -> SplitSet:
        """Enter an amount on a fixed line, rounded to cents.

        Raises:
            SplitError: If the line takes the remainder or the amount is not
                a non-negative number
        """
        self._check_index(split_set, index)
        line = split_set.lines[index]
        if line.use_remaining:
            raise SplitError(
                "This split uses the remaining amount; turn that off to enter an amount",
                index=index,
                category_id=line.category_id,
                field="amount",
            )

        parsed = parse_amount(amount)
        if parsed is None or parsed < 0:
            raise SplitError(
                "Split amount must be a number (0 or greater)",
                index=index,
                category_id=line.category_id,
                field="amount",
                value=str(amount),
                constraint=">= 0",
            )

        lines = list(split_set.lines)
        lines[index] = self._fixed(line, money(parsed))
        return self._replace(split_set, lines)

    def set_category(self, split_set: SplitSet, index: int, category_id: Optional[int]) -> SplitSet:
        self._check_index(split_set, index)
        lines = list(split_set.lines)
        lines[index] = lines[index].model_copy(update={"category_id": category_id})
        return self._replace(split_set, lines)

    def toggle_use_remaining(self, split_set: SplitSet, index: int) -> SplitSet:
        """Move the remainder onto a line, or freeze it there at its current value.

        Turning it on clears it from every other line, which keep their
        resolved amounts as fixed amounts.
        """
        self._check_index(split_set, index)
        resolved = self.resolved_amounts(split_set)
        target = split_set.lines[index]

        if target.use_remaining:
            lines = list(split_set.lines)
            lines[index] = self._fixed(target, resolved[index])
            return self._replace(split_set, lines)

        lines = [
            self._fixed(line, resolved[i]) if line.use_remaining else line
            for i, line in enumerate(split_set.lines)
        ]
        lines[index] = target.model_copy(update={"allocation": Remaining()})
        return self._replace(split_set, lines)

    def to_split_mode(self, split_set: SplitSet) -> SplitSet:
        """Single to multi: the existing amount is halved between two lines."""
        if split_set.is_split_mode:
            return split_set
        return self.add_split(split_set)

    def to_single_mode(self, split_set: SplitSet) -> SplitSet:
        """Multi to single: one line, first line's category, covering the whole amount."""
        if not split_set.is_split_mode:
            return split_set
        return self._replace(
            split_set,
            [SplitLine(category_id=split_set.lines[0].category_id)],
        )

    # -- validation and commit ----------------------------------------------

    def validate(
        self,
        split_set: SplitSet,
        transaction_amount: Optional[Numeric] = None,
        categories: Optional[Sequence[Category]] = None,
    ) -> Optional[SplitError]:
        """Check that a split set can be committed.

        Args:
            split_set: Set to check
            transaction_amount: Amount to reconcile against (default: the set's own)
            categories: When given, category ids must belong to this list
                and may not be the surplus category

        Returns:
            The first problem found, or None when the set is valid
        """
        target = (
            split_set.absolute_amount if transaction_amount is None
            else abs(to_decimal(transaction_amount))
        )
        resolved = self.resolved_amounts(split_set)

        non_last_total = sum(resolved[:-1], ZERO)
        if non_last_total > target:
            return SplitError(
                f"Split amounts (${money(non_last_total):,}) exceed the transaction amount "
                f"(${money(target):,})",
                field="amount",
                value=str(non_last_total),
                constraint=f"<= {target}",
            )

        by_id = {cat.id: cat for cat in categories} if categories is not None else None
        for i, line in enumerate(split_set.lines):
            if line.category_id is None:
                return SplitError(
                    f"Split {i + 1}: please select a category",
                    index=i,
                    field="category_id",
                    constraint="required",
                )
            if by_id is not None:
                category = by_id.get(line.category_id)
                if category is None:
                    return SplitError(
                        f"Split {i + 1}: category {line.category_id} does not exist",
                        index=i,
                        category_id=line.category_id,
                        field="category_id",
                    )
                if category.category_type == CategoryType.SURPLUS:
                    return SplitError(
                        f"Split {i + 1}: transactions cannot be assigned to the Surplus category",
                        index=i,
                        category_id=line.category_id,
                        field="category_id",
                    )
            if resolved[i] <= 0:
                return SplitError(
                    f"Split {i + 1}: amount must be greater than 0",
                    index=i,
                    category_id=line.category_id,
                    field="amount",
                    value=str(resolved[i]),
                    constraint="> 0",
                )

        total = sum(resolved, ZERO)
        if not within_tolerance(total, target, self.tolerance):
            return SplitError(
                f"Split total (${money(total):,}) must equal the transaction amount "
                f"(${money(target):,})",
                field="amount",
                value=str(total),
                constraint=f"== {target}",
                details={"difference": str(money(target - total))},
            )
        return None

    def commit(
        self,
        split_set: SplitSet,
        categories: Optional[Sequence[Category]] = None,
    ) -> list[SplitAssignment]:
        """Resolve every line into a (category, amount) assignment.

        Raises:
            SplitError: If the set does not validate
        """
        error = self.validate(split_set, categories=categories)
        if error is not None:
            raise error

        assignments = [
            SplitAssignment(category_id=line.category_id, amount=amount)
            for line, amount in zip(split_set.lines, self.resolved_amounts(split_set))
        ]
        logger.info(
            "split_committed",
            transaction_amount=str(split_set.transaction_amount),
            lines=len(assignments),
        )
        return assignments

    # -- helpers ------------------------------------------------------------

    @staticmethod
    def _fixed(line: SplitLine, amount: Decimal) -> SplitLine:
        return line.model_copy(update={"allocation": FixedAmount(amount=amount)})

    @staticmethod
    def _replace(split_set: SplitSet, lines: Sequence[SplitLine]) -> SplitSet:
        # Rebuilt through the constructor so the single-remaining check runs.
        return SplitSet(
            transaction_amount=split_set.transaction_amount,
            lines=tuple(lines),
            committed=False,
        )

    @staticmethod
    def _check_index(split_set: SplitSet, index: int) -> None:
        if index < 0 or index >= len(split_set.lines):
            raise SplitError(
                f"Split index {index} is out of range",
                index=index,
                field="index",
                constraint=f"0 <= index < {len(split_set.lines)}",
            )
