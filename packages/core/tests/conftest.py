"""Shared fixtures: settings, sample budgets and in-memory repositories."""

from decimal import Decimal
from itertools import count
from typing import Optional, Sequence

import pytest

from budget_core.config import BudgetSettings
from budget_core.models import (
    Budget,
    Category,
    CategoryType,
    FilingStatus,
    Period,
    SplitAssignment,
    TransactionRecord,
)


class InMemoryBudgetRepository:
    """BudgetRepository backed by dicts, recording every write."""

    def __init__(self):
        self.budgets: dict[int, Budget] = {}
        self.categories: dict[int, Category] = {}
        self.writes: list[tuple[str, int]] = []
        self._ids = count(1)

    def get_active_budget(self, user_id: int) -> Optional[Budget]:
        return next(
            (b for b in self.budgets.values() if b.user_id == user_id and b.is_active),
            None,
        )

    def get_budget(self, budget_id: int) -> Optional[Budget]:
        return self.budgets.get(budget_id)

    def create_budget(self, budget: Budget) -> Budget:
        stored = budget.model_copy(update={"id": next(self._ids)})
        self.budgets[stored.id] = stored
        self.writes.append(("create_budget", stored.id))
        return stored

    def update_budget(self, budget: Budget) -> Budget:
        self.budgets[budget.id] = budget
        self.writes.append(("update_budget", budget.id))
        return budget

    def list_categories(self, budget_id: int) -> list[Category]:
        return [c for c in self.categories.values() if c.budget_id == budget_id]

    def create_category(self, category: Category) -> Category:
        stored = category.with_changes(id=next(self._ids))
        self.categories[stored.id] = stored
        self.writes.append(("create_category", stored.id))
        return stored

    def update_category(self, category: Category) -> Category:
        self.categories[category.id] = category
        self.writes.append(("update_category", category.id))
        return category

    def delete_category(self, category_id: int) -> None:
        del self.categories[category_id]
        self.writes.append(("delete_category", category_id))


class InMemoryTransactionRepository:
    """TransactionRepository backed by dicts."""

    def __init__(self, transactions: Sequence[TransactionRecord] = ()):
        self.transactions = {t.id: t for t in transactions}
        self.assignments: dict[int, list[SplitAssignment]] = {}

    def get_transaction(self, transaction_id: int) -> Optional[TransactionRecord]:
        return self.transactions.get(transaction_id)

    def list_assignments(self, transaction_id: int) -> list[SplitAssignment]:
        return list(self.assignments.get(transaction_id, []))

    def replace_assignments(
        self,
        transaction_id: int,
        assignments: Sequence[SplitAssignment],
    ) -> None:
        self.assignments[transaction_id] = list(assignments)


@pytest.fixture
def settings() -> BudgetSettings:
    """Default settings, ignoring any local .env file."""
    return BudgetSettings(_env_file=None)


@pytest.fixture
def budget() -> Budget:
    """$5,000/month single filer without itemized deductions."""
    return Budget(
        id=1,
        user_id=10,
        income=Decimal("5000"),
        income_period=Period.MONTHLY,
        filing_status=FilingStatus.SINGLE,
    )


@pytest.fixture
def categories() -> list[Category]:
    """Fixed bills of $3,000/month and $500/month of savings."""
    return [
        Category(
            id=101,
            budget_id=1,
            name="Rent",
            category_type=CategoryType.FIXED,
            allocated_amount=Decimal("2400"),
            expected_merchant_name="Oakwood Apartments",
        ),
        Category(
            id=102,
            budget_id=1,
            name="Car Insurance",
            category_type=CategoryType.FIXED,
            allocated_amount=Decimal("7200"),
            period=Period.ANNUAL,
        ),
        Category(
            id=103,
            budget_id=1,
            name="Emergency Fund",
            category_type=CategoryType.SAVINGS,
            allocated_amount=Decimal("500"),
            accumulated_total=Decimal("1000"),
        ),
    ]


@pytest.fixture
def budget_repository() -> InMemoryBudgetRepository:
    return InMemoryBudgetRepository()


@pytest.fixture
def transaction_repository() -> InMemoryTransactionRepository:
    return InMemoryTransactionRepository([
        TransactionRecord(id=1, amount=Decimal("150.00"), name="Costco", merchant_name="Costco"),
        TransactionRecord(id=2, amount=Decimal("-42.10"), name="Refund", merchant_name="Target"),
    ])
