"""Persistence contracts consumed by the budget services.

These interfaces use Python's structural subtyping via typing.Protocol:
any storage adapter with matching method signatures is compatible, no
inheritance required. The engine itself never performs I/O; the services
in ``budget_core.services`` read through these protocols, run the pure
computations and write the results back.

Example Usage:
    ```python
    class SqlBudgetRepository:
        def get_active_budget(self, user_id: int) -> Optional[Budget]:
            row = session.query(BudgetRow).filter_by(user_id=user_id, is_active=True).first()
            return Budget.model_validate(row, from_attributes=True) if row else None
        ...

    service = BudgetService(SqlBudgetRepository())
    ```
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence, runtime_checkable

from .models import Budget, Category, SplitAssignment, TransactionRecord


@runtime_checkable
class BudgetRepository(Protocol):
    """Read and write budgets and their categories, keyed by numeric id.

    ``create_*`` methods return the stored entity with its id assigned.
    Errors raised by an implementation propagate to the caller unchanged.
    """

    def get_active_budget(self, user_id: int) -> Optional[Budget]:
        """Return the user's active budget, or None."""
        ...

    def get_budget(self, budget_id: int) -> Optional[Budget]:
        ...

    def create_budget(self, budget: Budget) -> Budget:
        ...

    def update_budget(self, budget: Budget) -> Budget:
        ...

    def list_categories(self, budget_id: int) -> list[Category]:
        ...

    def create_category(self, category: Category) -> Category:
        ...

    def update_category(self, category: Category) -> Category:
        ...

    def delete_category(self, category_id: int) -> None:
        ...


@runtime_checkable
class TransactionRepository(Protocol):
    """Read transactions and replace their category assignments."""

    def get_transaction(self, transaction_id: int) -> Optional[TransactionRecord]:
        ...

    def list_assignments(self, transaction_id: int) -> list[SplitAssignment]:
        """Current (category, amount) rows of a transaction, in display order."""
        ...

    def replace_assignments(
        self,
        transaction_id: int,
        assignments: Sequence[SplitAssignment],
    ) -> None:
        """Delete the existing rows and store ``assignments`` in their place."""
        ...
