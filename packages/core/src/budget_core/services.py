"""Services wiring the pure engine to the persistence collaborators.

The services are the only place where repositories are called. Each one
loads the aggregate, runs the engine and writes back what changed;
repository errors propagate untouched.
"""

from typing import Optional, Sequence

import structlog

from .allocation import BudgetAllocation
from .calculator import TaxCalculator
from .categorization import suggest_category
from .config import BudgetSettings
from .exceptions import NotFoundError, ValidationError
from .models import Budget, Category, FilingStatus, Period, SplitAssignment, TransactionRecord
from .money import ZERO, Numeric, to_decimal
from .repositories import BudgetRepository, TransactionRepository
from .splits import SplitReconciler, SplitSet

logger = structlog.get_logger()


class BudgetService:
    """
    Create, load and save a user's budget.

    A user has exactly one active budget. Every session handed out has
    its system categories in place and its surplus reconciled, and
    ``save`` persists the reconciled surplus with the rest of the changes.
    """

    def __init__(
        self,
        repository: BudgetRepository,
        settings: Optional[BudgetSettings] = None,
        calculator: Optional[TaxCalculator] = None,
    ):
        self.repository = repository
        self.settings = settings or BudgetSettings()
        self.calculator = calculator or TaxCalculator.from_settings(self.settings)

    def _session(self, budget: Budget, categories: Sequence[Category]) -> BudgetAllocation:
        return BudgetAllocation(
            budget,
            categories,
            calculator=self.calculator,
            settings=self.settings,
        )

    def create_budget(
        self,
        user_id: int,
        name: str = "Monthly Budget",
        income: Numeric = ZERO,
        income_period: Period = Period.MONTHLY,
        filing_status: FilingStatus = FilingStatus.SINGLE,
        deductions: Numeric = ZERO,
    ) -> BudgetAllocation:
        """
        Create the user's budget with its system categories.

        Raises:
            ValidationError: If the user already has an active budget
        """
        if self.repository.get_active_budget(user_id) is not None:
            raise ValidationError(
                "User already has a budget. Update it instead of creating a new one",
                field="user_id",
                value=user_id,
                constraint="one active budget per user",
            )

        budget = self.repository.create_budget(Budget(
            user_id=user_id,
            name=name,
            income=to_decimal(income),
            income_period=income_period,
            filing_status=filing_status,
            deductions=to_decimal(deductions),
        ))
        logger.info("budget_created", budget_id=budget.id, user_id=user_id)

        session = self._session(budget, [])
        session.ensure_system_categories()
        return self.save(session)

    def load(self, user_id: int) -> BudgetAllocation:
        """
        Load the user's active budget as an editing session.

        Missing system categories are created and a stale surplus is
        corrected before the session is returned.

        Raises:
            NotFoundError: If the user has no active budget
        """
        budget = self.repository.get_active_budget(user_id)
        if budget is None:
            raise NotFoundError(
                f"No active budget for user {user_id}",
                entity="budget",
                key=user_id,
            )

        session = self._session(budget, self.repository.list_categories(budget.id))
        session.ensure_system_categories()
        return self.save(session)

    def save(self, session: BudgetAllocation) -> BudgetAllocation:
        """
        Persist a session: budget fields, removed, new and changed categories.

        Returns:
            A fresh session over the stored state
        """
        budget = session.budget
        if budget.id is None:
            raise ValidationError("Budget must be created before it is saved", field="id")

        stored_budget = self.repository.get_budget(budget.id)
        if stored_budget is None:
            raise NotFoundError(f"Budget {budget.id} not found", entity="budget", key=budget.id)
        if stored_budget != budget:
            budget = self.repository.update_budget(budget)

        for category_id in session.removed_category_ids:
            self.repository.delete_category(category_id)

        stored = {cat.id: cat for cat in self.repository.list_categories(budget.id)}
        saved: list[Category] = []
        created = updated = 0
        for cat in session.categories:
            if cat.id is None:
                saved.append(self.repository.create_category(
                    cat.with_changes(budget_id=budget.id)
                ))
                created += 1
            elif stored.get(cat.id) != cat:
                saved.append(self.repository.update_category(cat))
                updated += 1
            else:
                saved.append(cat)

        logger.info(
            "budget_saved",
            budget_id=budget.id,
            created=created,
            updated=updated,
            deleted=len(session.removed_category_ids),
        )
        return self._session(budget, saved)


class TransactionSplitService:
    """Open and commit transaction splits against stored transactions."""

    def __init__(
        self,
        transactions: TransactionRepository,
        budgets: BudgetRepository,
        reconciler: Optional[SplitReconciler] = None,
        settings: Optional[BudgetSettings] = None,
    ):
        self.transactions = transactions
        self.budgets = budgets
        self.reconciler = reconciler or SplitReconciler.from_settings(settings or BudgetSettings())

    def _transaction(self, transaction_id: int) -> TransactionRecord:
        transaction = self.transactions.get_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError(
                f"Transaction {transaction_id} not found",
                entity="transaction",
                key=transaction_id,
            )
        return transaction

    def _categories(self, user_id: int) -> list[Category]:
        budget = self.budgets.get_active_budget(user_id)
        if budget is None:
            raise NotFoundError(f"No active budget for user {user_id}", entity="budget", key=user_id)
        return self.budgets.list_categories(budget.id)

    def open(self, transaction_id: int) -> SplitSet:
        """Editing state for a transaction, built from its stored assignments."""
        transaction = self._transaction(transaction_id)
        return self.reconciler.start(
            transaction.amount,
            self.transactions.list_assignments(transaction_id),
        )

    def commit(self, user_id: int, transaction_id: int, split_set: SplitSet) -> list[SplitAssignment]:
        """
        Validate a split set against the stored transaction and persist it.

        Raises:
            NotFoundError: If the transaction or the user's budget is missing
            SplitError: If the split does not reconcile with the transaction
        """
        transaction = self._transaction(transaction_id)
        categories = self._categories(user_id)

        error = self.reconciler.validate(split_set, transaction.amount, categories)
        if error is not None:
            raise error

        assignments = self.reconciler.commit(split_set, categories)
        self.transactions.replace_assignments(transaction_id, assignments)
        logger.info(
            "transaction_split_saved",
            transaction_id=transaction_id,
            splits=len(assignments),
            total=str(sum((a.amount for a in assignments), ZERO)),
        )
        return assignments

    def assign_category(self, user_id: int, transaction_id: int, category_id: int) -> list[SplitAssignment]:
        """Put the whole transaction in one category."""
        transaction = self._transaction(transaction_id)
        split_set = self.reconciler.set_category(
            self.reconciler.start(transaction.amount), 0, category_id
        )
        return self.commit(user_id, transaction_id, split_set)

    def suggest(
        self,
        user_id: int,
        transaction_id: int,
        merchant_history: Sequence[int] = (),
    ) -> Optional[int]:
        """Rule-based category suggestion for a stored transaction."""
        return suggest_category(
            self._transaction(transaction_id),
            self._categories(user_id),
            merchant_history,
        )
