"""Tests for rule-based transaction categorization."""

from decimal import Decimal
from typing import Optional

import pytest

from budget_core import Category, CategoryType
from budget_core.categorization import detect_transfer, match_fixed_category, suggest_category
from budget_core.models import TransactionRecord


@pytest.fixture
def budget_categories() -> list[Category]:
    return [
        Category(id=1, name="Rent", category_type=CategoryType.FIXED, expected_merchant_name="Oakwood"),
        Category(id=2, name="Groceries", category_type=CategoryType.VARIABLE),
        Category(id=3, name="Excluded", category_type=CategoryType.EXCLUDED),
        Category(id=4, name="Surplus", category_type=CategoryType.SURPLUS),
    ]


def _transaction(name: str, merchant: Optional[str] = None, provider_categories=None) -> TransactionRecord:
    return TransactionRecord(
        id=1,
        amount=Decimal("25.00"),
        name=name,
        merchant_name=merchant,
        provider_categories=provider_categories,
    )


class TestDetectTransfer:
    """Transfers and card payments."""

    @pytest.mark.parametrize("name", [
        "Online Transfer to Savings",
        "CHASE CREDIT CARD AUTOPAY",
        "Payment Thank You",
        "venmo pay",
    ])
    def test_keywords(self, name: str):
        assert detect_transfer(name)

    @pytest.mark.parametrize("categories", [
        ["TRANSFER_OUT"],
        ["LOAN_PAYMENTS", "CAR_PAYMENT"],
        ["Credit_Card_Payment"],
    ])
    def test_provider_categories(self, categories):
        assert detect_transfer("Something", provider_categories=categories)

    def test_merchant_used_when_name_missing(self):
        assert detect_transfer(None, "AUTO PAY SERVICE")

    def test_regular_purchase(self):
        assert not detect_transfer("Whole Foods", "Whole Foods", ["FOOD_AND_DRINK"])

    def test_nothing_to_go_on(self):
        assert not detect_transfer(None)


class TestSuggestCategory:
    """Rule order and surplus exclusion."""

    def test_transfer_goes_to_excluded(self, budget_categories):
        assert suggest_category(_transaction("Transfer to Savings"), budget_categories) == 3

    def test_fixed_merchant_match(self, budget_categories):
        transaction = _transaction("OAKWOOD APTS 123", merchant="Oakwood Apartments LLC")

        assert suggest_category(transaction, budget_categories) == 1

    def test_match_fixed_category_case_insensitive(self, budget_categories):
        assert match_fixed_category("the OAKWOOD group", budget_categories).id == 1
        assert match_fixed_category("Starbucks", budget_categories) is None
        assert match_fixed_category(None, budget_categories) is None

    def test_merchant_history(self, budget_categories):
        transaction = _transaction("Trader Joe's", merchant="Trader Joe's")

        assert suggest_category(transaction, budget_categories, [2, 1, 2]) == 2

    def test_history_tie_goes_to_most_recent(self, budget_categories):
        transaction = _transaction("Trader Joe's", merchant="Trader Joe's")

        assert suggest_category(transaction, budget_categories, [1, 2]) == 1

    def test_surplus_never_suggested(self, budget_categories):
        transaction = _transaction("Bonus", merchant="Employer")

        assert suggest_category(transaction, budget_categories, [4, 4, 4]) is None

    def test_no_rule_applies(self, budget_categories):
        assert suggest_category(_transaction("Starbucks", "Starbucks"), budget_categories) is None

    def test_transfer_without_excluded_category(self):
        categories = [Category(id=2, name="Groceries")]

        assert suggest_category(_transaction("Transfer to Savings"), categories) is None
