"""Tests for budget models and money helpers."""

from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from budget_core.models import (
    Budget,
    Category,
    CategoryForm,
    CategoryType,
    Period,
    SubItem,
    SubItemForm,
    denormalize_period,
    normalize_period,
)
from budget_core.money import money, parse_amount, ratio_percent, to_decimal, within_tolerance


class TestPeriods:
    """Monthly/annual normalization."""

    @pytest.mark.parametrize("period", list(Period))
    @pytest.mark.parametrize("amount", ["0", "1234.56", "0.01", "99999.99"])
    def test_round_trip(self, period: Period, amount: str):
        value = Decimal(amount)

        assert normalize_period(denormalize_period(value, period), period) == value

    def test_annual_divided_by_twelve(self):
        assert normalize_period(Decimal("1200"), Period.ANNUAL) == Decimal("100")
        assert denormalize_period(Decimal("100"), Period.ANNUAL) == Decimal("1200")
        assert normalize_period(Decimal("100"), Period.MONTHLY) == Decimal("100")

    def test_budget_income_views(self):
        budget = Budget(income="90000", income_period="annual")

        assert budget.monthly_income == Decimal("7500")
        assert budget.annual_income == Decimal("90000")


class TestCategory:
    """Category amounts and itemized mode."""

    def test_string_amounts_coerced(self):
        category = Category(name="Rent", allocated_amount="1200.50")

        assert category.allocated_amount == Decimal("1200.50")
        assert category.annual_amount == Decimal("14406.00")

    def test_sub_items_drive_amount(self):
        category = Category(
            name="Insurance",
            category_type=CategoryType.FIXED,
            allocated_amount="5000",
            period=Period.ANNUAL,
            sub_items=[
                SubItem(name="Car", amount="600", period=Period.ANNUAL),
                SubItem(name="Life", amount="30"),
            ],
        )

        assert category.is_itemized
        assert category.allocated_amount == Decimal("80")
        assert category.period == Period.MONTHLY

    def test_empty_sub_items_sum_to_zero(self):
        category = Category(
            name="Insurance",
            category_type=CategoryType.FIXED,
            allocated_amount="300",
            sub_items=[],
        )

        assert category.is_itemized
        assert category.allocated_amount == Decimal("0")

    def test_unparseable_amount_is_a_model_error(self):
        with pytest.raises(PydanticValidationError):
            Category(name="Rent", allocated_amount="1,200")

    def test_negative_sub_item_rejected(self):
        with pytest.raises(PydanticValidationError):
            SubItem(name="Car", amount="-1")

    def test_with_changes_revalidates(self):
        category = Category(
            name="Insurance",
            category_type=CategoryType.FIXED,
            sub_items=[SubItem(name="Car", amount="50")],
        )

        changed = category.with_changes(sub_items=[{"name": "Car", "amount": "75"}])

        assert changed.allocated_amount == Decimal("75")
        assert category.allocated_amount == Decimal("50")

    def test_system_types(self):
        assert CategoryType.SURPLUS.is_system
        assert CategoryType.EXCLUDED.is_system
        assert not CategoryType.SAVINGS.is_system
        assert CategoryType.FIXED.supports_sub_items
        assert not CategoryType.VARIABLE.supports_sub_items


class TestCategoryForm:
    """Raw input to Category conversion."""

    def test_round_trip_through_form(self):
        category = Category(
            id=5,
            budget_id=1,
            name="Utilities",
            category_type=CategoryType.FIXED,
            sub_items=[SubItem(name="Water", amount="40"), SubItem(name="Power", amount="60")],
            expected_merchant_name="City Utilities",
        )

        form = CategoryForm.from_category(category)
        rebuilt = form.to_category(budget_id=1)

        assert form.sub_items[0] == SubItemForm(name="Water", amount="40")
        assert rebuilt == category

    def test_numbers_stringified(self):
        form = CategoryForm(name="Rent", allocated_amount=Decimal("100"))

        assert form.allocated_amount == "100"

    def test_formatted_amounts_converted(self):
        category = CategoryForm(
            name="Insurance",
            category_type=CategoryType.FIXED,
            accumulated_total="1,000",
            sub_items=[SubItemForm(name="Car", amount="$1,200", period=Period.ANNUAL)],
        ).to_category()

        assert category.accumulated_total == Decimal("1000")
        assert category.sub_items[0].amount == Decimal("1200")
        assert category.allocated_amount == Decimal("100")

    def test_blank_amount_becomes_zero(self):
        category = CategoryForm(name="  Gifts ", allocated_amount="").to_category()

        assert category.name == "Gifts"
        assert category.allocated_amount == Decimal("0")


class TestMoney:
    """Decimal helpers."""

    def test_float_goes_through_str(self):
        assert to_decimal(0.1) == Decimal("0.1")

    def test_money_rounds_half_up(self):
        assert money("2190.375") == Decimal("2190.38")
        assert money("-0.005") == Decimal("-0.01")

    @pytest.mark.parametrize("raw,expected", [
        ("1,250.00", Decimal("1250.00")),
        ("$40", Decimal("40")),
        ("", Decimal("0")),
        (None, Decimal("0")),
        ("abc", None),
        ("Infinity", None),
    ])
    def test_parse_amount(self, raw, expected):
        assert parse_amount(raw) == expected

    def test_ratio_percent(self):
        assert ratio_percent(Decimal("1"), Decimal("3")) == Decimal("33.33")
        assert ratio_percent(Decimal("1"), Decimal("0")) == Decimal("0")

    def test_within_tolerance(self):
        assert within_tolerance(Decimal("10.00"), Decimal("10.01"))
        assert not within_tolerance(Decimal("10.00"), Decimal("10.02"))
