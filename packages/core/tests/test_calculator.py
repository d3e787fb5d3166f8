"""Tests for the tax calculator."""

from decimal import Decimal

import pytest

from budget_core import ConfigurationError, FilingStatus, TaxCalculator, TaxResult, compute_tax
from budget_core.config import BudgetSettings
from budget_core.tax_tables import TAX_TABLES_2025, get_tax_tables


@pytest.fixture
def calculator() -> TaxCalculator:
    return TaxCalculator()


class TestFederalIncomeTax:
    """Progressive bracket calculation."""

    def test_single_filer_60k(self, calculator: TaxCalculator):
        """$60,000 single: $44,250 taxable, taxed in the 10% and 12% brackets only."""
        result = calculator.calculate(Decimal("60000"), FilingStatus.SINGLE)

        assert result.standard_deduction == Decimal("15750.00")
        assert result.taxable_income == Decimal("44250.00")
        # 11,925 x 10% + (44,250 - 11,925) x 12%
        assert result.federal_income_tax.amount == Decimal("5071.50")
        assert result.federal_income_tax.marginal_rate == Decimal("12")
        assert [line.rate for line in result.federal_income_tax.breakdown] == [
            Decimal("10"),
            Decimal("12"),
        ]

    def test_breakdown_sums_to_federal_tax(self, calculator: TaxCalculator):
        """Bracket lines should add up to the federal income tax."""
        result = calculator.calculate(Decimal("250000"), FilingStatus.HEAD_OF_HOUSEHOLD)

        total = sum(line.amount for line in result.federal_income_tax.breakdown)
        assert abs(total - result.federal_income_tax.amount) <= Decimal("0.01")
        assert sum(
            line.taxable_amount for line in result.federal_income_tax.breakdown
        ) == result.taxable_income

    def test_top_of_bracket_keeps_lower_marginal_rate(self, calculator: TaxCalculator):
        """Taxable income exactly at a bracket's upper bound stays in that bracket."""
        # 27,675 - 15,750 = 11,925 taxable
        result = calculator.calculate(Decimal("27675"), FilingStatus.SINGLE)

        assert result.taxable_income == Decimal("11925.00")
        assert result.federal_income_tax.amount == Decimal("1192.50")
        assert result.federal_income_tax.marginal_rate == Decimal("10")

    def test_one_dollar_over_boundary(self, calculator: TaxCalculator):
        """The first dollar above a boundary is taxed at the next rate."""
        result = calculator.calculate(Decimal("27676"), FilingStatus.SINGLE)

        assert result.federal_income_tax.amount == Decimal("1192.62")
        assert result.federal_income_tax.marginal_rate == Decimal("12")

    def test_income_below_standard_deduction(self, calculator: TaxCalculator):
        """No federal tax when the standard deduction covers all income, but FICA applies."""
        result = calculator.calculate(Decimal("10000"), FilingStatus.SINGLE)

        assert result.taxable_income == Decimal("0.00")
        assert result.federal_income_tax.amount == Decimal("0.00")
        assert result.federal_income_tax.marginal_rate == Decimal("10")
        assert result.fica.social_security.amount == Decimal("620.00")
        assert result.state_tax.amount == Decimal("0.00")

    def test_itemized_deductions_reduce_taxable_income(self, calculator: TaxCalculator):
        result = calculator.calculate(
            Decimal("60000"), FilingStatus.SINGLE, itemized_deductions=Decimal("4250")
        )

        assert result.taxable_income == Decimal("40000.00")
        assert result.total_deductions == Decimal("20000.00")

    @pytest.mark.parametrize("status", list(FilingStatus))
    def test_monotonic_in_income(self, calculator: TaxCalculator, status: FilingStatus):
        """Federal tax and marginal rate never decrease as income grows."""
        previous_tax = Decimal("-1")
        previous_rate = Decimal("0")
        for income in range(0, 1_000_001, 12_500):
            result = calculator.calculate(Decimal(income), status)
            assert result.federal_income_tax.amount >= previous_tax
            assert result.federal_income_tax.marginal_rate >= previous_rate
            previous_tax = result.federal_income_tax.amount
            previous_rate = result.federal_income_tax.marginal_rate


class TestFica:
    """Social Security, Medicare and Additional Medicare."""

    def test_standard_rates(self, calculator: TaxCalculator):
        result = calculator.calculate(Decimal("60000"), FilingStatus.SINGLE)

        assert result.fica.social_security.amount == Decimal("3720.00")
        assert result.fica.social_security.rate == Decimal("6.2")
        assert result.fica.medicare.amount == Decimal("870.00")
        assert result.fica.additional_medicare.amount == Decimal("0.00")
        assert result.fica.additional_medicare.rate == Decimal("0")
        assert result.fica.total.amount == Decimal("4590.00")

    @pytest.mark.parametrize("income", ["176101", "200000", "450000", "2000000"])
    def test_social_security_capped_at_wage_base(self, calculator: TaxCalculator, income: str):
        """Above the $176,100 wage base Social Security is flat."""
        result = calculator.calculate(Decimal(income), FilingStatus.SINGLE)

        assert result.fica.social_security.amount == Decimal("10918.20")

    def test_additional_medicare_married_jointly(self, calculator: TaxCalculator):
        """$500,000 married-jointly: 0.9% on the $250,000 above the threshold."""
        result = calculator.calculate(Decimal("500000"), FilingStatus.MARRIED_JOINTLY)

        assert result.fica.additional_medicare.amount == Decimal("2250.00")
        assert result.fica.additional_medicare.rate == Decimal("0.9")
        assert result.fica.medicare.amount == Decimal("7250.00")

    def test_additional_medicare_single_threshold(self, calculator: TaxCalculator):
        result = calculator.calculate(Decimal("250000"), FilingStatus.SINGLE)

        assert result.fica.additional_medicare.amount == Decimal("450.00")

    def test_fica_exempt_contributions_reduce_wages(self, calculator: TaxCalculator):
        """Pre-tax, FICA-exempt savings reduce both taxable income and FICA wages."""
        result = calculator.calculate(
            Decimal("60000"),
            FilingStatus.SINGLE,
            tax_deductible_contributions=Decimal("6000"),
            fica_exempt_contributions=Decimal("6000"),
        )

        assert result.taxable_income == Decimal("38250.00")
        assert result.fica.social_security.amount == Decimal("3348.00")
        assert result.fica.medicare.amount == Decimal("783.00")

    def test_tax_deductible_only_keeps_fica_wages(self, calculator: TaxCalculator):
        """Tax-deductible savings subject to FICA do not change FICA."""
        result = calculator.calculate(
            Decimal("60000"),
            FilingStatus.SINGLE,
            tax_deductible_contributions=Decimal("6000"),
        )

        assert result.taxable_income == Decimal("38250.00")
        assert result.fica.social_security.amount == Decimal("3720.00")


class TestTotals:
    """State tax, totals and effective rates."""

    def test_state_tax_on_taxable_income(self, calculator: TaxCalculator):
        result = calculator.calculate(Decimal("60000"), FilingStatus.SINGLE)

        # 44,250 x 4.95% = 2,190.375
        assert result.state_tax.amount == Decimal("2190.38")
        assert result.state_tax.rate == Decimal("4.95")

    def test_total_tax(self, calculator: TaxCalculator):
        result = calculator.calculate(Decimal("60000"), FilingStatus.SINGLE)

        assert result.federal_tax.amount == Decimal("9661.50")
        assert result.total_tax.amount == Decimal("11851.88")
        assert result.total_tax.effective_rate == Decimal("19.75")
        assert result.federal_income_tax.effective_rate == Decimal("8.45")

    def test_state_rate_override(self):
        calculator = TaxCalculator(state_tax_rate=Decimal("0"))
        result = calculator.calculate(Decimal("60000"), FilingStatus.SINGLE)

        assert result.state_tax.amount == Decimal("0.00")
        assert result.total_tax.amount == Decimal("9661.50")

    def test_from_settings(self):
        settings = BudgetSettings(_env_file=None, state_tax_rate=Decimal("3"))
        calculator = TaxCalculator.from_settings(settings)

        assert calculator.tables.year == 2025
        assert calculator.state_tax_rate == Decimal("3")

    def test_monthly_total_tax(self, calculator: TaxCalculator):
        result = calculator.calculate(Decimal("60000"), FilingStatus.SINGLE)

        assert result.monthly_total_tax == result.total_tax.amount / 12
        assert round(result.monthly_total_tax, 2) == Decimal("987.66")

    def test_compute_tax_accepts_strings_and_floats(self):
        """Inputs are converted to Decimal without float error."""
        from_str = compute_tax("60000.10", "single")
        from_float = compute_tax(60000.10, FilingStatus.SINGLE)

        assert from_str.total_tax.amount == from_float.total_tax.amount
        assert from_str.annual_income == Decimal("60000.10")


class TestZeroIncome:
    """Zero and negative income never raise."""

    @pytest.mark.parametrize("income", ["0", "-5000"])
    def test_all_amounts_zero(self, calculator: TaxCalculator, income: str):
        result = calculator.calculate(Decimal(income), FilingStatus.MARRIED_JOINTLY)

        assert isinstance(result, TaxResult)
        assert result.taxable_income == Decimal("0")
        assert result.federal_income_tax.amount == Decimal("0")
        assert result.fica.total.amount == Decimal("0")
        assert result.state_tax.amount == Decimal("0")
        assert result.total_tax.amount == Decimal("0")
        assert result.total_tax.effective_rate == Decimal("0")
        assert result.federal_income_tax.effective_rate == Decimal("0")

    def test_reports_lowest_marginal_rate(self, calculator: TaxCalculator):
        result = calculator.calculate(Decimal("0"), FilingStatus.SINGLE)

        assert result.federal_income_tax.marginal_rate == Decimal("10")
        assert result.fica.social_security.rate == Decimal("6.2")
        assert result.fica.additional_medicare.rate == Decimal("0")


class TestAuditLog:
    """Every calculation records its steps."""

    def test_audit_log_populated(self, calculator: TaxCalculator):
        result = calculator.calculate(Decimal("60000"), FilingStatus.SINGLE)

        step_names = [entry.step for entry in result.audit_log]
        assert "taxable_income" in step_names
        assert "federal_income_tax" in step_names
        assert "fica" in step_names
        assert "state_tax" in step_names
        assert "total_tax" in step_names

    def test_audit_log_reset_between_calculations(self, calculator: TaxCalculator):
        first = calculator.calculate(Decimal("60000"), FilingStatus.SINGLE)
        second = calculator.calculate(Decimal("0"), FilingStatus.SINGLE)

        assert len(second.audit_log) == 1
        assert len(first.audit_log) > 1


class TestTaxTables:
    """Static tables lookup."""

    def test_default_year(self):
        assert get_tax_tables() is TAX_TABLES_2025

    def test_unknown_year(self):
        with pytest.raises(ConfigurationError) as exc_info:
            get_tax_tables(1999)

        assert exc_info.value.config_key == "tax_year"
        assert exc_info.value.actual == 1999

    def test_brackets_are_contiguous(self):
        for status in FilingStatus:
            brackets = TAX_TABLES_2025.brackets_for(status)
            assert brackets[0].min == 0
            assert brackets[-1].max is None
            for lower, upper in zip(brackets, brackets[1:]):
                assert lower.max == upper.min
