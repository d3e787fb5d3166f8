"""Progressive income tax, FICA and flat state tax calculations.

The calculator combines:
1. Federal income tax over progressive brackets after the standard
   deduction, itemized deductions and pre-tax contributions
2. FICA (Social Security up to the wage base, Medicare, Additional Medicare)
3. A flat state tax on federal taxable income

All arithmetic is exact Decimal; amounts in the returned TaxResult are
rounded to cents and rates are percentages rounded to two places.
"""

from decimal import Decimal
from typing import Optional

import structlog

from .config import BudgetSettings
from .models import (
    AuditEntry,
    BracketTax,
    FederalIncomeTax,
    FicaTax,
    FilingStatus,
    TaxComponent,
    TaxResult,
    TaxTotal,
)
from .money import ZERO, Numeric, money, percent_of, ratio_percent, to_decimal
from .tax_tables import TaxTables, get_tax_tables

logger = structlog.get_logger()


class TaxCalculator:
    """
    Calculate the annual tax owed on employment income.

    The calculator is stateless apart from the audit log of its most
    recent calculation; every step is logged so the numbers shown in a
    budget can be traced back to the tables they came from.
    """

    def __init__(
        self,
        tables: Optional[TaxTables] = None,
        state_tax_rate: Optional[Decimal] = None,
    ):
        """
        Initialize calculator with tax tables.

        Args:
            tables: Tax tables to use (default: current tax year)
            state_tax_rate: Override the tables' flat state rate, in percent
        """
        self.tables = tables or get_tax_tables()
        self.state_tax_rate = (
            self.tables.state_tax_rate if state_tax_rate is None else to_decimal(state_tax_rate)
        )
        self._audit_log: list[AuditEntry] = []

    @classmethod
    def from_settings(cls, settings: BudgetSettings) -> "TaxCalculator":
        return cls(
            tables=get_tax_tables(settings.tax_year),
            state_tax_rate=settings.state_tax_rate,
        )

    def _log_step(
        self,
        step: str,
        input_value: str,
        output_value: str,
        source: str,
        notes: Optional[str] = None,
    ) -> None:
        """Add an entry to the audit log."""
        entry = AuditEntry(
            step=step,
            input_value=input_value,
            output_value=output_value,
            source=source,
            notes=notes,
        )
        self._audit_log.append(entry)
        logger.debug(
            "tax_calculation_step",
            step=step,
            input=input_value,
            output=output_value,
            source=source,
        )

    def _federal_income_tax(
        self,
        taxable_income: Decimal,
        filing_status: FilingStatus,
    ) -> tuple[Decimal, Decimal, list[BracketTax]]:
        """Apply the progressive brackets.

        Returns:
            Tuple of (unrounded tax, marginal rate, per-bracket breakdown)
        """
        brackets = self.tables.brackets_for(filing_status)
        total = ZERO
        marginal_rate = brackets[0].rate
        breakdown: list[BracketTax] = []

        for bracket in brackets:
            if taxable_income <= bracket.min:
                break

            upper = taxable_income if bracket.max is None else min(taxable_income, bracket.max)
            slice_amount = upper - bracket.min
            bracket_tax = percent_of(slice_amount, bracket.rate)
            total += bracket_tax
            marginal_rate = bracket.rate

            breakdown.append(BracketTax(
                bracket=bracket.label,
                rate=bracket.rate,
                taxable_amount=money(slice_amount),
                amount=money(bracket_tax),
            ))

            self._log_step(
                step=f"bracket_{bracket.rate}",
                input_value=f"slice={slice_amount} of {bracket.label}",
                output_value=str(money(bracket_tax)),
                source=f"Federal brackets {self.tables.year} ({filing_status.value})",
            )

        return total, marginal_rate, breakdown

    def _zero_result(
        self,
        annual_income: Decimal,
        filing_status: FilingStatus,
        itemized_deductions: Decimal,
        tax_deductible_contributions: Decimal,
        fica_exempt_contributions: Decimal,
    ) -> TaxResult:
        zero = money(ZERO)
        zero_rate = ratio_percent(ZERO, ZERO)
        self._log_step(
            step="zero_income",
            input_value=f"annual_income={annual_income}",
            output_value="all taxes 0",
            source="Calculated",
            notes="Income at or below zero owes no tax",
        )
        return TaxResult(
            tax_year=self.tables.year,
            filing_status=filing_status,
            annual_income=money(annual_income),
            standard_deduction=money(self.tables.standard_deduction(filing_status)),
            itemized_deductions=money(itemized_deductions),
            tax_deductible_contributions=money(tax_deductible_contributions),
            fica_exempt_contributions=money(fica_exempt_contributions),
            taxable_income=zero,
            federal_income_tax=FederalIncomeTax(
                amount=zero,
                effective_rate=zero_rate,
                marginal_rate=self.tables.lowest_rate,
                breakdown=[],
            ),
            fica=FicaTax(
                social_security=TaxComponent(amount=zero, rate=self.tables.social_security_rate),
                medicare=TaxComponent(amount=zero, rate=self.tables.medicare_rate),
                additional_medicare=TaxComponent(amount=zero, rate=ZERO),
                total=TaxTotal(amount=zero, effective_rate=zero_rate),
            ),
            federal_tax=TaxTotal(amount=zero, effective_rate=zero_rate),
            state_tax=TaxComponent(amount=zero, rate=self.state_tax_rate),
            total_tax=TaxTotal(amount=zero, effective_rate=zero_rate),
            audit_log=self._audit_log,
        )

    def calculate(
        self,
        annual_income: Numeric,
        filing_status: FilingStatus,
        itemized_deductions: Numeric = ZERO,
        tax_deductible_contributions: Numeric = ZERO,
        fica_exempt_contributions: Numeric = ZERO,
    ) -> TaxResult:
        """
        Calculate the full tax breakdown for a year of income.

        Args:
            annual_income: Gross annual wages
            filing_status: Federal filing status
            itemized_deductions: Deductions on top of the standard deduction
            tax_deductible_contributions: Pre-tax contributions (401(k)-style)
                that reduce federal and state taxable income
            fica_exempt_contributions: Contributions that also reduce
                Social Security and Medicare wages

        Returns:
            TaxResult with per-bracket breakdown and audit trail
        """
        self._audit_log = []

        annual_income = to_decimal(annual_income)
        filing_status = FilingStatus(filing_status)
        itemized_deductions = to_decimal(itemized_deductions)
        tax_deductible_contributions = to_decimal(tax_deductible_contributions)
        fica_exempt_contributions = to_decimal(fica_exempt_contributions)

        if annual_income <= 0:
            return self._zero_result(
                annual_income,
                filing_status,
                itemized_deductions,
                tax_deductible_contributions,
                fica_exempt_contributions,
            )

        # Step 1: Taxable income
        standard_deduction = self.tables.standard_deduction(filing_status)
        taxable_income = max(
            ZERO,
            annual_income - standard_deduction - itemized_deductions - tax_deductible_contributions,
        )
        self._log_step(
            step="taxable_income",
            input_value=(
                f"{annual_income} - standard={standard_deduction} - itemized={itemized_deductions}"
                f" - pre_tax={tax_deductible_contributions}"
            ),
            output_value=str(taxable_income),
            source=f"Standard deduction {self.tables.year} ({filing_status.value})",
        )

        # Step 2: Federal income tax
        federal_amount, marginal_rate, breakdown = self._federal_income_tax(
            taxable_income, filing_status
        )
        federal_income_tax = money(federal_amount)
        self._log_step(
            step="federal_income_tax",
            input_value=f"taxable_income={taxable_income}",
            output_value=f"tax={federal_income_tax}, marginal={marginal_rate}%",
            source=f"Federal brackets {self.tables.year}",
        )

        # Step 3: FICA
        fica_wages = max(ZERO, annual_income - fica_exempt_contributions)
        social_security = money(percent_of(
            min(fica_wages, self.tables.social_security_wage_base),
            self.tables.social_security_rate,
        ))
        medicare = money(percent_of(fica_wages, self.tables.medicare_rate))
        threshold = self.tables.additional_medicare_threshold(filing_status)
        additional_medicare = money(percent_of(
            max(ZERO, fica_wages - threshold),
            self.tables.additional_medicare_rate,
        ))
        fica_total = social_security + medicare + additional_medicare
        self._log_step(
            step="fica",
            input_value=(
                f"wages={fica_wages}, wage_base={self.tables.social_security_wage_base},"
                f" additional_medicare_threshold={threshold}"
            ),
            output_value=(
                f"social_security={social_security}, medicare={medicare},"
                f" additional_medicare={additional_medicare}"
            ),
            source=f"FICA {self.tables.year}",
        )

        # Step 4: State tax
        state_tax = money(percent_of(taxable_income, self.state_tax_rate))
        self._log_step(
            step="state_tax",
            input_value=f"taxable_income={taxable_income} x {self.state_tax_rate}%",
            output_value=str(state_tax),
            source="Flat state income tax",
        )

        # Step 5: Totals
        federal_total = federal_income_tax + fica_total
        total_tax = federal_total + state_tax
        self._log_step(
            step="total_tax",
            input_value=f"{federal_income_tax} + {fica_total} + {state_tax}",
            output_value=str(total_tax),
            source="Calculated",
        )

        logger.info(
            "tax_calculated",
            tax_year=self.tables.year,
            filing_status=filing_status.value,
            taxable_income=str(money(taxable_income)),
            total_tax=str(total_tax),
        )

        return TaxResult(
            tax_year=self.tables.year,
            filing_status=filing_status,
            annual_income=money(annual_income),
            standard_deduction=money(standard_deduction),
            itemized_deductions=money(itemized_deductions),
            tax_deductible_contributions=money(tax_deductible_contributions),
            fica_exempt_contributions=money(fica_exempt_contributions),
            taxable_income=money(taxable_income),
            federal_income_tax=FederalIncomeTax(
                amount=federal_income_tax,
                effective_rate=ratio_percent(federal_income_tax, annual_income),
                marginal_rate=marginal_rate,
                breakdown=breakdown,
            ),
            fica=FicaTax(
                social_security=TaxComponent(
                    amount=social_security, rate=self.tables.social_security_rate
                ),
                medicare=TaxComponent(amount=medicare, rate=self.tables.medicare_rate),
                additional_medicare=TaxComponent(
                    amount=additional_medicare,
                    rate=self.tables.additional_medicare_rate if additional_medicare > 0 else ZERO,
                ),
                total=TaxTotal(
                    amount=fica_total,
                    effective_rate=ratio_percent(fica_total, annual_income),
                ),
            ),
            federal_tax=TaxTotal(
                amount=federal_total,
                effective_rate=ratio_percent(federal_total, annual_income),
            ),
            state_tax=TaxComponent(amount=state_tax, rate=self.state_tax_rate),
            total_tax=TaxTotal(
                amount=total_tax,
                effective_rate=ratio_percent(total_tax, annual_income),
            ),
            audit_log=self._audit_log,
        )


def compute_tax(
    annual_income: Numeric,
    filing_status: FilingStatus,
    itemized_deductions: Numeric = ZERO,
    tax_deductible_contributions: Numeric = ZERO,
    fica_exempt_contributions: Numeric = ZERO,
    *,
    tables: Optional[TaxTables] = None,
    state_tax_rate: Optional[Decimal] = None,
) -> TaxResult:
    """Compute a TaxResult with a fresh TaxCalculator (current-year tables by default)."""
    return TaxCalculator(tables=tables, state_tax_rate=state_tax_rate).calculate(
        annual_income,
        filing_status,
        itemized_deductions,
        tax_deductible_contributions,
        fica_exempt_contributions,
    )
