"""Federal, FICA and state tax tables used by the tax calculator.

Tables are static data keyed by tax year so a new year can be added
without touching the calculation code.

Sources:
- Federal brackets and standard deductions: IRS Revenue Procedure 2024-40
  (tax year 2025 inflation adjustments), amended by the 2025 standard
  deduction increase.
- FICA: SSA 2025 contribution and benefit base; IRC 3101(b)(2) for the
  Additional Medicare Tax thresholds.
- State: single flat-rate jurisdiction (Utah, 4.95%).

Rates are stored as percentages: Decimal("12") means 12%.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import NamedTuple, Optional

from .exceptions import ConfigurationError
from .models import FilingStatus


# =============================================================================
# VERSION TRACKING
# =============================================================================

DEFAULT_TAX_YEAR = 2025


class TaxBracket(NamedTuple):
    """One federal income tax bracket.

    The bracket covers taxable income above ``min`` up to and including
    ``max``; ``max`` is None for the unbounded top bracket.
    """
    min: Decimal
    max: Optional[Decimal]
    rate: Decimal

    @property
    def label(self) -> str:
        upper = "and up" if self.max is None else f"- ${self.max:,.0f}"
        return f"${self.min:,.0f} {upper}"


@dataclass(frozen=True)
class TaxTables:
    """All static tax data for a single tax year."""
    year: int
    standard_deductions: dict[FilingStatus, Decimal]
    brackets: dict[FilingStatus, tuple[TaxBracket, ...]]
    social_security_rate: Decimal
    social_security_wage_base: Decimal
    medicare_rate: Decimal
    additional_medicare_rate: Decimal
    additional_medicare_thresholds: dict[FilingStatus, Decimal]
    state_tax_rate: Decimal
    notes: list[str] = field(default_factory=list)

    def standard_deduction(self, filing_status: FilingStatus) -> Decimal:
        return self.standard_deductions[FilingStatus(filing_status)]

    def brackets_for(self, filing_status: FilingStatus) -> tuple[TaxBracket, ...]:
        return self.brackets[FilingStatus(filing_status)]

    def additional_medicare_threshold(self, filing_status: FilingStatus) -> Decimal:
        return self.additional_medicare_thresholds[FilingStatus(filing_status)]

    @property
    def lowest_rate(self) -> Decimal:
        """Lowest bracket rate across filing statuses (reported for zero income)."""
        return min(b[0].rate for b in self.brackets.values())


def _brackets(*rows: tuple[int, Optional[int], str]) -> tuple[TaxBracket, ...]:
    return tuple(
        TaxBracket(
            min=Decimal(lower),
            max=None if upper is None else Decimal(upper),
            rate=Decimal(rate),
        )
        for lower, upper, rate in rows
    )


# =============================================================================
# 2025
# =============================================================================

TAX_TABLES_2025 = TaxTables(
    year=2025,
    standard_deductions={
        FilingStatus.SINGLE: Decimal("15750"),
        FilingStatus.MARRIED_JOINTLY: Decimal("31500"),
        FilingStatus.MARRIED_SEPARATELY: Decimal("15750"),
        FilingStatus.HEAD_OF_HOUSEHOLD: Decimal("23625"),
    },
    brackets={
        FilingStatus.SINGLE: _brackets(
            (0, 11925, "10"),
            (11925, 48475, "12"),
            (48475, 103350, "22"),
            (103350, 197300, "24"),
            (197300, 250525, "32"),
            (250525, 626350, "35"),
            (626350, None, "37"),
        ),
        FilingStatus.MARRIED_JOINTLY: _brackets(
            (0, 23850, "10"),
            (23850, 96950, "12"),
            (96950, 206700, "22"),
            (206700, 394600, "24"),
            (394600, 501050, "32"),
            (501050, 751600, "35"),
            (751600, None, "37"),
        ),
        FilingStatus.MARRIED_SEPARATELY: _brackets(
            (0, 11925, "10"),
            (11925, 48475, "12"),
            (48475, 103350, "22"),
            (103350, 197300, "24"),
            (197300, 250525, "32"),
            (250525, 375800, "35"),
            (375800, None, "37"),
        ),
        FilingStatus.HEAD_OF_HOUSEHOLD: _brackets(
            (0, 17000, "10"),
            (17000, 64850, "12"),
            (64850, 103350, "22"),
            (103350, 197300, "24"),
            (197300, 250500, "32"),
            (250500, 626350, "35"),
            (626350, None, "37"),
        ),
    },
    social_security_rate=Decimal("6.2"),
    social_security_wage_base=Decimal("176100"),
    medicare_rate=Decimal("1.45"),
    additional_medicare_rate=Decimal("0.9"),
    additional_medicare_thresholds={
        FilingStatus.SINGLE: Decimal("200000"),
        FilingStatus.MARRIED_JOINTLY: Decimal("250000"),
        FilingStatus.MARRIED_SEPARATELY: Decimal("200000"),
        FilingStatus.HEAD_OF_HOUSEHOLD: Decimal("200000"),
    },
    state_tax_rate=Decimal("4.95"),
    notes=[
        "State tax uses the federal taxable income (flat-rate jurisdiction).",
        "Employee share of FICA only.",
    ],
)


TAX_TABLES: dict[int, TaxTables] = {
    2025: TAX_TABLES_2025,
}


def supported_tax_years() -> list[int]:
    """Return the tax years that have tables, ascending."""
    return sorted(TAX_TABLES)


def get_tax_tables(year: Optional[int] = None) -> TaxTables:
    """Get the tax tables for a year.

    Args:
        year: Tax year (default: DEFAULT_TAX_YEAR)

    Returns:
        TaxTables for the year

    Raises:
        ConfigurationError: If no tables exist for the year
    """
    year = DEFAULT_TAX_YEAR if year is None else year
    try:
        return TAX_TABLES[year]
    except KeyError:
        raise ConfigurationError(
            f"No tax tables for year {year}",
            config_key="tax_year",
            expected=f"One of: {', '.join(str(y) for y in supported_tax_years())}",
            actual=year,
        ) from None
