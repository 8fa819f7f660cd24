"""Statutory constants for the Slovak personal income tax declaration (type B).

Constants are grouped per tax year in an immutable :class:`TaxYearConfig` that
is passed explicitly to the eligibility and computation engines, so the
engines never depend on the current date.

Sources:
- Act No. 595/2003 Coll. on Income Tax, §11 (non-taxable parts), §15 (rates),
  §33 (tax bonus), §6 ods. 10 (flat-rate expenses)
- Subsistence minimum valid on 1 January 2020: 210.20 EUR

Updated: tax year 2020
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .exceptions import ConfigurationError


class TaxYearConfig(BaseModel):
    """Statutory constants for one tax year.

    The personal allowance is a two-tier function of the taxable base: the
    full amount up to ``allowance_lower_threshold``, reduced by
    ``allowance_phase_out_slope`` per euro above it, and zero from
    ``allowance_upper_threshold``. The partner allowance uses the same slope
    starting at ``partner_phase_out_threshold``.
    """

    model_config = ConfigDict(frozen=True)

    tax_year: int = Field(ge=2000, le=2100)
    version: str = Field(description="Identifier of this constants set")

    # §11 ods. 2 - non-taxable part for the taxpayer
    personal_allowance: Decimal = Field(ge=0)
    allowance_lower_threshold: Decimal = Field(ge=0)
    allowance_upper_threshold: Decimal = Field(ge=0)
    allowance_phase_out_slope: Decimal = Field(gt=0)

    # §11 ods. 3 - non-taxable part for the partner
    partner_allowance: Decimal = Field(ge=0)
    partner_phase_out_threshold: Decimal = Field(ge=0)
    partner_income_threshold: Decimal = Field(ge=0)

    # §15 - tax rates
    rate_breakpoint: Decimal = Field(ge=0)
    lower_rate: Decimal = Field(ge=0, le=1)
    higher_rate: Decimal = Field(ge=0, le=1)

    # §33 - tax bonus per dependent child and month
    dependent_monthly_bonus: Decimal = Field(ge=0)

    # Ceilings
    pension_ceiling: Decimal = Field(ge=0)
    spa_ceiling: Decimal = Field(ge=0)

    # §6 ods. 10 - flat-rate expenses of the self-employed
    flat_expense_rate: Decimal = Field(default=Decimal("0"), ge=0, le=1)
    flat_expense_cap: Decimal = Field(default=Decimal("0"), ge=0)

    allowed_bank_country: str = Field(default="SK", pattern="^[A-Z]{2}$")

    @model_validator(mode="after")
    def check_breakpoints(self) -> "TaxYearConfig":
        """Reject constant sets whose breakpoints or rates are inverted."""
        if self.allowance_upper_threshold < self.allowance_lower_threshold:
            raise ConfigurationError(
                "Allowance upper threshold is below the lower threshold",
                config_key="allowance_upper_threshold",
                expected=f">= {self.allowance_lower_threshold}",
                actual=str(self.allowance_upper_threshold),
            )
        if self.higher_rate < self.lower_rate:
            raise ConfigurationError(
                "Higher tax rate is below the lower tax rate",
                config_key="higher_rate",
                expected=f">= {self.lower_rate}",
                actual=str(self.higher_rate),
            )
        return self

    @property
    def annual_dependent_bonus(self) -> Decimal:
        """Bonus for one dependent present the whole year."""
        return self.dependent_monthly_bonus * 12


# =============================================================================
# TAX YEAR 2020
# =============================================================================
# Most breakpoints are multiples of the subsistence minimum (ZM):
#   personal allowance       21.0 x ZM
#   lower threshold          92.8 x ZM
#   upper threshold / rates 176.8 x ZM
#   partner allowance        19.2 x ZM

SUBSISTENCE_MINIMUM_2020 = Decimal("210.20")

TAX_YEAR_2020 = TaxYearConfig(
    tax_year=2020,
    version="DPFO-B-2020",
    personal_allowance=SUBSISTENCE_MINIMUM_2020 * Decimal("21.0"),
    allowance_lower_threshold=SUBSISTENCE_MINIMUM_2020 * Decimal("92.8"),
    allowance_upper_threshold=SUBSISTENCE_MINIMUM_2020 * Decimal("176.8"),
    allowance_phase_out_slope=Decimal("0.25"),
    partner_allowance=SUBSISTENCE_MINIMUM_2020 * Decimal("19.2"),
    partner_phase_out_threshold=SUBSISTENCE_MINIMUM_2020 * Decimal("176.8"),
    partner_income_threshold=SUBSISTENCE_MINIMUM_2020 * Decimal("19.2"),
    rate_breakpoint=SUBSISTENCE_MINIMUM_2020 * Decimal("176.8"),
    lower_rate=Decimal("0.19"),
    higher_rate=Decimal("0.25"),
    dependent_monthly_bonus=Decimal("22.72"),
    pension_ceiling=Decimal("180"),
    spa_ceiling=Decimal("50"),
    flat_expense_rate=Decimal("0.60"),
    flat_expense_cap=Decimal("20000"),
    allowed_bank_country="SK",
)

TAX_YEAR_CONFIGS: dict[int, TaxYearConfig] = {
    TAX_YEAR_2020.tax_year: TAX_YEAR_2020,
}

DEFAULT_TAX_YEAR = 2020


def get_tax_year_config(tax_year: Optional[int] = None) -> TaxYearConfig:
    """Return the statutory constants for a tax year.

    Args:
        tax_year: Year to look up (default: DEFAULT_TAX_YEAR)

    Raises:
        ConfigurationError: No constants are registered for the year.
    """
    year = DEFAULT_TAX_YEAR if tax_year is None else tax_year
    try:
        return TAX_YEAR_CONFIGS[year]
    except KeyError:
        raise ConfigurationError(
            f"No statutory constants for tax year {year}",
            config_key="tax_year",
            expected="One of: " + ", ".join(str(y) for y in sorted(TAX_YEAR_CONFIGS)),
            actual=year,
        ) from None


def supported_tax_years() -> list[int]:
    """Tax years with registered constants."""
    return sorted(TAX_YEAR_CONFIGS)
