"""Tests for the statutory constants registry."""

from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from dane_core.exceptions import ConfigurationError
from dane_core.tax_constants import (
    DEFAULT_TAX_YEAR,
    TAX_YEAR_2020,
    TaxYearConfig,
    get_tax_year_config,
    supported_tax_years,
)


class TestTaxYear2020:
    """2020 constants derived from the subsistence minimum."""

    @pytest.mark.parametrize(
        "field,expected",
        [
            ("personal_allowance", Decimal("4414.20")),
            ("allowance_lower_threshold", Decimal("19506.56")),
            ("allowance_upper_threshold", Decimal("37163.36")),
            ("partner_allowance", Decimal("4035.84")),
            ("partner_income_threshold", Decimal("4035.84")),
            ("rate_breakpoint", Decimal("37163.36")),
            ("dependent_monthly_bonus", Decimal("22.72")),
            ("pension_ceiling", Decimal("180")),
            ("spa_ceiling", Decimal("50")),
            ("flat_expense_cap", Decimal("20000")),
        ],
    )
    def test_values(self, field, expected):
        """Statutory amounts for 2020."""
        assert getattr(TAX_YEAR_2020, field) == expected

    def test_rates(self):
        """19 % and 25 %."""
        assert TAX_YEAR_2020.lower_rate == Decimal("0.19")
        assert TAX_YEAR_2020.higher_rate == Decimal("0.25")

    def test_annual_dependent_bonus(self):
        """Twelve monthly bonuses."""
        assert TAX_YEAR_2020.annual_dependent_bonus == Decimal("272.64")

    def test_frozen(self):
        """Constants cannot be changed at runtime."""
        with pytest.raises(PydanticValidationError):
            TAX_YEAR_2020.lower_rate = Decimal("0.10")


class TestRegistry:
    """Lookup by tax year."""

    def test_default_year(self):
        """No year means the default year."""
        assert get_tax_year_config() is get_tax_year_config(DEFAULT_TAX_YEAR)

    def test_supported_years(self):
        """2020 is registered."""
        assert 2020 in supported_tax_years()

    def test_unknown_year(self):
        """Unknown years raise with the supported list."""
        with pytest.raises(ConfigurationError) as exc_info:
            get_tax_year_config(1999)

        assert exc_info.value.config_key == "tax_year"
        assert "2020" in exc_info.value.expected


class TestConsistency:
    """Validation of custom constant sets."""

    def _values(self, **overrides):
        values = TAX_YEAR_2020.model_dump()
        values.update(overrides)
        return values

    def test_custom_year(self):
        """A consistent custom set is accepted."""
        config = TaxYearConfig(**self._values(tax_year=2021, version="custom"))
        assert config.tax_year == 2021

    def test_inverted_thresholds(self):
        """Upper threshold below lower threshold is rejected."""
        with pytest.raises(ConfigurationError):
            TaxYearConfig(**self._values(allowance_upper_threshold=Decimal("100")))

    def test_inverted_rates(self):
        """Higher rate below lower rate is rejected."""
        with pytest.raises(ConfigurationError):
            TaxYearConfig(**self._values(higher_rate=Decimal("0.10")))

    def test_bad_country_code(self):
        """Bank country is a two-letter code."""
        with pytest.raises(PydanticValidationError):
            TaxYearConfig(**self._values(allowed_bank_country="SVK"))
