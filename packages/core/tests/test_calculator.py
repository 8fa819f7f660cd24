"""Tests for the tax computation engine."""

from decimal import Decimal

import pytest

from dane_core.calculator import (
    TaxCalculator,
    calculate_declaration,
    flat_rate_expenses,
    phase_out,
    progressive_tax,
)
from dane_core.eligibility import resolve_eligibility
from dane_core.models import CalculationResult, Declaration
from dane_core.tax_constants import TAX_YEAR_2020
from dane_core.validators import round_amount


def compute(user_input, config) -> CalculationResult:
    facts = resolve_eligibility(user_input, config)
    return TaxCalculator(config).calculate(facts)


def child(month_from=None, month_to=None, whole_year=False, national_id="1607201167"):
    return {
        "priezviskoMeno": "Child",
        "rodneCislo": national_id,
        "wholeYear": whole_year,
        "monthFrom": month_from,
        "monthTo": month_to,
    }


class TestPhaseOut:
    """Tests for the allowance phase-out function."""

    FULL = Decimal("4414.20")
    LOWER = Decimal("19506.56")
    UPPER = Decimal("37163.36")
    SLOPE = Decimal("0.25")

    @pytest.mark.parametrize(
        "base,expected",
        [
            (Decimal("0"), Decimal("4414.20")),
            (Decimal("19506.56"), Decimal("4414.20")),
            (Decimal("23000"), Decimal("3540.84")),
            (Decimal("37163.36"), Decimal("0")),
            (Decimal("50000"), Decimal("0")),
        ],
    )
    def test_two_tier_allowance(self, base, expected):
        """Full below the threshold, linear in between, zero above."""
        result = phase_out(base, self.FULL, self.LOWER, self.SLOPE, ceiling=self.UPPER)
        assert round_amount(result) == expected

    def test_never_negative_without_ceiling(self):
        """Without a ceiling the slope alone floors at zero."""
        assert phase_out(Decimal("1000000"), self.FULL, self.LOWER, self.SLOPE) == 0

    def test_monotonically_non_increasing(self):
        """A higher base never yields a higher allowance."""
        bases = [Decimal(n) for n in range(0, 40000, 500)]
        values = [
            phase_out(b, self.FULL, self.LOWER, self.SLOPE, ceiling=self.UPPER) for b in bases
        ]
        assert values == sorted(values, reverse=True)


class TestRatesAndExpenses:
    """Tests for tax rates and flat-rate expenses."""

    def test_lower_rate_below_breakpoint(self):
        """19 % up to the breakpoint."""
        assert round_amount(progressive_tax(Decimal("3585.80"), TAX_YEAR_2020)) == Decimal("681.30")

    def test_higher_rate_above_breakpoint(self):
        """25 % on the part above the breakpoint."""
        tax = progressive_tax(Decimal("60000"), TAX_YEAR_2020)
        assert round_amount(tax) == Decimal("12770.20")

    @pytest.mark.parametrize(
        "income,expected",
        [(Decimal("25000"), Decimal("15000")), (Decimal("50000"), Decimal("20000"))],
    )
    def test_flat_rate_expenses_capped(self, income, expected):
        """60 % of income, at most 20 000."""
        assert flat_rate_expenses(income, TAX_YEAR_2020) == expected


class TestReferenceScenarios:
    """Full computations of the two reference inputs (2020 constants)."""

    def test_with_children(self, with_children_input, config_2020):
        """Self-employment with two children."""
        declaration = compute(with_children_input, config_2020).declaration

        assert declaration.flat_rate_expenses == Decimal("15000.00")
        assert declaration.self_employment_expenses == Decimal("17000.00")
        assert declaration.self_employment_base == Decimal("8000.00")
        assert declaration.employment_base is None
        assert declaration.taxable_income == Decimal("8000.00")
        assert declaration.personal_allowance == Decimal("4414.20")
        assert declaration.total_deductions == Decimal("4414.20")
        assert declaration.tax_base == Decimal("3585.80")
        assert declaration.tax == Decimal("681.30")
        assert declaration.dependent_bonus == Decimal("408.96")
        assert declaration.net_liability == Decimal("272.34")
        assert declaration.refund == Decimal("0")
        assert declaration.settlement == Decimal("272.34")

    def test_complete(self, complete_input, config_2020):
        """Every section claimed."""
        declaration = compute(complete_input, config_2020).declaration

        assert declaration.employment_base == Decimal("3000.00")
        assert declaration.gross_income == Decimal("29000.00")
        assert declaration.taxable_income == Decimal("11000.00")
        assert declaration.personal_allowance == Decimal("4414.20")
        assert declaration.partner_allowance == Decimal("1035.84")
        assert declaration.pension_deduction == Decimal("180.00")
        assert declaration.spa_deduction_taxpayer == Decimal("20.00")
        assert declaration.spa_deduction_family == Decimal("50.00")
        assert declaration.mortgage_deduction == Decimal("200.00")
        assert declaration.total_deductions == Decimal("5900.04")
        assert declaration.tax_base == Decimal("5099.96")
        assert declaration.tax == Decimal("968.99")
        assert declaration.dependent_bonus == Decimal("408.96")
        assert declaration.partner_bonus_via_employer == Decimal("50.00")
        assert declaration.employment_advance_tax == Decimal("100.00")
        assert declaration.prepayments_paid == Decimal("80.00")
        assert declaration.net_liability == Decimal("330.03")

    def test_complete_declaration_carries_sections(self, complete_input, config_2020):
        """Section lines are filled for claimed sections."""
        declaration = compute(complete_input, config_2020).declaration

        assert declaration.partner_name == "Fake Fake"
        assert declaration.partner_months == 12
        assert declaration.partner_spa_expense == Decimal("20.00")
        assert declaration.dependents_spa_expense == Decimal("30.00")
        assert declaration.mortgage_months == 12
        assert [c.months for c in declaration.children] == [(6, 7, 8, 9, 10, 11), ()]
        assert [c.whole_year for c in declaration.children] == [False, True]

    def test_end_to_end_without_flat_expenses(self, with_children_input, synthetic_config):
        """Income 25 000, contributions 2 000, two children."""
        declaration = compute(with_children_input, synthetic_config).declaration

        assert declaration.taxable_income == Decimal("23000.00")
        assert declaration.personal_allowance == Decimal("3540.84")
        assert declaration.tax_base == Decimal("19459.16")
        assert declaration.tax == Decimal("3697.24")
        assert declaration.dependent_bonus == Decimal("408.96")
        assert declaration.net_liability == Decimal("3288.28")


class TestStatutoryProperties:
    """Properties that hold for any set of constants."""

    @pytest.mark.parametrize("income", ["3000", "25000", "40000", "90000"])
    def test_no_optional_sections(self, minimal_input, synthetic_config, income):
        """Net liability is the tax on self-employment income after the allowance."""
        minimal_input["t1r10_prijmy"] = income
        declaration = compute(minimal_input, synthetic_config).declaration

        base = max(Decimal(income) - Decimal("2000"), Decimal("0"))
        allowance = round_amount(
            phase_out(
                base,
                synthetic_config.personal_allowance,
                synthetic_config.allowance_lower_threshold,
                synthetic_config.allowance_phase_out_slope,
                ceiling=synthetic_config.allowance_upper_threshold,
            )
        )
        tax_base = max(base - allowance, Decimal("0"))
        expected = round_amount(progressive_tax(tax_base, synthetic_config))

        assert declaration.dependent_bonus == 0
        assert declaration.total_deductions == allowance
        assert declaration.net_liability == expected

    @pytest.mark.parametrize("count", [1, 2, 3, 5])
    def test_full_year_bonus(self, minimal_input, config_2020, count):
        """N whole-year children earn N x 12 monthly bonuses."""
        minimal_input["hasChildren"] = True
        minimal_input["children"] = [child(whole_year=True) for _ in range(count)]
        declaration = compute(minimal_input, config_2020).declaration

        assert declaration.dependent_bonus == config_2020.dependent_monthly_bonus * 12 * count

    def test_partial_year_bonus(self, minimal_input, config_2020):
        """A child present June to November earns six monthly bonuses."""
        minimal_input["hasChildren"] = True
        minimal_input["children"] = [child("6", "11")]
        declaration = compute(minimal_input, config_2020).declaration

        assert declaration.dependent_bonus == Decimal("136.32")

    def test_bonus_follows_configured_rate(self, minimal_input, config_2020):
        """Constants come from the configuration, not the engine."""
        config = config_2020.model_copy(update={"dependent_monthly_bonus": Decimal("40")})
        minimal_input["hasChildren"] = True
        minimal_input["children"] = [child(whole_year=True)]

        assert compute(minimal_input, config).declaration.dependent_bonus == Decimal("480.00")

    def test_partner_income_at_limit_gives_no_allowance(self, complete_input, config_2020):
        """At the full-period threshold the partner allowance is zero."""
        complete_input["r032_partner_vlastne_prijmy"] = str(config_2020.partner_income_threshold)
        result = compute(complete_input, config_2020)

        assert result.declaration.partner_allowance == 0
        assert result.warnings

    def test_partner_income_below_limit_gives_formula(self, complete_input, config_2020):
        """Strictly below the threshold the phase-out formula applies."""
        complete_input["r032_partner_vlastne_prijmy"] = "4035.83"
        declaration = compute(complete_input, config_2020).declaration

        assert declaration.partner_allowance == Decimal("0.01")

    def test_partner_allowance_prorated(self, complete_input, config_2020):
        """The allowance is scaled by the claimed months."""
        complete_input["r032_partner_pocet_mesiacov"] = "6"
        complete_input["r032_partner_vlastne_prijmy"] = "1000"
        declaration = compute(complete_input, config_2020).declaration

        # (4035.84 - 1000) x 6 / 12
        assert declaration.partner_allowance == Decimal("1517.92")

    def test_expenses_above_income_floor_at_zero(self, minimal_input, config_2020):
        """A deduction never exceeds the income it offsets."""
        minimal_input["t1r10_prijmy"] = "1000"
        result = compute(minimal_input, config_2020)
        declaration = result.declaration

        assert declaration.self_employment_base == 0
        assert declaration.taxable_income == 0
        assert declaration.tax_base == 0
        assert declaration.tax == 0
        assert any("exceed" in w for w in result.warnings)

    def test_refund_when_prepayments_exceed_tax(self, with_children_input, config_2020):
        """Overpayment becomes a refund, never a negative amount due."""
        with_children_input["r122"] = "1000"
        declaration = compute(with_children_input, config_2020).declaration

        assert declaration.net_liability == 0
        assert declaration.refund == Decimal("727.66")
        assert declaration.settlement == Decimal("-727.66")
        assert declaration.payout_eligible

    def test_monetary_fields_non_negative(self, complete_input, config_2020):
        """Every amount on the declaration is non-negative."""
        complete_input["r122"] = "5000"
        declaration = compute(complete_input, config_2020).declaration

        amounts = [
            value for value in declaration.model_dump(exclude={"settlement"}).values()
            if isinstance(value, Decimal)
        ]
        assert amounts
        assert all(value >= 0 for value in amounts)

    def test_lines_rounded_to_cents(self, complete_input, config_2020):
        """Every amount carries exactly two decimal places."""
        complete_input["r038"] = "4000.333"
        declaration = compute(complete_input, config_2020).declaration

        for field in ("employment_base", "taxable_income", "tax_base", "tax", "net_liability"):
            assert getattr(declaration, field).as_tuple().exponent == -2


class TestAuditTrail:
    """Audit log produced alongside the declaration."""

    def test_result_metadata(self, complete_input, config_2020):
        """The constants version is recorded."""
        result = compute(complete_input, config_2020)

        assert isinstance(result.declaration, Declaration)
        assert result.constants_version == "DPFO-B-2020"

    def test_steps_reference_declaration_lines(self, complete_input, config_2020):
        """Computation steps cite the line they produce."""
        result = compute(complete_input, config_2020)

        assert result.step("tax").line_number == "r.081"
        assert result.step("personal_allowance").line_number == "r.073"
        assert result.step("partner_allowance").output_value == "allowance=1035.84"
        assert result.audit_log[0].step == "calculation_start"
        assert result.audit_log[-1].step == "calculation_complete"

    def test_unclaimed_sections_not_audited(self, minimal_input, config_2020):
        """Sections that do not apply leave no step."""
        result = compute(minimal_input, config_2020)

        assert result.step("partner_allowance") is None
        assert result.step("employment_base") is None
        assert result.step("dependent_bonus") is None

    def test_calculator_is_reusable(self, complete_input, minimal_input, config_2020):
        """State from one computation does not leak into the next."""
        calculator = TaxCalculator(config_2020)
        calculator.calculate(resolve_eligibility(complete_input, config_2020))
        second = calculator.calculate(resolve_eligibility(minimal_input, config_2020))

        assert second.step("partner_allowance") is None
        assert second.warnings == []

    def test_module_helper(self, minimal_input, config_2020):
        """calculate_declaration wraps a fresh calculator."""
        facts = resolve_eligibility(minimal_input, config_2020)
        assert calculate_declaration(facts, config_2020).declaration.tax_year == 2020
