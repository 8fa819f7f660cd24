"""Tax computation for the DPFO type B declaration.

The calculator consumes resolved :class:`EligibilityFacts` and a
:class:`TaxYearConfig` and produces the declaration line values. Every line is
rounded half-up to cents when it is produced, and later lines use the rounded
values, so the printed form adds up.
"""

from decimal import Decimal
from typing import Optional

import structlog

from .models import (
    ZERO,
    AuditEntry,
    CalculationResult,
    Declaration,
    DeclarationChild,
    EligibilityFacts,
)
from .tax_constants import TaxYearConfig
from .validators import round_amount

logger = structlog.get_logger()

ACT = "Act 595/2003 Coll."


# =============================================================================
# PURE HELPERS
# =============================================================================

def phase_out(
    base: Decimal,
    full_amount: Decimal,
    threshold: Decimal,
    slope: Decimal,
    ceiling: Optional[Decimal] = None,
) -> Decimal:
    """
    Allowance reduced linearly once the base exceeds a threshold.

    Returns ``full_amount`` while ``base <= threshold``, then subtracts
    ``slope`` per euro above the threshold, never going below zero. From
    ``ceiling`` (when given) the allowance is zero.
    """
    if base <= threshold:
        return full_amount
    if ceiling is not None and base >= ceiling:
        return ZERO
    return max(ZERO, full_amount - (base - threshold) * slope)


def progressive_tax(base: Decimal, config: TaxYearConfig) -> Decimal:
    """Two-tier income tax on a tax base."""
    if base <= config.rate_breakpoint:
        return base * config.lower_rate
    return (
        config.rate_breakpoint * config.lower_rate
        + (base - config.rate_breakpoint) * config.higher_rate
    )


def flat_rate_expenses(income: Decimal, config: TaxYearConfig) -> Decimal:
    """Flat-rate expenses of the self-employed, capped per year."""
    return min(income * config.flat_expense_rate, config.flat_expense_cap)


# =============================================================================
# CALCULATOR
# =============================================================================

class TaxCalculator:
    """
    Compute the declaration lines from eligibility facts.

    The calculator never reads raw wizard flags; a section contributes only
    when its ``SectionEligibility`` applies. Each line is recorded in the
    audit log with the statutory source it follows.
    """

    def __init__(self, config: TaxYearConfig):
        self.config = config
        self._audit_log: list[AuditEntry] = []
        self._warnings: list[str] = []

    def _log_step(
        self,
        step: str,
        input_value: str,
        output_value: str,
        source: str,
        notes: Optional[str] = None,
        line_number: Optional[str] = None,
    ) -> None:
        """Add an entry to the audit log."""
        entry = AuditEntry(
            step=step,
            input_value=input_value,
            output_value=output_value,
            source=source,
            notes=notes,
            line_number=line_number,
        )
        self._audit_log.append(entry)
        logger.info(
            "tax_calculation_step",
            step=step,
            input=input_value,
            output=output_value,
            source=source,
        )

    def _self_employment(self, facts: EligibilityFacts) -> dict[str, Decimal]:
        """Lines r.041 - r.043: self-employment income, expenses and base."""
        income = facts.income
        flat = round_amount(flat_rate_expenses(income.self_employment_income, self.config))
        self._log_step(
            step="flat_rate_expenses",
            input_value=(
                f"income={income.self_employment_income} x rate={self.config.flat_expense_rate}, "
                f"cap={self.config.flat_expense_cap}"
            ),
            output_value=f"flat_expenses={flat}",
            source=f"{ACT} §6 ods. 10",
            line_number="tabulka1 r.10 s.2",
        )

        expenses = round_amount(
            flat + income.social_contributions + income.health_contributions
        )
        self._log_step(
            step="self_employment_expenses",
            input_value=(
                f"flat={flat} + social={income.social_contributions} "
                f"+ health={income.health_contributions}"
            ),
            output_value=f"expenses={expenses}",
            source=f"{ACT} §6 ods. 10, annex 3",
            line_number="r.042",
        )

        base = round_amount(max(ZERO, income.self_employment_income - expenses))
        if expenses > income.self_employment_income:
            self._warnings.append(
                "Self-employment expenses exceed income; the tax loss is not carried into the base"
            )
        self._log_step(
            step="self_employment_base",
            input_value=f"income={income.self_employment_income} - expenses={expenses}",
            output_value=f"base={base}",
            source=f"{ACT} §6",
            line_number="r.043",
        )
        return {"flat": flat, "expenses": expenses, "base": base}

    def _employment_base(self, facts: EligibilityFacts) -> Optional[Decimal]:
        """Line r.040, or None when the employment section does not apply."""
        employment = facts.employment
        if not employment.eligibility.applies:
            return None

        base = round_amount(max(ZERO, employment.income - employment.contributions))
        self._log_step(
            step="employment_base",
            input_value=f"income={employment.income} - contributions={employment.contributions}",
            output_value=f"base={base}",
            source=f"{ACT} §5",
            line_number="r.040",
        )
        return base

    def _personal_allowance(self, taxable_income: Decimal) -> Decimal:
        allowance = round_amount(
            phase_out(
                taxable_income,
                self.config.personal_allowance,
                self.config.allowance_lower_threshold,
                self.config.allowance_phase_out_slope,
                ceiling=self.config.allowance_upper_threshold,
            )
        )
        self._log_step(
            step="personal_allowance",
            input_value=(
                f"taxable_income={taxable_income}, "
                f"threshold={round_amount(self.config.allowance_lower_threshold)}"
            ),
            output_value=f"allowance={allowance}",
            source=f"{ACT} §11 ods. 2",
            line_number="r.073",
        )
        return allowance

    def _partner_allowance(self, facts: EligibilityFacts, taxable_income: Decimal) -> Decimal:
        partner = facts.partner
        if not partner.eligibility.applies:
            return ZERO

        months = partner.eligibility.month_count
        annual = phase_out(
            taxable_income,
            self.config.partner_allowance,
            self.config.partner_phase_out_threshold,
            self.config.allowance_phase_out_slope,
        )
        own_income = partner.own_income or ZERO
        allowance = round_amount(max(ZERO, annual - own_income) * months / 12)
        self._log_step(
            step="partner_allowance",
            input_value=(
                f"(phased={round_amount(annual)} - partner_income={own_income}) "
                f"x {months}/12"
            ),
            output_value=f"allowance={allowance}",
            source=f"{ACT} §11 ods. 3",
            line_number="r.074",
        )
        return allowance

    def _dependent_bonus(self, facts: EligibilityFacts) -> Decimal:
        months = sum(d.eligibility.month_count for d in facts.dependents)
        bonus = round_amount(self.config.dependent_monthly_bonus * months)
        if facts.dependents:
            self._log_step(
                step="dependent_bonus",
                input_value=(
                    f"children={len(facts.dependents)}, months={months} "
                    f"x {self.config.dependent_monthly_bonus}"
                ),
                output_value=f"bonus={bonus}",
                source=f"{ACT} §33",
                line_number="r.106",
            )
        return bonus

    def calculate(self, facts: EligibilityFacts) -> CalculationResult:
        """
        Compute every declaration line.

        Args:
            facts: Resolved eligibility facts

        Returns:
            CalculationResult with the declaration and its audit trail
        """
        self._audit_log = []
        self._warnings = list(facts.warnings)

        self._log_step(
            step="calculation_start",
            input_value=f"tax_year={facts.tax_year}",
            output_value=f"constants={self.config.version}",
            source="dane calculator",
        )

        # Step 1: Partial tax bases
        self_employment = self._self_employment(facts)
        employment_base = self._employment_base(facts)

        taxable_income = round_amount((employment_base or ZERO) + self_employment["base"])
        self._log_step(
            step="taxable_income",
            input_value=f"employment={employment_base or ZERO} + self_employment={self_employment['base']}",
            output_value=f"taxable_income={taxable_income}",
            source=f"{ACT} §4",
            line_number="r.072",
        )

        # Step 2: Non-taxable parts
        personal = self._personal_allowance(taxable_income)
        partner = self._partner_allowance(facts, taxable_income)
        pension = round_amount(facts.pension.claimed) if facts.pension.eligibility.applies else ZERO
        spa_taxpayer = round_amount(facts.spa.taxpayer.claimed)
        spa_family = round_amount(facts.spa.partner.claimed + facts.spa.dependents.claimed)
        mortgage = (
            round_amount(facts.mortgage.interest_paid)
            if facts.mortgage.eligibility.applies
            else ZERO
        )

        total_deductions = round_amount(
            personal + partner + pension + spa_taxpayer + spa_family + mortgage
        )
        self._log_step(
            step="total_deductions",
            input_value=(
                f"personal={personal} + partner={partner} + pension={pension} "
                f"+ spa_taxpayer={spa_taxpayer} + spa_family={spa_family} + mortgage={mortgage}"
            ),
            output_value=f"deductions={total_deductions}",
            source=f"{ACT} §11",
            line_number="r.077",
        )

        # Step 3: Tax base and tax
        tax_base = round_amount(max(ZERO, taxable_income - total_deductions))
        self._log_step(
            step="tax_base",
            input_value=f"taxable_income={taxable_income} - deductions={total_deductions}",
            output_value=f"tax_base={tax_base}",
            source=f"{ACT} §4",
            line_number="r.078",
        )

        tax = round_amount(progressive_tax(tax_base, self.config))
        self._log_step(
            step="tax",
            input_value=(
                f"tax_base={tax_base}, breakpoint={round_amount(self.config.rate_breakpoint)}, "
                f"rates={self.config.lower_rate}/{self.config.higher_rate}"
            ),
            output_value=f"tax={tax}",
            source=f"{ACT} §15",
            line_number="r.081",
        )

        # Step 4: Bonus, prepayments and settlement
        bonus = self._dependent_bonus(facts)
        employer_bonus = facts.employment.partner_bonus_via_employer
        advance_tax = facts.employment.advance_tax
        prepayments = facts.income.prepayments_paid

        settlement = tax - bonus - employer_bonus - advance_tax - prepayments
        net_liability = round_amount(max(ZERO, settlement))
        refund = round_amount(max(ZERO, -settlement))
        self._log_step(
            step="settlement",
            input_value=(
                f"tax={tax} - bonus={bonus} - employer_bonus={employer_bonus} "
                f"- advance_tax={advance_tax} - prepayments={prepayments}"
            ),
            output_value=f"to_pay={net_liability}, to_refund={refund}",
            source=f"{ACT} §33, §35",
            line_number="r.135 / r.136",
        )

        if facts.payout.requested and refund == 0:
            self._warnings.append("Payout requested but there is no bonus or overpayment to pay out")

        declaration = self._build_declaration(
            facts,
            self_employment=self_employment,
            employment_base=employment_base,
            lines={
                "taxable_income": taxable_income,
                "personal_allowance": personal,
                "partner_allowance": partner,
                "pension_deduction": pension,
                "spa_deduction_taxpayer": spa_taxpayer,
                "spa_deduction_family": spa_family,
                "mortgage_deduction": mortgage,
                "total_deductions": total_deductions,
                "tax_base": tax_base,
                "tax": tax,
                "dependent_bonus": bonus,
                "partner_bonus_via_employer": round_amount(employer_bonus),
                "employment_advance_tax": round_amount(advance_tax),
                "prepayments_paid": round_amount(prepayments),
                "net_liability": net_liability,
                "refund": refund,
            },
        )

        self._log_step(
            step="calculation_complete",
            input_value=f"tax_year={facts.tax_year}",
            output_value=f"settlement={declaration.settlement}",
            source="dane calculator",
        )

        return CalculationResult(
            declaration=declaration,
            audit_log=self._audit_log,
            warnings=self._warnings,
            constants_version=self.config.version,
        )

    def _build_declaration(
        self,
        facts: EligibilityFacts,
        self_employment: dict[str, Decimal],
        employment_base: Optional[Decimal],
        lines: dict[str, Decimal],
    ) -> Declaration:
        taxpayer = facts.taxpayer
        partner = facts.partner
        employment = facts.employment
        claimed_partner = partner.national_id is not None

        children = tuple(
            DeclarationChild(
                name=d.name,
                national_id=d.national_id.number,
                spa_care=d.spa_care,
                whole_year=d.whole_year,
                months=d.months_present,
            )
            for d in facts.dependents
        )

        return Declaration(
            tax_year=facts.tax_year,
            tax_id=taxpayer.tax_id,
            nace_code=taxpayer.nace_code,
            nace_activity=taxpayer.nace_activity,
            last_name=taxpayer.last_name,
            first_name=taxpayer.first_name,
            title=taxpayer.title,
            street=taxpayer.street,
            house_number=taxpayer.house_number,
            postal_code=taxpayer.postal_code,
            municipality=taxpayer.municipality,
            country=taxpayer.country,
            filing_date=taxpayer.filing_date,
            partner_name=partner.name if claimed_partner else None,
            partner_national_id=partner.national_id.number if partner.national_id else None,
            partner_own_income=partner.own_income if claimed_partner else None,
            partner_months=partner.eligibility.months if partner.eligibility.applies else None,
            partner_spa_expense=(
                facts.spa.partner.claimed if facts.spa.partner.eligibility.applies else None
            ),
            children=children,
            dependents_spa_expense=(
                facts.spa.dependents.claimed if facts.spa.dependents.eligibility.applies else None
            ),
            mortgage_interest=(
                facts.mortgage.interest_paid if facts.mortgage.eligibility.applies else None
            ),
            mortgage_months=facts.mortgage.eligibility.months,
            employment_income=employment.income if employment.eligibility.applies else None,
            employment_contributions=(
                employment.contributions if employment.eligibility.applies else None
            ),
            employment_base=employment_base,
            self_employment_income=facts.income.self_employment_income,
            flat_rate_expenses=self_employment["flat"],
            social_contributions=facts.income.social_contributions,
            health_contributions=facts.income.health_contributions,
            self_employment_expenses=self_employment["expenses"],
            self_employment_base=self_employment["base"],
            payout_requested=facts.payout.requested,
            iban=facts.payout.iban,
            **lines,
        )


def calculate_declaration(facts: EligibilityFacts, config: TaxYearConfig) -> CalculationResult:
    """Compute a declaration with a fresh calculator."""
    return TaxCalculator(config).calculate(facts)
