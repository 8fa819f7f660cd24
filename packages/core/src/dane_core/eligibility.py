"""Eligibility and proration engine.

Turns the wizard's raw record into :class:`EligibilityFacts`: every optional
section of the declaration resolves exactly once to not-applicable,
full-period or partial-period(months), with its amounts validated and capped
at the statutory ceilings. The tax calculator never looks at raw flags.
"""

import re
from decimal import Decimal
from typing import Any, Mapping, Optional

import structlog

from .exceptions import MissingRequiredField
from .log_config import mask_identifier
from .models import (
    ZERO,
    DependentFacts,
    EligibilityFacts,
    EmploymentFacts,
    IncomeFacts,
    MortgageFacts,
    NationalIdInfo,
    PartnerFacts,
    PayoutRequest,
    PensionFacts,
    RawDependent,
    RawUserInput,
    SectionEligibility,
    SpaClaim,
    SpaFacts,
    TaxpayerFacts,
)
from .tax_constants import TaxYearConfig
from .validators import (
    is_blank,
    month_span,
    parse_amount,
    parse_date,
    parse_flag,
    parse_month,
    parse_month_count,
    round_amount,
    validate_bank_account_id,
    validate_national_id,
    validate_xml_text,
)

logger = structlog.get_logger()

_NACE = re.compile(r"^\s*([\d.]+)\s*(?:-\s*(.*))?$")


def _wire(attribute: str) -> str:
    return RawUserInput.wire_name(attribute)


def _text(value: Any, field: Optional[str] = None) -> Optional[str]:
    if is_blank(value):
        return None
    return validate_xml_text(value, field=field).strip()


def split_full_name(full_name: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    """Split a combined ``"First Last"`` name into (first, last)."""
    if not full_name:
        return None, None
    parts = full_name.split(None, 1)
    if len(parts) == 1:
        return None, parts[0]
    return parts[0], parts[1]


def parse_nace(value: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    """Split ``"62010 - Computer programming"`` into code and activity."""
    if not value:
        return None, None
    match = _NACE.match(value)
    if not match:
        return None, value
    code = match.group(1).replace(".", "")
    activity = (match.group(2) or "").strip() or None
    return code, activity


class EligibilityEngine:
    """
    Resolve which declaration sections apply and for how many months.

    One engine instance serves one tax year configuration; ``resolve`` keeps
    all intermediate state local to the call.
    """

    def __init__(self, config: TaxYearConfig):
        self.config = config

    # ------------------------------------------------------------------
    # Field access
    # ------------------------------------------------------------------

    def _required(self, raw: Any, attribute: str, section: str) -> Any:
        value = getattr(raw, attribute)
        if is_blank(value):
            raise MissingRequiredField(_wire(attribute), section=section)
        return value

    def _required_amount(self, raw: RawUserInput, attribute: str, section: str) -> Decimal:
        value = self._required(raw, attribute, section)
        return parse_amount(value, field=_wire(attribute))

    def _optional_amount(self, raw: RawUserInput, attribute: str) -> Decimal:
        value = getattr(raw, attribute)
        if is_blank(value):
            return ZERO
        return parse_amount(value, field=_wire(attribute))

    def _national_id(self, raw: RawUserInput, attribute: str, section: str) -> NationalIdInfo:
        value = self._required(raw, attribute, section)
        return validate_national_id(value, field=_wire(attribute))

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    def _resolve_taxpayer(self, raw: RawUserInput) -> TaxpayerFacts:
        first_name = _text(raw.first_name, _wire("first_name"))
        last_name = _text(raw.last_name, _wire("last_name"))
        if first_name is None and last_name is None:
            first_name, last_name = split_full_name(_text(raw.full_name, _wire("full_name")))

        nace_code, nace_activity = parse_nace(_text(raw.nace, _wire("nace")))

        filing_date = None
        if not is_blank(raw.filing_date):
            filing_date = parse_date(raw.filing_date, field=_wire("filing_date"))

        return TaxpayerFacts(
            tax_id=_text(raw.tax_id, _wire("tax_id")),
            first_name=first_name,
            last_name=last_name,
            title=_text(raw.title, _wire("title")),
            street=_text(raw.street, _wire("street")),
            house_number=_text(raw.house_number, _wire("house_number")),
            postal_code=_text(raw.postal_code, _wire("postal_code")),
            municipality=_text(raw.municipality, _wire("municipality")),
            country=_text(raw.country, _wire("country")),
            nace_code=nace_code,
            nace_activity=nace_activity,
            filing_date=filing_date,
        )

    def _resolve_income(self, raw: RawUserInput) -> IncomeFacts:
        return IncomeFacts(
            self_employment_income=self._required_amount(raw, "self_employment_income", "income"),
            social_contributions=self._required_amount(raw, "social_contributions", "income"),
            health_contributions=self._required_amount(raw, "health_contributions", "income"),
            prepayments_paid=self._optional_amount(raw, "prepayments_paid"),
        )

    def _resolve_employment(self, raw: RawUserInput) -> EmploymentFacts:
        if not parse_flag(raw.employed):
            return EmploymentFacts()

        return EmploymentFacts(
            eligibility=SectionEligibility.full_period(),
            income=self._optional_amount(raw, "employment_income"),
            contributions=self._optional_amount(raw, "employment_contributions"),
            advance_tax=self._optional_amount(raw, "employment_advance_tax"),
            partner_bonus_via_employer=self._optional_amount(raw, "partner_bonus_via_employer"),
        )

    def _resolve_partner(self, raw: RawUserInput, warnings: list[str]) -> PartnerFacts:
        """Partner national ID, own income and months are required; the name is not."""
        if not parse_flag(raw.claims_partner):
            return PartnerFacts()

        name = _text(raw.partner_name, _wire("partner_name"))
        national_id = self._national_id(raw, "partner_national_id", "partner")
        own_income = self._required_amount(raw, "partner_own_income", "partner")
        months = parse_month_count(
            self._required(raw, "partner_months", "partner"),
            field=_wire("partner_months"),
        )

        # The caller reports total income, so the annual limit is scaled to
        # the claimed months instead of being checked month by month.
        income_limit = self.config.partner_income_threshold * months / 12

        if own_income >= income_limit:
            warnings.append(
                f"Partner's own income {own_income} reaches the limit "
                f"{round_amount(income_limit)} for {months} months; "
                "partner allowance not applied"
            )
            logger.info(
                "partner_disqualified_by_income",
                own_income=str(own_income),
                income_limit=str(round_amount(income_limit)),
                months=months,
            )
            eligibility = SectionEligibility.not_applicable()
        else:
            eligibility = SectionEligibility.partial_period(months)

        return PartnerFacts(
            eligibility=eligibility,
            name=name,
            national_id=national_id,
            own_income=own_income,
            claimed_months=months,
            income_limit=round_amount(income_limit),
        )

    def _resolve_dependent(self, child: RawDependent, index: int) -> DependentFacts:
        prefix = f"children[{index}]"
        if is_blank(child.name):
            raise MissingRequiredField(f"{prefix}.priezviskoMeno", section="dependents")
        if is_blank(child.national_id):
            raise MissingRequiredField(f"{prefix}.rodneCislo", section="dependents")

        national_id = validate_national_id(child.national_id, field=f"{prefix}.rodneCislo")

        if parse_flag(child.whole_year):
            return DependentFacts(
                eligibility=SectionEligibility.full_period(),
                name=_text(child.name, f"{prefix}.priezviskoMeno"),
                national_id=national_id,
                spa_care=parse_flag(child.spa_care),
            )

        if is_blank(child.month_from):
            raise MissingRequiredField(f"{prefix}.monthFrom", section="dependents")
        if is_blank(child.month_to):
            raise MissingRequiredField(f"{prefix}.monthTo", section="dependents")

        month_from = parse_month(child.month_from, field=f"{prefix}.monthFrom")
        month_to = parse_month(child.month_to, field=f"{prefix}.monthTo")
        months = month_span(month_from, month_to, field=f"{prefix}.monthTo")

        return DependentFacts(
            eligibility=SectionEligibility.partial_period(months),
            name=_text(child.name, f"{prefix}.priezviskoMeno"),
            national_id=national_id,
            spa_care=parse_flag(child.spa_care),
            month_from=month_from,
            month_to=month_to,
        )

    def _resolve_dependents(self, raw: RawUserInput) -> tuple[DependentFacts, ...]:
        if raw.has_children is None:
            claimed = bool(raw.children)
        else:
            claimed = parse_flag(raw.has_children)
        if not claimed:
            return ()
        if not raw.children:
            raise MissingRequiredField("children", section="dependents")

        return tuple(
            self._resolve_dependent(child, index)
            for index, child in enumerate(raw.children)
        )

    def _resolve_mortgage(self, raw: RawUserInput) -> MortgageFacts:
        if not parse_flag(raw.claims_mortgage):
            return MortgageFacts()

        interest = self._required_amount(raw, "mortgage_interest", "mortgage")
        months = parse_month_count(
            self._required(raw, "mortgage_months", "mortgage"),
            field=_wire("mortgage_months"),
        )
        return MortgageFacts(
            eligibility=SectionEligibility.partial_period(months),
            interest_paid=interest,
        )

    def _resolve_pension(self, raw: RawUserInput) -> PensionFacts:
        if not parse_flag(raw.paid_pension):
            return PensionFacts()

        paid = self._required_amount(raw, "pension_contributions", "pension")
        claimed = min(paid, self.config.pension_ceiling)
        if claimed < paid:
            logger.info(
                "pension_contribution_capped",
                paid=str(paid),
                ceiling=str(self.config.pension_ceiling),
            )
        return PensionFacts(
            eligibility=SectionEligibility.full_period(),
            paid=paid,
            claimed=round_amount(claimed),
        )

    def _spa_claim(self, paid: Decimal, persons: int, group: str) -> SpaClaim:
        ceiling = self.config.spa_ceiling * persons
        claimed = min(paid, ceiling)
        if claimed < paid:
            logger.info("spa_expense_capped", group=group, paid=str(paid), ceiling=str(ceiling))
        return SpaClaim(
            eligibility=SectionEligibility.full_period(),
            persons=persons,
            paid=paid,
            claimed=round_amount(claimed),
        )

    def _resolve_spa(
        self,
        raw: RawUserInput,
        dependents: tuple[DependentFacts, ...],
    ) -> SpaFacts:
        if not parse_flag(raw.spa):
            return SpaFacts()

        taxpayer = SpaClaim()
        if parse_flag(raw.taxpayer_in_spa):
            paid = self._required_amount(raw, "taxpayer_spa_expense", "spa")
            taxpayer = self._spa_claim(paid, 1, "taxpayer")

        partner = SpaClaim()
        if parse_flag(raw.partner_in_spa):
            paid = self._required_amount(raw, "partner_spa_expense", "spa")
            partner = self._spa_claim(paid, 1, "partner")

        children = SpaClaim()
        flagged = sum(1 for dependent in dependents if dependent.spa_care)
        children_gate = raw.children_in_spa is None or parse_flag(raw.children_in_spa)
        if flagged and children_gate:
            paid = self._required_amount(raw, "children_spa_expense", "spa")
            children = self._spa_claim(paid, flagged, "dependents")

        return SpaFacts(taxpayer=taxpayer, partner=partner, dependents=children)

    def _resolve_payout(self, raw: RawUserInput) -> PayoutRequest:
        if not parse_flag(raw.requests_payout):
            return PayoutRequest()

        iban = self._required(raw, "iban", "payout")
        normalized = validate_bank_account_id(
            iban,
            allowed_country=self.config.allowed_bank_country,
            field=_wire("iban"),
        )
        logger.info("payout_requested", iban=mask_identifier(normalized))
        return PayoutRequest(requested=True, iban=normalized)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def resolve(self, user_input: "RawUserInput | Mapping[str, Any]") -> EligibilityFacts:
        """
        Resolve every declaration section for one computation.

        Args:
            user_input: Raw wizard record (mapping keyed by wire names)

        Returns:
            Frozen EligibilityFacts

        Raises:
            ValidationError subclasses for malformed or missing input.
        """
        raw = RawUserInput.from_mapping(user_input)
        warnings: list[str] = []

        taxpayer = self._resolve_taxpayer(raw)
        income = self._resolve_income(raw)
        employment = self._resolve_employment(raw)
        partner = self._resolve_partner(raw, warnings)
        dependents = self._resolve_dependents(raw)
        mortgage = self._resolve_mortgage(raw)
        pension = self._resolve_pension(raw)
        spa = self._resolve_spa(raw, dependents)
        payout = self._resolve_payout(raw)

        facts = EligibilityFacts(
            tax_year=self.config.tax_year,
            taxpayer=taxpayer,
            income=income,
            employment=employment,
            partner=partner,
            dependents=dependents,
            mortgage=mortgage,
            pension=pension,
            spa=spa,
            payout=payout,
            warnings=tuple(warnings),
        )

        logger.info(
            "eligibility_resolved",
            tax_year=self.config.tax_year,
            employment=employment.eligibility.status.value,
            partner=partner.eligibility.status.value,
            dependents=len(dependents),
            mortgage=mortgage.eligibility.status.value,
            pension=pension.eligibility.status.value,
            spa_taxpayer=spa.taxpayer.eligibility.status.value,
            spa_partner=spa.partner.eligibility.status.value,
            spa_dependents=spa.dependents.eligibility.status.value,
        )
        return facts


def resolve_eligibility(
    user_input: "RawUserInput | Mapping[str, Any]",
    config: TaxYearConfig,
) -> EligibilityFacts:
    """Resolve eligibility facts with a fresh engine."""
    return EligibilityEngine(config).resolve(user_input)
