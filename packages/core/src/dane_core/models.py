"""Core data models for the personal income tax declaration (DPFO type B).

The pipeline moves through three model layers:

1. ``RawUserInput`` - the wizard's flat record, keyed by its wire names and
   left untyped; only presence or absence of a field is trusted.
2. ``EligibilityFacts`` - validated, capped and prorated facts with one
   ``SectionEligibility`` per optional section.
3. ``Declaration`` - the line values of the official form, consumed by the
   XML serializer.
"""

from collections.abc import Mapping
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError

from .exceptions import InputValidationError


ZERO = Decimal("0.00")


# =============================================================================
# ENUMERATIONS
# =============================================================================

class Sex(str, Enum):
    """Sex encoded in the national ID number month field."""
    MALE = "male"
    FEMALE = "female"


class Applicability(str, Enum):
    """Resolution of one conditional declaration section."""
    NOT_APPLICABLE = "not_applicable"
    FULL_PERIOD = "full_period"
    PARTIAL_PERIOD = "partial_period"


# =============================================================================
# RAW INPUT
# =============================================================================

class RawDependent(BaseModel):
    """One child entry as supplied by the wizard."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    id: Any = None
    name: Any = Field(default=None, alias="priezviskoMeno")
    national_id: Any = Field(default=None, alias="rodneCislo")
    spa_care: Any = Field(default=None, alias="kupelnaStarostlivost")
    whole_year: Any = Field(default=None, alias="wholeYear")
    month_from: Any = Field(default=None, alias="monthFrom")
    month_to: Any = Field(default=None, alias="monthTo")


class RawUserInput(BaseModel):
    """The wizard's flat user-input record.

    Field aliases are the wire names used by the form. Values stay ``Any``;
    the eligibility engine interprets them through the validators.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    # Self-employment income and contributions
    self_employment_income: Any = Field(default=None, alias="t1r10_prijmy")
    social_contributions: Any = Field(default=None, alias="priloha3_r11_socialne")
    health_contributions: Any = Field(default=None, alias="priloha3_r13_zdravotne")
    prepayments_paid: Any = Field(default=None, alias="r122")

    # Taxpayer
    tax_id: Any = Field(default=None, alias="r001_dic")
    nace: Any = Field(default=None, alias="r003_nace")
    last_name: Any = Field(default=None, alias="r004_priezvisko")
    first_name: Any = Field(default=None, alias="r005_meno")
    full_name: Any = Field(default=None, alias="meno_priezvisko")
    title: Any = Field(default=None, alias="r006_titul")
    street: Any = Field(default=None, alias="r007_ulica")
    house_number: Any = Field(default=None, alias="r008_cislo")
    postal_code: Any = Field(default=None, alias="r009_psc")
    municipality: Any = Field(default=None, alias="r010_obec")
    country: Any = Field(default=None, alias="r011_stat")
    filing_date: Any = Field(default=None, alias="datum")

    # Employment
    employed: Any = Field(default=None, alias="employed")
    employment_income: Any = Field(default=None, alias="r038")
    employment_contributions: Any = Field(default=None, alias="r039")
    employment_advance_tax: Any = Field(default=None, alias="r120")
    partner_bonus_via_employer: Any = Field(default=None, alias="r108")

    # Partner
    claims_partner: Any = Field(default=None, alias="r032_uplatnujem_na_partnera")
    partner_name: Any = Field(default=None, alias="r031_priezvisko_a_meno")
    partner_national_id: Any = Field(default=None, alias="r031_rodne_cislo")
    partner_own_income: Any = Field(default=None, alias="r032_partner_vlastne_prijmy")
    partner_months: Any = Field(default=None, alias="r032_partner_pocet_mesiacov")

    # Children
    has_children: Any = Field(default=None, alias="hasChildren")
    children: list[RawDependent] = Field(default_factory=list)

    # Mortgage
    claims_mortgage: Any = Field(default=None, alias="r037_uplatnuje_uroky")
    mortgage_interest: Any = Field(default=None, alias="r037_zaplatene_uroky")
    mortgage_months: Any = Field(default=None, alias="r037_pocetMesiacov")

    # Pension (III. pillar)
    paid_pension: Any = Field(default=None, alias="platil_prispevky_na_dochodok")
    pension_contributions: Any = Field(default=None, alias="r075_zaplatene_prispevky_na_dochodok")

    # Spa
    spa: Any = Field(default=None, alias="kupele")
    taxpayer_in_spa: Any = Field(default=None, alias="danovnikInSpa")
    taxpayer_spa_expense: Any = Field(default=None, alias="r076a_kupele_danovnik")
    partner_in_spa: Any = Field(default=None, alias="r033_partner_kupele")
    partner_spa_expense: Any = Field(default=None, alias="r033_partner_kupele_uhrady")
    children_in_spa: Any = Field(default=None, alias="childrenInSpa")
    children_spa_expense: Any = Field(default=None, alias="r036_deti_kupele")

    # Tax bonus / overpayment payout
    requests_payout: Any = Field(default=None, alias="ziadamVratitDanovyBonusAleboPreplatok")
    iban: Any = Field(default=None, alias="iban")

    @field_validator("children", mode="before")
    @classmethod
    def children_default(cls, v):
        """Treat a missing children list as empty."""
        return [] if v is None else v

    @classmethod
    def wire_name(cls, attribute: str) -> str:
        """Return the form's wire name for a model attribute."""
        return cls.model_fields[attribute].alias or attribute

    @classmethod
    def from_mapping(cls, data: "RawUserInput | Mapping[str, Any]") -> "RawUserInput":
        """Load a raw record, converting structural problems to dane errors."""
        if isinstance(data, RawUserInput):
            return data
        if not isinstance(data, Mapping):
            raise InputValidationError(
                "User input must be a mapping of field names to values",
                constraint="Mapping",
            )
        try:
            return cls.model_validate(dict(data))
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first["loc"])
            raise InputValidationError(
                f"Malformed user input at {field}: {first['msg']}",
                field=field,
                constraint=first["type"],
            ) from e


# =============================================================================
# IDENTIFIERS
# =============================================================================

class NationalIdInfo(BaseModel):
    """Decoded national ID number (rodné číslo)."""

    model_config = ConfigDict(frozen=True)

    number: str = Field(pattern=r"^\d{9,10}$")
    birth_date: date
    sex: Sex


# =============================================================================
# ELIGIBILITY FACTS
# =============================================================================

class SectionEligibility(BaseModel):
    """Tagged resolution of one conditional section.

    ``NOT_APPLICABLE`` carries no months, ``FULL_PERIOD`` always 12 and
    ``PARTIAL_PERIOD`` the resolved month count.
    """

    model_config = ConfigDict(frozen=True)

    status: Applicability
    months: Optional[int] = Field(default=None, ge=1, le=12)

    @model_validator(mode="after")
    def check_months(self) -> "SectionEligibility":
        if self.status == Applicability.NOT_APPLICABLE and self.months is not None:
            raise ValueError("A not-applicable section has no months")
        if self.status == Applicability.FULL_PERIOD and self.months != 12:
            raise ValueError("A full-period section covers 12 months")
        if self.status == Applicability.PARTIAL_PERIOD and self.months is None:
            raise ValueError("A partial-period section needs a month count")
        return self

    @classmethod
    def not_applicable(cls) -> "SectionEligibility":
        return cls(status=Applicability.NOT_APPLICABLE)

    @classmethod
    def full_period(cls) -> "SectionEligibility":
        return cls(status=Applicability.FULL_PERIOD, months=12)

    @classmethod
    def partial_period(cls, months: int) -> "SectionEligibility":
        return cls(status=Applicability.PARTIAL_PERIOD, months=months)

    @property
    def applies(self) -> bool:
        return self.status != Applicability.NOT_APPLICABLE

    @property
    def month_count(self) -> int:
        """Months the section covers (0 when not applicable)."""
        return self.months or 0


NOT_APPLICABLE = SectionEligibility.not_applicable()


class TaxpayerFacts(BaseModel):
    """Identity and address of the taxpayer."""

    model_config = ConfigDict(frozen=True)

    tax_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    title: Optional[str] = None
    street: Optional[str] = None
    house_number: Optional[str] = None
    postal_code: Optional[str] = None
    municipality: Optional[str] = None
    country: Optional[str] = None
    nace_code: Optional[str] = None
    nace_activity: Optional[str] = None
    filing_date: Optional[date] = None


class IncomeFacts(BaseModel):
    """Self-employment income, contributions and prepayments."""

    model_config = ConfigDict(frozen=True)

    self_employment_income: Decimal = Field(ge=0)
    social_contributions: Decimal = Field(ge=0)
    health_contributions: Decimal = Field(ge=0)
    prepayments_paid: Decimal = Field(default=ZERO, ge=0)


class EmploymentFacts(BaseModel):
    """Employment income reported by employers."""

    model_config = ConfigDict(frozen=True)

    eligibility: SectionEligibility = NOT_APPLICABLE
    income: Decimal = Field(default=ZERO, ge=0)
    contributions: Decimal = Field(default=ZERO, ge=0)
    advance_tax: Decimal = Field(default=ZERO, ge=0)
    partner_bonus_via_employer: Decimal = Field(default=ZERO, ge=0)


class PartnerFacts(BaseModel):
    """Partner allowance claim."""

    model_config = ConfigDict(frozen=True)

    eligibility: SectionEligibility = NOT_APPLICABLE
    name: Optional[str] = None
    national_id: Optional[NationalIdInfo] = None
    own_income: Optional[Decimal] = Field(default=None, ge=0)
    claimed_months: Optional[int] = Field(default=None, ge=1, le=12)
    income_limit: Optional[Decimal] = Field(default=None, ge=0)


class DependentFacts(BaseModel):
    """One dependent child with resolved months."""

    model_config = ConfigDict(frozen=True)

    eligibility: SectionEligibility
    name: Optional[str] = None
    national_id: NationalIdInfo
    spa_care: bool = False
    month_from: Optional[int] = Field(default=None, ge=1, le=12)
    month_to: Optional[int] = Field(default=None, ge=1, le=12)

    @property
    def whole_year(self) -> bool:
        return self.eligibility.status == Applicability.FULL_PERIOD

    @property
    def months_present(self) -> tuple[int, ...]:
        """Calendar months the child was present (empty for whole year)."""
        if self.whole_year or self.month_from is None or self.month_to is None:
            return ()
        return tuple(range(self.month_from, self.month_to + 1))


class MortgageFacts(BaseModel):
    """Mortgage interest claim."""

    model_config = ConfigDict(frozen=True)

    eligibility: SectionEligibility = NOT_APPLICABLE
    interest_paid: Decimal = Field(default=ZERO, ge=0)


class PensionFacts(BaseModel):
    """Supplementary pension contribution claim."""

    model_config = ConfigDict(frozen=True)

    eligibility: SectionEligibility = NOT_APPLICABLE
    paid: Decimal = Field(default=ZERO, ge=0)
    claimed: Decimal = Field(default=ZERO, ge=0)


class SpaClaim(BaseModel):
    """Spa expenses for one group of persons, capped per person."""

    model_config = ConfigDict(frozen=True)

    eligibility: SectionEligibility = NOT_APPLICABLE
    persons: int = Field(default=0, ge=0)
    paid: Decimal = Field(default=ZERO, ge=0)
    claimed: Decimal = Field(default=ZERO, ge=0)


class SpaFacts(BaseModel):
    """Spa expenses for the taxpayer, partner and dependents."""

    model_config = ConfigDict(frozen=True)

    taxpayer: SpaClaim = Field(default_factory=SpaClaim)
    partner: SpaClaim = Field(default_factory=SpaClaim)
    dependents: SpaClaim = Field(default_factory=SpaClaim)


class PayoutRequest(BaseModel):
    """Request to pay out the tax bonus or overpayment to a bank account."""

    model_config = ConfigDict(frozen=True)

    requested: bool = False
    iban: Optional[str] = None


class EligibilityFacts(BaseModel):
    """Fully resolved, typed and prorated input for one computation."""

    model_config = ConfigDict(frozen=True)

    tax_year: int
    taxpayer: TaxpayerFacts
    income: IncomeFacts
    employment: EmploymentFacts = Field(default_factory=EmploymentFacts)
    partner: PartnerFacts = Field(default_factory=PartnerFacts)
    dependents: tuple[DependentFacts, ...] = ()
    mortgage: MortgageFacts = Field(default_factory=MortgageFacts)
    pension: PensionFacts = Field(default_factory=PensionFacts)
    spa: SpaFacts = Field(default_factory=SpaFacts)
    payout: PayoutRequest = Field(default_factory=PayoutRequest)
    warnings: tuple[str, ...] = ()


# =============================================================================
# DECLARATION
# =============================================================================

class DeclarationChild(BaseModel):
    """Row r.034 - one dependent child."""

    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    national_id: Optional[str] = None
    spa_care: bool = False
    whole_year: bool = False
    months: tuple[int, ...] = ()

    @field_validator("months")
    @classmethod
    def months_in_year(cls, v: tuple[int, ...]) -> tuple[int, ...]:
        if any(m < 1 or m > 12 for m in v):
            raise ValueError("Months must be between 1 and 12")
        return tuple(sorted(set(v)))


class Declaration(BaseModel):
    """Line values of the DPFO type B declaration.

    Monetary lines are rounded half-up to cents. Section lines that do not
    apply are ``None`` and serialize as empty elements.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    # Header
    tax_year: Optional[int] = None
    tax_id: Optional[str] = None
    nace_code: Optional[str] = None
    nace_activity: Optional[str] = None
    last_name: Optional[str] = None
    first_name: Optional[str] = None
    title: Optional[str] = None
    street: Optional[str] = None
    house_number: Optional[str] = None
    postal_code: Optional[str] = None
    municipality: Optional[str] = None
    country: Optional[str] = None
    filing_date: Optional[date] = None

    # r.031 - r.033 partner
    partner_name: Optional[str] = None
    partner_national_id: Optional[str] = None
    partner_own_income: Optional[Decimal] = Field(default=None, ge=0)
    partner_months: Optional[int] = Field(default=None, ge=1, le=12)
    partner_spa_expense: Optional[Decimal] = Field(default=None, ge=0)

    # r.034 - r.036 children
    children: tuple[DeclarationChild, ...] = ()
    dependents_spa_expense: Optional[Decimal] = Field(default=None, ge=0)

    # r.037 mortgage interest
    mortgage_interest: Optional[Decimal] = Field(default=None, ge=0)
    mortgage_months: Optional[int] = Field(default=None, ge=1, le=12)

    # r.038 - r.040 employment
    employment_income: Optional[Decimal] = Field(default=None, ge=0)
    employment_contributions: Optional[Decimal] = Field(default=None, ge=0)
    employment_base: Optional[Decimal] = Field(default=None, ge=0)

    # r.041 - r.043 self-employment (table 1, annex 3)
    self_employment_income: Decimal = Field(default=ZERO, ge=0)
    flat_rate_expenses: Decimal = Field(default=ZERO, ge=0)
    social_contributions: Decimal = Field(default=ZERO, ge=0)
    health_contributions: Decimal = Field(default=ZERO, ge=0)
    self_employment_expenses: Decimal = Field(default=ZERO, ge=0)
    self_employment_base: Decimal = Field(default=ZERO, ge=0)

    # r.072 - r.081 tax base and tax
    taxable_income: Decimal = Field(default=ZERO, ge=0)
    personal_allowance: Decimal = Field(default=ZERO, ge=0)
    partner_allowance: Decimal = Field(default=ZERO, ge=0)
    pension_deduction: Decimal = Field(default=ZERO, ge=0)
    spa_deduction_taxpayer: Decimal = Field(default=ZERO, ge=0)
    spa_deduction_family: Decimal = Field(default=ZERO, ge=0)
    mortgage_deduction: Decimal = Field(default=ZERO, ge=0)
    total_deductions: Decimal = Field(default=ZERO, ge=0)
    tax_base: Decimal = Field(default=ZERO, ge=0)
    tax: Decimal = Field(default=ZERO, ge=0)

    # r.106 - r.136 bonus, prepayments and result
    dependent_bonus: Decimal = Field(default=ZERO, ge=0)
    partner_bonus_via_employer: Decimal = Field(default=ZERO, ge=0)
    employment_advance_tax: Decimal = Field(default=ZERO, ge=0)
    prepayments_paid: Decimal = Field(default=ZERO, ge=0)
    net_liability: Decimal = Field(default=ZERO, ge=0)
    refund: Decimal = Field(default=ZERO, ge=0)

    # Payout request
    payout_requested: bool = False
    iban: Optional[str] = None

    @computed_field
    @property
    def gross_income(self) -> Decimal:
        """Employment plus self-employment income."""
        return (self.employment_income or ZERO) + self.self_employment_income

    @computed_field
    @property
    def settlement(self) -> Decimal:
        """Signed result: positive amount owed, negative amount refunded."""
        return self.net_liability - self.refund

    @computed_field
    @property
    def payout_eligible(self) -> bool:
        """Whether the taxpayer may ask for a bonus or overpayment payout."""
        return self.refund > 0


# =============================================================================
# CALCULATION RESULT
# =============================================================================

class AuditEntry(BaseModel):
    """Audit log entry for calculation transparency."""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    step: str
    input_value: str
    output_value: str
    source: str
    notes: Optional[str] = None
    line_number: Optional[str] = None  # Declaration line reference


class CalculationResult(BaseModel):
    """Declaration together with the audit trail that produced it."""

    declaration: Declaration
    audit_log: list[AuditEntry] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    constants_version: str
    calculated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def step(self, name: str) -> Optional[AuditEntry]:
        """Return the first audit entry recorded for a step."""
        return next((entry for entry in self.audit_log if entry.step == name), None)
