"""One-call pipeline: raw wizard input to declaration and filing document."""

from typing import Any, Mapping, Optional

import structlog

from .calculator import TaxCalculator
from .eligibility import EligibilityEngine
from .models import CalculationResult, Declaration, RawUserInput
from .tax_constants import TaxYearConfig, get_tax_year_config
from .xml_export import serialize_declaration

logger = structlog.get_logger()


def _resolve_config(
    config: Optional[TaxYearConfig],
    tax_year: Optional[int],
) -> TaxYearConfig:
    if config is not None:
        return config
    return get_tax_year_config(tax_year)


def compute_declaration(
    user_input: "RawUserInput | Mapping[str, Any]",
    config: Optional[TaxYearConfig] = None,
    tax_year: Optional[int] = None,
) -> CalculationResult:
    """
    Validate, resolve and compute a declaration.

    Args:
        user_input: Raw wizard record keyed by wire names
        config: Statutory constants (takes precedence over ``tax_year``)
        tax_year: Registered tax year to look up (default year when omitted)

    Returns:
        CalculationResult with the declaration and its audit trail

    Raises:
        ValidationError subclasses for bad input, ConfigurationError for an
        unknown tax year. Nothing is returned on failure.
    """
    config = _resolve_config(config, tax_year)
    facts = EligibilityEngine(config).resolve(user_input)
    result = TaxCalculator(config).calculate(facts)

    logger.info(
        "declaration_computed",
        tax_year=config.tax_year,
        constants=config.version,
        settlement=str(result.declaration.settlement),
        warnings=len(result.warnings),
    )
    return result


def export_declaration(
    user_input: "RawUserInput | Mapping[str, Any]",
    config: Optional[TaxYearConfig] = None,
    tax_year: Optional[int] = None,
) -> tuple[Declaration, bytes]:
    """Compute a declaration and serialize it to the filing document."""
    result = compute_declaration(user_input, config=config, tax_year=tax_year)
    return result.declaration, serialize_declaration(result.declaration)
