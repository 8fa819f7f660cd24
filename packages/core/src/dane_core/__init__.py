"""Dane Core - Slovak personal income tax declaration engine."""

__version__ = "0.1.0"

from .calculator import TaxCalculator
from .eligibility import EligibilityEngine
from .models import CalculationResult, Declaration, EligibilityFacts, RawUserInput
from .pipeline import compute_declaration, export_declaration
from .tax_constants import TaxYearConfig, get_tax_year_config
from .xml_export import read_declaration_xml, serialize_declaration

__all__ = [
    "TaxCalculator",
    "EligibilityEngine",
    "CalculationResult",
    "Declaration",
    "EligibilityFacts",
    "RawUserInput",
    "compute_declaration",
    "export_declaration",
    "TaxYearConfig",
    "get_tax_year_config",
    "read_declaration_xml",
    "serialize_declaration",
]
