"""Tests for the one-call pipeline."""

from decimal import Decimal

import pytest

from dane_core import compute_declaration, export_declaration, read_declaration_xml
from dane_core.exceptions import (
    ConfigurationError,
    DaneError,
    InputValidationError,
    InvalidNationalId,
    MalformedAmount,
)
from dane_core.xml_export import XML_DECLARATION


class TestComputeDeclaration:
    """compute_declaration()"""

    def test_default_tax_year(self, with_children_input):
        """Without a config the default year's constants are used."""
        result = compute_declaration(with_children_input)

        assert result.constants_version == "DPFO-B-2020"
        assert result.declaration.net_liability == Decimal("272.34")

    def test_explicit_tax_year(self, with_children_input):
        """A registered year can be requested."""
        result = compute_declaration(with_children_input, tax_year=2020)
        assert result.declaration.tax_year == 2020

    def test_unknown_tax_year(self, with_children_input):
        """Unregistered years are a configuration error."""
        with pytest.raises(ConfigurationError):
            compute_declaration(with_children_input, tax_year=1999)

    def test_explicit_config_wins(self, with_children_input, synthetic_config):
        """An explicit config takes precedence over the year."""
        result = compute_declaration(with_children_input, config=synthetic_config, tax_year=1999)

        assert result.constants_version == "synthetic-no-flat-expenses"
        assert result.declaration.net_liability == Decimal("3288.28")

    def test_invalid_input_aborts(self, with_children_input):
        """Any validation failure aborts without a partial result."""
        with_children_input["children"][0]["rodneCislo"] = "1607201168"
        with pytest.raises(InvalidNationalId) as exc_info:
            compute_declaration(with_children_input)

        assert isinstance(exc_info.value, DaneError)
        assert exc_info.value.recoverable

    def test_independent_runs(self, with_children_input, complete_input):
        """Runs share no state."""
        first = compute_declaration(complete_input)
        second = compute_declaration(with_children_input)
        again = compute_declaration(complete_input)

        assert first.declaration == again.declaration
        assert second.declaration.partner_allowance == 0


class TestExportDeclaration:
    """export_declaration()"""

    def test_returns_declaration_and_document(self, complete_input):
        """Both outputs describe the same filing."""
        declaration, document = export_declaration(complete_input)

        assert document.startswith(XML_DECLARATION)
        assert read_declaration_xml(document).model_dump() == declaration.model_dump()

    def test_declaration_dump_for_delivery(self, complete_input):
        """The declaration dumps to plain values for delivery collaborators."""
        declaration, _ = export_declaration(complete_input)
        data = declaration.model_dump(mode="json")

        assert data["net_liability"] == "330.03"
        assert data["settlement"] == "330.03"
        assert data["payout_eligible"] is False

    def test_oversized_amount_is_malformed(self, complete_input):
        """An amount beyond decimal precision is reported against its field."""
        complete_input["t1r10_prijmy"] = "9" * 27
        with pytest.raises(MalformedAmount) as exc_info:
            export_declaration(complete_input)

        assert exc_info.value.field == "t1r10_prijmy"

    def test_control_character_never_reaches_document(self, complete_input):
        """Text the document cannot carry aborts the export."""
        complete_input["r004_priezvisko"] = "Na\x01me"
        with pytest.raises(InputValidationError) as exc_info:
            export_declaration(complete_input)

        assert exc_info.value.field == "r004_priezvisko"
