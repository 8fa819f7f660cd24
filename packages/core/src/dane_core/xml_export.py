"""XML document for electronic filing of the DPFO type B declaration.

The document layout is one ordered table, ``DOCUMENT_LAYOUT``, of
``(path, field, kind)`` entries. The serializer walks it top to bottom, so
element order is fixed, and the reader walks the same table back. Receiving
systems validate positionally: every element is always written, absent
values as an empty element.

Value formats:
    amount  ``1234.50`` (two decimals, period, no grouping)
    date    ``DD.MM.YYYY``
    flag    ``1`` / ``0``
"""

from collections.abc import Mapping
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union
from xml.etree import ElementTree as ET

import defusedxml.ElementTree as DefusedET
import structlog
from defusedxml import DefusedXmlException
from pydantic import ValidationError as PydanticValidationError

from .exceptions import IncompleteDeclaration, InputValidationError, MalformedAmount
from .models import Declaration, DeclarationChild
from .validators import parse_date, round_amount, validate_xml_text

logger = structlog.get_logger()

XML_DECLARATION = b'<?xml version="1.0" encoding="UTF-8"?>\n'
ROOT_TAG = "dokument"
MIN_CHILD_ROWS = 4

MANDATORY_FIELDS = ("tax_year", "tax_id", "last_name", "first_name", "filing_date")

_ADDRESS = "hlavicka/adresaTrvPobytu"

# (path below <dokument>, Declaration field, kind)
DOCUMENT_LAYOUT: tuple[tuple[str, Optional[str], str], ...] = (
    # Header
    ("hlavicka/dic", "tax_id", "text"),
    ("hlavicka/datumNarodenia", None, "const:"),
    ("hlavicka/typDP/rdp", None, "const:1"),
    ("hlavicka/typDP/odp", None, "const:0"),
    ("hlavicka/typDP/ddp", None, "const:0"),
    ("hlavicka/zdanovacieObdobie/rok", "tax_year", "int"),
    ("hlavicka/zdanovacieObdobie/datumDDP", None, "const:"),
    ("hlavicka/skNace/k1", "nace_code", "nace:0:2"),
    ("hlavicka/skNace/k2", "nace_code", "nace:2:4"),
    ("hlavicka/skNace/k3", "nace_code", "nace:4:"),
    ("hlavicka/skNace/cinnost", "nace_activity", "text"),
    ("hlavicka/priezvisko", "last_name", "text"),
    ("hlavicka/meno", "first_name", "text"),
    ("hlavicka/titul", "title", "text"),
    ("hlavicka/titulZa", None, "const:"),
    (f"{_ADDRESS}/ulica", "street", "text"),
    (f"{_ADDRESS}/supisneOrientacneCislo", "house_number", "text"),
    (f"{_ADDRESS}/psc", "postal_code", "text"),
    (f"{_ADDRESS}/obec", "municipality", "text"),
    (f"{_ADDRESS}/stat", "country", "text"),
    (f"{_ADDRESS}/telefon", None, "const:"),
    # Partner (r.031 - r.033)
    ("telo/r31/priezviskoMeno", "partner_name", "text"),
    ("telo/r31/rodneCislo", "partner_national_id", "text"),
    ("telo/r32/uplatnujemNCZDNaManzela", "partner_months", "present"),
    ("telo/r32/vlastnePrijmy", "partner_own_income", "amount"),
    ("telo/r32/pocetMesiacov", "partner_months", "int"),
    ("telo/r33/uplatnujemKupele", "partner_spa_expense", "present"),
    ("telo/r33/uhrady", "partner_spa_expense", "amount"),
    # Children (r.034 - r.036)
    ("telo/r34", "children", "children"),
    ("telo/r36", "dependents_spa_expense", "amount"),
    # Mortgage interest (r.037)
    ("telo/r37/uplatnujemUroky", "mortgage_interest", "present"),
    ("telo/r37/zaplateneUroky", "mortgage_interest", "amount"),
    ("telo/r37/pocetMesiacov", "mortgage_months", "int"),
    ("telo/r37/odpocet", "mortgage_deduction", "amount"),
    # Employment (r.038 - r.040)
    ("telo/r38", "employment_income", "amount"),
    ("telo/r39", "employment_contributions", "amount"),
    ("telo/r40", "employment_base", "amount"),
    # Self-employment (table 1, annex 3, r.041 - r.043)
    ("telo/tabulka1/t1r10/s1", "self_employment_income", "amount"),
    ("telo/tabulka1/t1r10/s2", "flat_rate_expenses", "amount"),
    ("telo/priloha3/r11", "social_contributions", "amount"),
    ("telo/priloha3/r13", "health_contributions", "amount"),
    ("telo/r41", "self_employment_income", "amount"),
    ("telo/r42", "self_employment_expenses", "amount"),
    ("telo/r43", "self_employment_base", "amount"),
    # Tax base and tax (r.072 - r.081)
    ("telo/r72", "taxable_income", "amount"),
    ("telo/r73", "personal_allowance", "amount"),
    ("telo/r74", "partner_allowance", "amount"),
    ("telo/r75", "pension_deduction", "amount"),
    ("telo/r76a", "spa_deduction_taxpayer", "amount"),
    ("telo/r76b", "spa_deduction_family", "amount"),
    ("telo/r77", "total_deductions", "amount"),
    ("telo/r78", "tax_base", "amount"),
    ("telo/r81", "tax", "amount"),
    # Bonus, prepayments and result (r.106 - r.136)
    ("telo/r106", "dependent_bonus", "amount"),
    ("telo/r108", "partner_bonus_via_employer", "amount"),
    ("telo/r120", "employment_advance_tax", "amount"),
    ("telo/r122", "prepayments_paid", "amount"),
    ("telo/r135", "net_liability", "amount"),
    ("telo/r136", "refund", "amount"),
    # Payout request
    ("telo/vratitPreplatok/vyplatit", "payout_requested", "flag"),
    ("telo/vratitPreplatok/iban", "iban", "text"),
    ("telo/datumVyhlasenia", "filing_date", "date"),
)


# =============================================================================
# VALUE FORMATS
# =============================================================================

def format_xml_amount(value: Optional[Decimal]) -> str:
    if value is None:
        return ""
    return f"{round_amount(value):.2f}"


def format_xml_date(value: Optional[date]) -> str:
    if value is None:
        return ""
    return value.strftime("%d.%m.%Y")


def _flag(value: bool) -> str:
    return "1" if value else "0"


def _format_value(declaration: Declaration, field: Optional[str], kind: str) -> str:
    if kind.startswith("const:"):
        return kind.split(":", 1)[1]

    value = getattr(declaration, field)
    if kind == "present":
        return _flag(value is not None)
    if kind == "flag":
        return _flag(bool(value))
    if value is None:
        return ""
    if kind == "amount":
        return format_xml_amount(value)
    if kind == "date":
        return format_xml_date(value)
    if kind.startswith("nace:"):
        _, start, end = kind.split(":")
        return validate_xml_text(value, field=field)[int(start):int(end) if end else None]
    return validate_xml_text(value, field=field)


# =============================================================================
# SERIALIZER
# =============================================================================

def _coerce_declaration(declaration: Union[Declaration, Mapping[str, Any]]) -> Declaration:
    if isinstance(declaration, Declaration):
        return declaration
    if not isinstance(declaration, Mapping):
        raise InputValidationError(
            "Declaration must be a Declaration or a mapping of line values",
            constraint="Declaration",
        )
    try:
        return Declaration.model_validate(dict(declaration))
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise InputValidationError(
            f"Malformed declaration value at {field}: {first['msg']}",
            field=field,
            constraint=first["type"],
        ) from e


def missing_mandatory_fields(declaration: Declaration) -> list[str]:
    """Mandatory header fields that are absent or blank."""
    missing = []
    for field in MANDATORY_FIELDS:
        value = getattr(declaration, field)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(field)
    return missing


def _element(root: ET.Element, cache: dict[str, ET.Element], path: str) -> ET.Element:
    """Return the element at ``path``, creating missing ancestors in order."""
    if path in cache:
        return cache[path]
    parent_path, _, tag = path.rpartition("/")
    parent = _element(root, cache, parent_path) if parent_path else root
    element = ET.SubElement(parent, tag)
    cache[path] = element
    return element


def _write_children(block: ET.Element, children: tuple[DeclarationChild, ...]) -> None:
    rows = list(children) + [None] * max(0, MIN_CHILD_ROWS - len(children))
    for child in rows:
        row = ET.SubElement(block, "dieta")
        ET.SubElement(row, "priezviskoMeno").text = (
            validate_xml_text(child.name or "", field="children.name") if child else ""
        )
        ET.SubElement(row, "rodneCislo").text = (
            validate_xml_text(child.national_id or "", field="children.national_id") if child else ""
        )
        ET.SubElement(row, "kupelnaStarostlivost").text = _flag(child.spa_care) if child else ""
        ET.SubElement(row, "m00").text = _flag(child.whole_year) if child else ""
        for month in range(1, 13):
            ET.SubElement(row, f"m{month:02d}").text = (
                _flag(month in child.months) if child else ""
            )


def build_document(declaration: Declaration) -> ET.Element:
    """Build the ``<dokument>`` element tree for a declaration."""
    root = ET.Element(ROOT_TAG)
    cache: dict[str, ET.Element] = {}

    for path, field, kind in DOCUMENT_LAYOUT:
        element = _element(root, cache, path)
        if kind == "children":
            _write_children(element, declaration.children)
        else:
            element.text = _format_value(declaration, field, kind)

    return root


def serialize_declaration(declaration: Union[Declaration, Mapping[str, Any]]) -> bytes:
    """
    Serialize a declaration to the filing document.

    Args:
        declaration: Computed Declaration, or a mapping of its line values
            (unknown keys are ignored)

    Returns:
        UTF-8 encoded XML document

    Raises:
        IncompleteDeclaration: A mandatory header field is missing.
    """
    declaration = _coerce_declaration(declaration)

    missing = missing_mandatory_fields(declaration)
    if missing:
        raise IncompleteDeclaration(missing)

    root = build_document(declaration)
    ET.indent(root, space="  ")
    body = ET.tostring(root, encoding="unicode", short_empty_elements=False)
    document = XML_DECLARATION + body.encode("utf-8") + b"\n"

    logger.info(
        "declaration_serialized",
        tax_year=declaration.tax_year,
        children=len(declaration.children),
        size_bytes=len(document),
    )
    return document


# =============================================================================
# READER
# =============================================================================

def _parse_value(text: str, path: str, kind: str) -> Any:
    if kind == "flag":
        return text == "1"
    if not text:
        return None
    if kind == "amount":
        try:
            return Decimal(text)
        except InvalidOperation:
            raise MalformedAmount(
                f"Not a valid amount: {text!r}",
                field=path,
                value=text,
                constraint="0.00",
            ) from None
    if kind == "int":
        try:
            return int(text)
        except ValueError:
            raise InputValidationError(
                f"Not a whole number: {text!r}",
                field=path,
                value=text,
                constraint="Integer",
            ) from None
    if kind == "date":
        return parse_date(text, field=path)
    return text


def _read_children(block: Optional[ET.Element]) -> tuple[DeclarationChild, ...]:
    if block is None:
        return ()
    children = []
    for row in block.findall("dieta"):
        name = row.findtext("priezviskoMeno", default="")
        national_id = row.findtext("rodneCislo", default="")
        if not name and not national_id:
            continue
        children.append(
            DeclarationChild(
                name=name or None,
                national_id=national_id or None,
                spa_care=row.findtext("kupelnaStarostlivost") == "1",
                whole_year=row.findtext("m00") == "1",
                months=tuple(
                    month for month in range(1, 13)
                    if row.findtext(f"m{month:02d}") == "1"
                ),
            )
        )
    return tuple(children)


def read_declaration_xml(document: bytes) -> Declaration:
    """
    Parse a filing document back into a Declaration.

    Untrusted input is parsed with defusedxml; entity expansion and external
    references are rejected.

    Raises:
        InputValidationError: The document is not a well-formed declaration.
    """
    try:
        root = DefusedET.fromstring(document)
    except (ET.ParseError, DefusedXmlException) as e:
        raise InputValidationError(
            f"Document is not well-formed XML: {e}",
            constraint="Well-formed XML",
        ) from e

    if root.tag != ROOT_TAG:
        raise InputValidationError(
            f"Unexpected root element <{root.tag}>",
            field="/",
            value=root.tag,
            constraint=f"<{ROOT_TAG}>",
        )

    values: dict[str, Any] = {}
    nace_parts: list[str] = []
    for path, field, kind in DOCUMENT_LAYOUT:
        if field is None or kind == "present":
            continue
        if kind == "children":
            values[field] = _read_children(root.find(path))
            continue
        text = root.findtext(path) or ""
        if kind != "text":
            text = text.strip()
        if kind.startswith("nace:"):
            nace_parts.append(text)
            continue
        parsed = _parse_value(text, path, kind)
        if parsed is not None:
            values[field] = parsed

    if any(nace_parts):
        values["nace_code"] = "".join(nace_parts)

    return _coerce_declaration(values)
