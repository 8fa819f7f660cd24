"""Validation and parsing of user-supplied values.

Every raw string the wizard sends passes through this module before it
reaches the engines, so locale handling (decimal comma, digit grouping) stays
here. Functions are pure and raise a specific :mod:`dane_core.exceptions`
error naming the offending field.
"""

import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from .exceptions import (
    ChecksumMismatch,
    InputValidationError,
    InvalidBankAccountFormat,
    InvalidMonthRange,
    InvalidNationalId,
    MalformedAmount,
    MalformedDate,
    UnsupportedCountry,
)
from .models import NationalIdInfo, Sex


CENT = Decimal("0.01")


def round_amount(value: Decimal) -> Decimal:
    """Round to cents, half-up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def is_blank(value: Any) -> bool:
    """Absent for the purposes of the form: None or an empty string."""
    return value is None or (isinstance(value, str) and not value.strip())


# =============================================================================
# FREE TEXT
# =============================================================================

# Characters outside the XML 1.0 Char production cannot appear in the
# filing document, not even as character references.
_XML_ILLEGAL = re.compile(r"[^\t\n\r\x20-\uD7FF\uE000-\uFFFD\U00010000-\U0010FFFF]")


def validate_xml_text(value: Any, field: Optional[str] = None) -> str:
    """
    Check that a free-text value can be written into the filing document.

    Raises:
        InputValidationError: The text contains a control character or other
            character that XML 1.0 forbids.
    """
    text = str(value)
    match = _XML_ILLEGAL.search(text)
    if match:
        raise InputValidationError(
            f"Text contains a character not allowed in the document: "
            f"U+{ord(match.group()):04X} at position {match.start()}",
            field=field,
            constraint="XML 1.0 characters",
        )
    return text


# =============================================================================
# AMOUNTS
# =============================================================================

# Whitespace (no-break spaces included) and apostrophes group digits
_GROUPING_CHARS = re.compile(r"[\s']")
_PLAIN_NUMBER = re.compile(r"^(\d+(\.\d*)?|\.\d+)$")
_GROUPED_THOUSANDS = re.compile(r"^\d{1,3}(?:[.,]\d{3})+$")


def _normalize_number(text: str) -> Optional[str]:
    """Turn a locale-formatted number into ``1234.56`` form, or None."""
    compact = _GROUPING_CHARS.sub("", text)
    has_comma = "," in compact
    has_period = "." in compact

    if has_comma and has_period:
        decimal_mark = "," if compact.rfind(",") > compact.rfind(".") else "."
        grouping_mark = "." if decimal_mark == "," else ","
        compact = compact.replace(grouping_mark, "").replace(decimal_mark, ".")
    elif has_comma or has_period:
        mark = "," if has_comma else "."
        if compact.count(mark) > 1:
            if not _GROUPED_THOUSANDS.match(compact):
                return None
            compact = compact.replace(mark, "")
        else:
            compact = compact.replace(mark, ".")

    return compact if _PLAIN_NUMBER.match(compact) else None


def parse_amount(value: Any, field: Optional[str] = None) -> Decimal:
    """Parse a non-negative monetary amount to cent precision.

    Accepts ``Decimal``, ``int`` and strings in Slovak (``1 234,56``) or
    plain (``1234.56``) notation. Rounds half-up to cents.

    Raises:
        MalformedAmount: The value is not numeric or is negative.
    """
    if isinstance(value, bool) or value is None:
        raise MalformedAmount(
            "Amount is missing or not a number",
            field=field,
            value=value,
            constraint="Non-negative decimal number",
        )

    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, (int, float)):
        number = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip()
        if text.startswith(("-", "−")):
            raise MalformedAmount(
                "Amount must not be negative",
                field=field,
                value=value,
                constraint="Non-negative decimal number",
            )
        normalized = _normalize_number(text.lstrip("+"))
        if normalized is None:
            raise MalformedAmount(
                f"Not a valid amount: {value!r}",
                field=field,
                value=value,
                constraint="Non-negative decimal number",
            )
        try:
            number = Decimal(normalized)
        except InvalidOperation:
            raise MalformedAmount(
                f"Not a valid amount: {value!r}",
                field=field,
                value=value,
                constraint="Non-negative decimal number",
            ) from None
    else:
        raise MalformedAmount(
            f"Unsupported amount type: {type(value).__name__}",
            field=field,
            constraint="Non-negative decimal number",
        )

    if not number.is_finite() or number < 0:
        raise MalformedAmount(
            "Amount must be a finite, non-negative number",
            field=field,
            value=str(value),
            constraint="Non-negative decimal number",
        )
    try:
        return round_amount(number)
    except InvalidOperation:
        # Quantizing to cents overflows the decimal context precision.
        raise MalformedAmount(
            f"Amount is too large: {value!r}",
            field=field,
            value=str(value),
            constraint="Non-negative decimal number",
        ) from None


def format_amount(value: Decimal) -> str:
    """Format an amount for display in Slovak notation (``1 234,56``)."""
    grouped = f"{round_amount(value):,.2f}"
    return grouped.replace(",", " ").replace(".", ",")


# =============================================================================
# FLAGS, MONTHS, DATES
# =============================================================================

_TRUTHY = {"true", "1", "yes", "ano", "áno"}


def parse_flag(value: Any) -> bool:
    """Interpret a wizard checkbox/radio value."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    if isinstance(value, int):
        return value == 1
    return False


def _parse_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isascii() and value.strip().isdigit():
        return int(value.strip())
    return None


def parse_month(value: Any, field: Optional[str] = None) -> int:
    """Parse a calendar month number (1-12)."""
    month = _parse_int(value)
    if month is None or not 1 <= month <= 12:
        raise InvalidMonthRange(
            f"Not a calendar month: {value!r}",
            field=field,
            value=value,
            constraint="Integer between 1 and 12",
        )
    return month


def parse_month_count(value: Any, field: Optional[str] = None) -> int:
    """Parse a number of elapsed months within the tax year (1-12)."""
    count = _parse_int(value)
    if count is None or not 1 <= count <= 12:
        raise InvalidMonthRange(
            f"Month count must be between 1 and 12, got {value!r}",
            field=field,
            value=value,
            constraint="Integer between 1 and 12",
        )
    return count


def month_span(month_from: int, month_to: int, field: Optional[str] = None) -> int:
    """Number of months in an inclusive range, clamped to the year.

    Raises:
        InvalidMonthRange: The range is empty or reversed.
    """
    months = month_to - month_from + 1
    if months <= 0:
        raise InvalidMonthRange(
            f"Month range {month_from}-{month_to} is empty",
            field=field,
            value=f"{month_from}-{month_to}",
            constraint="monthFrom <= monthTo",
        )
    return min(months, 12)


_DATE_FORMATS = ("%d.%m.%Y", "%Y-%m-%d")


def parse_date(value: Any, field: Optional[str] = None) -> date:
    """Parse a date given as ``DD.MM.YYYY``, ISO ``YYYY-MM-DD`` or a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        for fmt in _DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt).date()
            except ValueError:
                continue
    raise MalformedDate(
        f"Not a valid date: {value!r}",
        field=field,
        value=value,
        constraint="DD.MM.YYYY",
    )


# =============================================================================
# NATIONAL ID NUMBER (RODNE CISLO)
# =============================================================================

_NATIONAL_ID = re.compile(r"^(\d{2})(\d{2})(\d{2})/?(\d{3,4})$")
FEMALE_MONTH_OFFSET = 50
# 10-digit numbers were issued from 1954; two-digit years below this are 20xx
CENTURY_PIVOT = 54


def validate_national_id(value: Any, field: Optional[str] = None) -> NationalIdInfo:
    """Validate a national ID number and decode birth date and sex.

    The number encodes ``YYMMDD`` (month +50 for women) followed by a three
    digit serial (before 1954) or a four digit serial whose full 10-digit
    number is divisible by 11.

    Raises:
        InvalidNationalId: Wrong length, impossible birth date or checksum.
    """
    if not isinstance(value, str):
        raise InvalidNationalId(
            "National ID number must be a string of digits",
            field=field,
            constraint="9 or 10 digits",
        )

    match = _NATIONAL_ID.match(value.strip().replace(" ", ""))
    if not match:
        raise InvalidNationalId(
            "National ID number must have 9 or 10 digits",
            field=field,
            constraint="9 or 10 digits",
        )

    yy, mm, dd, serial = match.groups()
    digits = f"{yy}{mm}{dd}{serial}"
    year, month, day = int(yy), int(mm), int(dd)

    sex = Sex.MALE
    if month > FEMALE_MONTH_OFFSET:
        month -= FEMALE_MONTH_OFFSET
        sex = Sex.FEMALE
    if not 1 <= month <= 12:
        raise InvalidNationalId(
            "National ID number encodes an invalid month",
            field=field,
            constraint="Month 01-12 (51-62 for women)",
        )

    if len(digits) == 9:
        year += 1900
    else:
        year += 2000 if year < CENTURY_PIVOT else 1900

    try:
        birth_date = date(year, month, day)
    except ValueError:
        raise InvalidNationalId(
            "National ID number encodes an invalid day",
            field=field,
            constraint="Existing calendar date",
        ) from None

    if len(digits) == 10 and int(digits) % 11 != 0:
        raise InvalidNationalId(
            "National ID number checksum does not match",
            field=field,
            constraint="Divisible by 11",
        )

    return NationalIdInfo(number=digits, birth_date=birth_date, sex=sex)


# =============================================================================
# BANK ACCOUNT (IBAN)
# =============================================================================

_IBAN_FORMAT = re.compile(r"^[A-Z]{2}\d{2}[A-Z0-9]{11,25}$")
_WHITESPACE = re.compile(r"\s+")

IBAN_LENGTHS = {
    "AT": 20,
    "CZ": 24,
    "DE": 22,
    "HU": 28,
    "PL": 28,
    "SK": 24,
}


def normalize_bank_account_id(value: str) -> str:
    """Uppercase and strip all whitespace."""
    return _WHITESPACE.sub("", value).upper()


def _iban_remainder(iban: str) -> int:
    rearranged = iban[4:] + iban[:4]
    numeric = "".join(str(int(ch, 36)) for ch in rearranged)
    return int(numeric) % 97


def validate_bank_account_id(
    value: Any,
    allowed_country: str = "SK",
    field: Optional[str] = "iban",
) -> str:
    """Validate an IBAN and return its normalized form.

    Raises:
        InvalidBankAccountFormat: Bad characters or length.
        UnsupportedCountry: Country prefix differs from ``allowed_country``.
        ChecksumMismatch: The ISO 13616 mod-97 check fails.
    """
    if not isinstance(value, str):
        raise InvalidBankAccountFormat(
            "IBAN must be a string",
            field=field,
            constraint="2 letters, 2 check digits, up to 25 alphanumerics",
        )

    iban = normalize_bank_account_id(value)
    if not _IBAN_FORMAT.match(iban):
        raise InvalidBankAccountFormat(
            "IBAN has an invalid format",
            field=field,
            constraint="2 letters, 2 check digits, up to 25 alphanumerics",
        )

    country = iban[:2]
    if country != allowed_country:
        raise UnsupportedCountry(
            f"IBAN country {country} is not accepted",
            field=field,
            constraint=f"IBAN issued in {allowed_country}",
            country=country,
            allowed_country=allowed_country,
        )

    expected_length = IBAN_LENGTHS.get(country)
    if expected_length is not None and len(iban) != expected_length:
        raise InvalidBankAccountFormat(
            f"{country} IBAN must have {expected_length} characters",
            field=field,
            constraint=f"{expected_length} characters",
        )

    if _iban_remainder(iban) != 1:
        raise ChecksumMismatch(
            "IBAN check digits do not match",
            field=field,
            constraint="ISO 13616 mod-97 remainder of 1",
        )

    return iban


def format_bank_account_id(value: str, previous_value: str = "") -> str:
    """Group an IBAN being typed into blocks of four characters.

    While the user deletes characters (the new value is shorter than the
    previous one) the input is returned untouched so separators can be
    removed. The output of this function is a fixed point of it.
    """
    if previous_value and len(value) < len(previous_value):
        return value
    compact = normalize_bank_account_id(value)
    return " ".join(compact[i:i + 4] for i in range(0, len(compact), 4))
