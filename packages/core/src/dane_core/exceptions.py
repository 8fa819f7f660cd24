"""Custom exceptions for the dane tax engine.

This module provides a hierarchy of exception classes for consistent error
handling across the declaration pipeline. All exceptions inherit from
DaneError, making it easy to catch all application-specific errors.

Every validation error carries the wire name of the offending input field in
``details["field"]`` so the surrounding form can highlight it.

Example:
    try:
        result = compute_declaration(user_input)
    except MissingRequiredField as e:
        highlight(e.field)
    except DaneError as e:
        logger.error("declaration_failed", error=str(e))
"""

from typing import Any, Optional


class DaneError(Exception):
    """Base exception for all dane errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context.
        recoverable: Whether the error can be fixed by correcting the input.
    """

    def __init__(
        self,
        message: str,
        *,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        """Return string representation of the error."""
        return self.message

    def __repr__(self) -> str:
        """Return detailed representation of the error."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"recoverable={self.recoverable!r})"
        )


class ValidationError(DaneError):
    """Error raised when user-provided data fails validation.

    Attributes:
        field: The wire name of the field that failed validation.
        value: The invalid value (omitted for personal identifiers).
        constraint: The validation constraint that was violated.

    Example:
        >>> raise ValidationError(
        ...     "Invalid amount",
        ...     field="t1r10_prijmy",
        ...     value="abc",
        ...     constraint="Non-negative decimal number",
        ... )
        ValidationError: Invalid amount
    """

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        constraint: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = True,
    ) -> None:
        """Initialize ValidationError.

        Args:
            message: Human-readable error description.
            field: The name of the field that failed validation.
            value: The invalid value (avoid including sensitive data).
            constraint: Description of the validation rule violated.
            details: Optional dictionary with additional context.
            recoverable: Whether the error can be fixed by user correction.
                Defaults to True since validation errors stem from bad input.
        """
        super().__init__(message, details=details, recoverable=recoverable)
        self.field = field
        self.value = value
        self.constraint = constraint

        if field:
            self.details["field"] = field
        if value is not None:
            self.details["value"] = value
        if constraint:
            self.details["constraint"] = constraint


class MalformedAmount(ValidationError):
    """Amount is not a non-negative decimal number."""


class MalformedDate(ValidationError):
    """Date is not in DD.MM.YYYY (or ISO) form."""


class InvalidNationalId(ValidationError):
    """National ID number (rodné číslo) fails format, date or checksum rules."""


class InvalidBankAccountFormat(ValidationError):
    """IBAN has the wrong length or contains characters outside A-Z, 0-9."""


class UnsupportedCountry(ValidationError):
    """IBAN country prefix is not the accepted country."""

    def __init__(
        self,
        message: str,
        *,
        country: Optional[str] = None,
        allowed_country: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.country = country
        self.allowed_country = allowed_country
        if country:
            self.details["country"] = country
        if allowed_country:
            self.details["allowed_country"] = allowed_country


class ChecksumMismatch(ValidationError):
    """IBAN fails the ISO 13616 mod-97 check."""


class InvalidMonthRange(ValidationError):
    """Month, month count or month range is outside the tax year."""


class MissingRequiredField(ValidationError):
    """A section is claimed but one of its required fields is absent.

    Example:
        >>> raise MissingRequiredField("r031_rodne_cislo")
        MissingRequiredField: Missing required field: r031_rodne_cislo
    """

    def __init__(self, field: str, *, section: Optional[str] = None) -> None:
        super().__init__(
            f"Missing required field: {field}",
            field=field,
            constraint="Required when the section is claimed",
        )
        self.section = section
        if section:
            self.details["section"] = section


class InputValidationError(ValidationError):
    """Raw input record is structurally broken (e.g. children is not a list)."""


class IncompleteDeclaration(DaneError):
    """Declaration handed to the serializer lacks schema-mandatory fields.

    Attributes:
        missing: Names of the mandatory declaration fields that are empty.
    """

    def __init__(self, missing: list[str]) -> None:
        super().__init__(
            f"Declaration is missing mandatory fields: {', '.join(missing)}",
            details={"missing": list(missing)},
        )
        self.missing = list(missing)


class ConfigurationError(DaneError):
    """Error raised when statutory configuration is invalid or missing.

    Attributes:
        config_key: The configuration key that is problematic.
        expected: Description of the expected value or format.
        actual: The actual value found (if any).

    Example:
        >>> raise ConfigurationError(
        ...     "No statutory constants for tax year",
        ...     config_key="tax_year",
        ...     expected="One of: 2020",
        ...     actual=1999,
        ... )
        ConfigurationError: No statutory constants for tax year
    """

    def __init__(
        self,
        message: str,
        *,
        config_key: Optional[str] = None,
        expected: Optional[str] = None,
        actual: Optional[Any] = None,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message, details=details, recoverable=recoverable)
        self.config_key = config_key
        self.expected = expected
        self.actual = actual

        if config_key:
            self.details["config_key"] = config_key
        if expected:
            self.details["expected"] = expected
        if actual is not None:
            self.details["actual"] = actual


__all__ = [
    "DaneError",
    "ValidationError",
    "MalformedAmount",
    "MalformedDate",
    "InvalidNationalId",
    "InvalidBankAccountFormat",
    "UnsupportedCountry",
    "ChecksumMismatch",
    "InvalidMonthRange",
    "MissingRequiredField",
    "InputValidationError",
    "IncompleteDeclaration",
    "ConfigurationError",
]
