"""Billing error types.

Every error aborts the current operation. Callers run each operation inside
``session_scope`` so nothing is committed when one of these is raised.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standardized error codes for client handling."""

    CONFIGURATION_MISSING = "CONFIGURATION_MISSING"
    INVOICE_NOT_FOUND = "INVOICE_NOT_FOUND"
    INVOICE_ITEMS_MALFORMED = "INVOICE_ITEMS_MALFORMED"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    CURRENCY_NOT_FOUND = "CURRENCY_NOT_FOUND"
    RATE_PROVIDER_UNAVAILABLE = "RATE_PROVIDER_UNAVAILABLE"
    RATE_DATA_MALFORMED = "RATE_DATA_MALFORMED"
    RENDERING_FAILED = "RENDERING_FAILED"
    DOCUMENT_STORAGE_FAILED = "DOCUMENT_STORAGE_FAILED"


class BillingError(Exception):
    """Base exception with structured error info."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        detail: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.detail = detail
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to API response format."""
        result: dict[str, Any] = {"error": self.code.value, "message": self.message}
        if self.detail:
            result["detail"] = self.detail
        if self.context:
            result["context"] = self.context
        return result


class ConfigurationMissingError(BillingError):
    """Required reference configuration (seller profile, bank account) is absent."""

    def __init__(self, what: str, detail: str | None = None) -> None:
        super().__init__(
            code=ErrorCode.CONFIGURATION_MISSING,
            message=f"Missing configuration: {what}",
            detail=detail,
            context={"missing": what},
        )


class InvoiceNotFoundError(BillingError):
    def __init__(self, invoice_id: int) -> None:
        super().__init__(
            code=ErrorCode.INVOICE_NOT_FOUND,
            message=f"Invoice {invoice_id} not found",
            context={"invoice_id": invoice_id},
        )


class InvoiceItemsMalformedError(BillingError):
    """Stored line items could not be read back."""

    def __init__(self, serial: str, detail: str) -> None:
        super().__init__(
            code=ErrorCode.INVOICE_ITEMS_MALFORMED,
            message=f"Line items of invoice {serial} are malformed",
            detail=detail,
            context={"serial": serial},
        )


class CurrencyNotFoundError(BillingError):
    """Currency row (by id) or rate entry (by code) could not be resolved."""

    def __init__(self, currency: int | str) -> None:
        super().__init__(
            code=ErrorCode.CURRENCY_NOT_FOUND,
            message=f"Currency {currency} not found",
            context={"currency": currency},
        )


class RateProviderUnavailableError(BillingError):
    """Exchange-rate provider could not be reached or refused the request."""

    def __init__(self, base_currency: str, detail: str) -> None:
        super().__init__(
            code=ErrorCode.RATE_PROVIDER_UNAVAILABLE,
            message=f"Exchange rates for {base_currency} are unavailable",
            detail=detail,
            context={"base_currency": base_currency},
        )


class RateDataMalformedError(BillingError):
    """Exchange-rate response did not have the expected shape."""

    def __init__(self, base_currency: str, detail: str) -> None:
        super().__init__(
            code=ErrorCode.RATE_DATA_MALFORMED,
            message=f"Malformed exchange-rate response for {base_currency}",
            detail=detail,
            context={"base_currency": base_currency},
        )


class RenderingFailedError(BillingError):
    def __init__(self, filename: str, detail: str) -> None:
        super().__init__(
            code=ErrorCode.RENDERING_FAILED,
            message=f"Could not render document {filename}",
            detail=detail,
            context={"filename": filename},
        )


class DocumentStorageError(BillingError):
    def __init__(self, object_name: str, detail: str) -> None:
        super().__init__(
            code=ErrorCode.DOCUMENT_STORAGE_FAILED,
            message=f"Could not store document {object_name}",
            detail=detail,
            context={"object_name": object_name},
        )


class UserNotFoundError(BillingError):
    def __init__(self, user_id: int) -> None:
        super().__init__(
            code=ErrorCode.USER_NOT_FOUND,
            message=f"User {user_id} not found",
            context={"user_id": user_id},
        )
