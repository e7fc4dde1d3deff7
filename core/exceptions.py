"""Typed exceptions for ledger business-rule failures."""

from enum import Enum


class ErrorKind(str, Enum):
    """Category of a ledger failure, as reported in structured results."""

    NOT_FOUND = "not_found"
    INVALID_AMOUNT = "invalid_amount"
    INSUFFICIENT_CREDIT = "insufficient_credit"
    EXCEEDS_INVOICE_BALANCE = "exceeds_invoice_balance"
    INVALID_STATE = "invalid_state"
    UNEXPECTED = "unexpected"


class LedgerError(ValueError):
    """
    Base class for ledger business-rule violations.

    Raised before any mutation. Subclasses ValueError so callers that treat
    bad input generically (the API error handlers) still catch it.
    """

    kind: ErrorKind = ErrorKind.UNEXPECTED


class NotFoundError(LedgerError):
    """Invoice, credit note or company missing, or owned by another company."""

    kind = ErrorKind.NOT_FOUND


class InvalidAmountError(LedgerError):
    """Amount is zero, negative, or otherwise not allowed."""

    kind = ErrorKind.INVALID_AMOUNT


class InsufficientCreditError(LedgerError):
    """Credit note lacks the remaining balance for the requested application."""

    kind = ErrorKind.INSUFFICIENT_CREDIT

    def __init__(self, requested, available):
        self.requested = requested
        self.available = available
        super().__init__("Insufficient credit balance")


class ExceedsInvoiceBalanceError(LedgerError):
    """Requested allocation is larger than what the invoice still owes."""

    kind = ErrorKind.EXCEEDS_INVOICE_BALANCE

    def __init__(self, requested, balance_due):
        self.requested = requested
        self.balance_due = balance_due
        super().__init__("Amount exceeds invoice balance")


class InvalidStateError(LedgerError):
    """Document status does not allow the operation (e.g. cancelled)."""

    kind = ErrorKind.INVALID_STATE
