"""
Ledger rules for applying money to invoices.

Pure functions, no I/O. The services lock rows, call these to validate and
compute the new aggregates, then write the returned values. Keeping the
arithmetic here means the recorder and credit application share one
definition of invoice status and of each validation message.

Invoice status rule:
- paid_amount >= total_amount          -> PAID
- 0 < paid_amount < total_amount       -> PARTIAL
- otherwise                            -> unchanged
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from core.exceptions import (
    ExceedsInvoiceBalanceError,
    InsufficientCreditError,
    InvalidAmountError,
    InvalidStateError,
)
from core.models import CreditNote, CreditNoteStatus, Invoice, InvoiceStatus

CENT = Decimal("0.01")

# Largest value a NUMERIC(15,2) column holds
MAX_AMOUNT = Decimal("9999999999999.99")


def to_money(value) -> Decimal:
    """
    Coerce to a two-place Decimal. Floats go through str() to avoid binary noise.

    Raises:
        InvalidAmountError: If the value is not a finite number or does not
            fit the decimal context once quantized
    """
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmountError(f"Amount {value!r} is not a valid currency amount") from None

    if not amount.is_finite():
        raise InvalidAmountError(f"Amount must be a finite number, got {amount}")
    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise InvalidAmountError(f"Amount {amount} is too large") from None


def derive_invoice_status(
    total_amount: Decimal,
    paid_amount: Decimal,
    current: InvoiceStatus,
) -> InvoiceStatus:
    """Invoice status after a change to paid_amount. Same inputs, same answer."""
    if paid_amount >= total_amount:
        return InvoiceStatus.PAID
    if paid_amount > 0:
        return InvoiceStatus.PARTIAL
    return current


@dataclass(frozen=True)
class InvoiceUpdate:
    """New invoice aggregates after money is applied."""

    paid_amount: Decimal
    balance_due: Decimal
    status: InvoiceStatus


@dataclass(frozen=True)
class CreditNoteUpdate:
    """New credit note aggregates after part of its balance is consumed."""

    applied_amount: Decimal
    balance: Decimal
    status: CreditNoteStatus


def ensure_positive(amount: Decimal, message: str) -> Decimal:
    """
    Return the amount quantized to cents.

    Raises:
        InvalidAmountError: If the amount is zero, negative, not a finite
            number, or larger than a ledger column holds
    """
    amount = to_money(amount)
    if amount <= 0:
        raise InvalidAmountError(message)
    if amount > MAX_AMOUNT:
        raise InvalidAmountError(f"Amount {amount} exceeds the maximum of {MAX_AMOUNT}")
    return amount


def ensure_invoice_open(invoice: Invoice) -> None:
    if invoice.status == InvoiceStatus.CANCELLED:
        raise InvalidStateError(f"Invoice {invoice.invoice_number} is cancelled")


def apply_invoice_payment(
    invoice: Invoice,
    amount: Decimal,
    allow_overpayment: bool = True,
) -> InvoiceUpdate:
    """
    Aggregates for an invoice receiving `amount`.

    Args:
        invoice: Invoice as currently stored
        amount: Positive amount in currency units
        allow_overpayment: When False, amounts above balance_due are rejected

    Raises:
        InvalidStateError: If the invoice is cancelled
        ExceedsInvoiceBalanceError: If overpayment is disallowed and exceeded
    """
    ensure_invoice_open(invoice)

    outstanding = invoice.total_amount - invoice.paid_amount
    if not allow_overpayment and amount > outstanding:
        raise ExceedsInvoiceBalanceError(amount, outstanding)

    paid_amount = to_money(invoice.paid_amount + amount)
    return InvoiceUpdate(
        paid_amount=paid_amount,
        balance_due=to_money(invoice.total_amount - paid_amount),
        status=derive_invoice_status(invoice.total_amount, paid_amount, invoice.status),
    )


def apply_credit(credit_note: CreditNote, invoice: Invoice, amount: Decimal) -> tuple[CreditNoteUpdate, InvoiceUpdate]:
    """
    Aggregates for moving `amount` of credit note balance onto an invoice.

    Checks run in a fixed order: amount, credit note state, invoice state,
    available credit, invoice balance.

    Raises:
        InvalidAmountError: If amount <= 0
        InvalidStateError: If either document is cancelled
        InsufficientCreditError: If amount exceeds the remaining credit
        ExceedsInvoiceBalanceError: If amount exceeds the invoice balance
    """
    amount = ensure_positive(amount, "Application amount must be positive")

    if credit_note.status == CreditNoteStatus.CANCELLED:
        raise InvalidStateError(f"Credit note {credit_note.credit_note_number} is cancelled")
    ensure_invoice_open(invoice)

    available = credit_note.total_amount - credit_note.applied_amount
    if amount > available:
        raise InsufficientCreditError(amount, available)

    outstanding = invoice.total_amount - invoice.paid_amount
    if amount > outstanding:
        raise ExceedsInvoiceBalanceError(amount, outstanding)

    applied_amount = to_money(credit_note.applied_amount + amount)
    if applied_amount >= credit_note.total_amount:
        credit_status = CreditNoteStatus.APPLIED
    else:
        credit_status = credit_note.status

    credit_update = CreditNoteUpdate(
        applied_amount=applied_amount,
        balance=to_money(credit_note.total_amount - applied_amount),
        status=credit_status,
    )
    return credit_update, apply_invoice_payment(invoice, amount)
