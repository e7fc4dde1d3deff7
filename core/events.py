"""
Domain events for the billing ledger.

Immutable event objects published after a ledger transaction commits.
Services publish what happened; handlers react without the publisher knowing
who's listening.

Event Categories:
- InvoiceEvent: Invoice lifecycle (created, sent, paid, cancelled)
- PaymentEvent: Payment recorded and allocated
- CreditNoteEvent: Credit note applied to an invoice

Events carry the committed domain objects so handlers don't need to re-fetch.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class LedgerEvent:
    """Base class for all ledger domain events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)


# =============================================================================
# INVOICE EVENTS
# =============================================================================


@dataclass(frozen=True)
class InvoiceEvent(LedgerEvent):
    """Events related to invoice lifecycle."""
    pass


@dataclass(frozen=True)
class InvoiceCreated(InvoiceEvent):
    """A new invoice was created in DRAFT status."""
    invoice: Any = None

    @classmethod
    def create(cls, invoice: Any) -> "InvoiceCreated":
        return cls(invoice=invoice)


@dataclass(frozen=True)
class InvoiceSent(InvoiceEvent):
    """Invoice was sent to customer."""
    invoice: Any = None

    @classmethod
    def create(cls, invoice: Any) -> "InvoiceSent":
        return cls(invoice=invoice)


@dataclass(frozen=True)
class InvoicePaid(InvoiceEvent):
    """Invoice became fully paid, by payment or by credit."""
    invoice: Any = None

    @classmethod
    def create(cls, invoice: Any) -> "InvoicePaid":
        return cls(invoice=invoice)


@dataclass(frozen=True)
class InvoiceCancelled(InvoiceEvent):
    """Invoice was cancelled."""
    invoice: Any = None

    @classmethod
    def create(cls, invoice: Any) -> "InvoiceCancelled":
        return cls(invoice=invoice)


# =============================================================================
# PAYMENT EVENTS
# =============================================================================


@dataclass(frozen=True)
class PaymentEvent(LedgerEvent):
    """Events related to customer payments."""
    pass


@dataclass(frozen=True)
class PaymentRecorded(PaymentEvent):
    """A payment was recorded and allocated to an invoice."""
    payment: Any = None
    invoice: Any = None

    @classmethod
    def create(cls, payment: Any, invoice: Any) -> "PaymentRecorded":
        return cls(payment=payment, invoice=invoice)


# =============================================================================
# CREDIT NOTE EVENTS
# =============================================================================


@dataclass(frozen=True)
class CreditNoteEvent(LedgerEvent):
    """Events related to credit notes."""
    pass


@dataclass(frozen=True)
class CreditNoteApplied(CreditNoteEvent):
    """Part of a credit note's balance was moved onto an invoice."""
    credit_note: Any = None
    invoice: Any = None
    amount: Decimal = Decimal("0")

    @classmethod
    def create(cls, credit_note: Any, invoice: Any, amount: Decimal) -> "CreditNoteApplied":
        return cls(credit_note=credit_note, invoice=invoice, amount=amount)
