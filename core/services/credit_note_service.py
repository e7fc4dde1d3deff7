"""
Credit note service.

Credit notes are issued against a customer and their balance is applied to
one or more invoices. Each application moves money atomically: the credit
note's applied_amount, the per-invoice allocation row and the invoice's
paid_amount change together or not at all.

Lifecycle:
    draft -> sent -> applied (when fully consumed)
    draft/sent -> cancelled (only while nothing has been applied)
"""

import logging
from decimal import Decimal
from uuid import UUID, uuid4

import psycopg2

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction, compute_changes
from core.config import LedgerConfig
from core.event_bus import EventBus
from core.events import CreditNoteApplied, InvoicePaid
from core.exceptions import InvalidStateError, LedgerError, NotFoundError
from core.ledger import apply_credit
from core.models import (
    CreditNote,
    CreditNoteAllocation,
    CreditNoteApplicationResult,
    CreditNoteCreate,
    CreditNoteStatus,
    Invoice,
    InvoiceStatus,
)
from core.numbering import DocumentNumberGenerator, DocumentType
from utils.timezone import now_utc, today_utc
from utils.user_context import get_acting_user_id

logger = logging.getLogger(__name__)


class CreditNoteService:
    """Service for credit note operations."""

    def __init__(
        self,
        postgres: PostgresClient,
        audit: AuditLogger,
        event_bus: EventBus,
        numbers: DocumentNumberGenerator,
        config: LedgerConfig | None = None
    ):
        self.postgres = postgres
        self.audit = audit
        self.event_bus = event_bus
        self.numbers = numbers
        self.config = config or LedgerConfig()

    def create(self, data: CreditNoteCreate) -> CreditNote:
        """
        Create a credit note in DRAFT status with its full amount available.

        Args:
            data: Credit note details

        Returns:
            Created credit note

        Raises:
            NotFoundError: If the customer, or the referenced invoice, is not
                part of the company
        """
        with self.postgres.transaction() as tx:
            customer = tx.execute_single(
                "SELECT id FROM customers WHERE id = %s AND company_id = %s",
                (data.customer_id, data.company_id)
            )
            if customer is None:
                raise NotFoundError("Customer not found")

            if data.invoice_id is not None:
                invoice = tx.execute_single(
                    "SELECT id FROM invoices WHERE id = %s AND company_id = %s",
                    (data.invoice_id, data.company_id)
                )
                if invoice is None:
                    raise NotFoundError("Invoice not found")

            now = now_utc()
            total = data.total_amount

            def insert_credit_note(number: str) -> dict:
                return tx.execute_returning(
                    """
                    INSERT INTO credit_notes (
                        id, company_id, customer_id, invoice_id,
                        credit_note_number, credit_note_date, status, reason,
                        subtotal, tax_amount, total_amount, applied_amount, balance,
                        notes, created_by, created_at, updated_at
                    ) VALUES (
                        %s, %s, %s, %s,
                        %s, %s, %s, %s,
                        %s, %s, %s, %s, %s,
                        %s, %s, %s, %s
                    )
                    RETURNING *
                    """,
                    (
                        uuid4(), data.company_id, data.customer_id, data.invoice_id,
                        number, data.credit_note_date or today_utc(),
                        CreditNoteStatus.DRAFT.value, data.reason,
                        data.subtotal, data.tax_amount, total, Decimal("0.00"), total,
                        data.notes, get_acting_user_id(), now, now
                    )
                )[0]

            row = self.numbers.insert_numbered(
                tx, data.company_id, DocumentType.CREDIT_NOTE, insert_credit_note
            )
            credit_note = CreditNote.model_validate(row)

            self.audit.log_change(
                entity_type="credit_note",
                entity_id=credit_note.id,
                action=AuditAction.CREATE,
                changes={"created": credit_note.model_dump(mode="json")},
                executor=tx
            )

        logger.info("Created credit note %s for %s", credit_note.credit_note_number, total)
        return credit_note

    def get_by_id(self, credit_note_id: UUID) -> CreditNote | None:
        """
        Get credit note by ID.

        Returns:
            CreditNote if found, None otherwise.
        """
        row = self.postgres.execute_single(
            "SELECT * FROM credit_notes WHERE id = %s",
            (credit_note_id,)
        )

        if row is None:
            return None

        return CreditNote.model_validate(row)

    def issue(self, credit_note_id: UUID) -> CreditNote:
        """
        Issue a draft credit note to the customer (DRAFT -> SENT).

        Raises:
            NotFoundError: If credit note not found
            InvalidStateError: If the credit note is not a draft
        """
        with self.postgres.transaction() as tx:
            current = self._lock(tx, credit_note_id)

            if current.status != CreditNoteStatus.DRAFT:
                raise InvalidStateError(
                    f"Credit note {current.credit_note_number} is {current.status.value}, not draft"
                )

            return self._set_status(tx, current, CreditNoteStatus.SENT)

    def cancel(self, credit_note_id: UUID) -> CreditNote:
        """
        Cancel a credit note that has not been applied to anything.

        Raises:
            NotFoundError: If credit note not found
            InvalidStateError: If already cancelled or any credit was applied
        """
        with self.postgres.transaction() as tx:
            current = self._lock(tx, credit_note_id)

            if current.status == CreditNoteStatus.CANCELLED:
                raise InvalidStateError(f"Credit note {current.credit_note_number} is already cancelled")

            if current.applied_amount > 0:
                raise InvalidStateError(
                    f"Credit note {current.credit_note_number} has been applied and cannot be cancelled"
                )

            return self._set_status(tx, current, CreditNoteStatus.CANCELLED)

    def _lock(self, tx, credit_note_id: UUID) -> CreditNote:
        row = tx.execute_single(
            "SELECT * FROM credit_notes WHERE id = %s FOR UPDATE",
            (credit_note_id,)
        )
        if row is None:
            raise NotFoundError("Credit note not found")
        return CreditNote.model_validate(row)

    def _set_status(self, tx, current: CreditNote, status: CreditNoteStatus) -> CreditNote:
        row = tx.execute_returning(
            """
            UPDATE credit_notes
            SET status = %s, updated_at = %s
            WHERE id = %s
            RETURNING *
            """,
            (status.value, now_utc(), current.id)
        )[0]
        updated = CreditNote.model_validate(row)

        self.audit.log_change(
            entity_type="credit_note",
            entity_id=current.id,
            action=AuditAction.UPDATE,
            changes=compute_changes(
                current.model_dump(mode="json"),
                updated.model_dump(mode="json")
            ),
            executor=tx
        )

        return updated

    def apply_to_invoice(
        self,
        credit_note_id: UUID,
        invoice_id: UUID,
        amount: Decimal,
        notes: str | None = None
    ) -> CreditNoteApplicationResult:
        """
        Apply part of a credit note's balance to an invoice.

        Repeated applications of the same credit note to the same invoice
        accumulate into one allocation row.

        Args:
            credit_note_id: Credit note to draw from
            invoice_id: Invoice to reduce; must belong to the credit note's company
            amount: Positive amount, at most the remaining credit and at most
                the invoice's balance due
            notes: Optional note stored on the allocation

        Returns:
            CreditNoteApplicationResult with the applied amount, the credit
            remaining and the invoice's new balance, or success=False with
            the error message and kind
        """
        try:
            before, credit_note, invoice, applied = self._apply(
                credit_note_id, invoice_id, amount, notes
            )
        except LedgerError as e:
            logger.warning(
                "Credit note %s not applied to invoice %s: %s", credit_note_id, invoice_id, e
            )
            return CreditNoteApplicationResult.failed(e)
        except psycopg2.Error as e:
            logger.exception("Credit application failed for credit note %s", credit_note_id)
            return CreditNoteApplicationResult.unexpected(str(e).strip() or type(e).__name__)

        logger.info(
            "Applied %s of credit note %s to invoice %s, %s credit remaining",
            applied, credit_note.credit_note_number, invoice.invoice_number, credit_note.balance
        )

        self.event_bus.publish(
            CreditNoteApplied.create(credit_note=credit_note, invoice=invoice, amount=applied)
        )
        if invoice.status == InvoiceStatus.PAID and before.status != InvoiceStatus.PAID:
            self.event_bus.publish(InvoicePaid.create(invoice=invoice))

        return CreditNoteApplicationResult(
            success=True,
            credit_note_id=credit_note.id,
            invoice_id=invoice.id,
            applied_amount=applied,
            remaining_credit=credit_note.balance,
            invoice_balance=invoice.balance_due,
            credit_note_status=credit_note.status,
            invoice_status=invoice.status,
        )

    def _apply(
        self,
        credit_note_id: UUID,
        invoice_id: UUID,
        amount: Decimal,
        notes: str | None
    ) -> tuple[Invoice, CreditNote, Invoice, Decimal]:
        with self.postgres.transaction() as tx:
            # Lock order: credit note, then invoice
            credit_note = self._lock(tx, credit_note_id)

            row = tx.execute_single(
                "SELECT * FROM invoices WHERE id = %s AND company_id = %s FOR UPDATE",
                (invoice_id, credit_note.company_id)
            )
            if row is None:
                raise NotFoundError("Invoice not found")
            invoice = Invoice.model_validate(row)

            credit_update, invoice_update = apply_credit(credit_note, invoice, amount)
            applied = credit_update.applied_amount - credit_note.applied_amount
            now = now_utc()

            tx.execute(
                """
                INSERT INTO credit_note_allocations (
                    id, credit_note_id, invoice_id, allocated_amount,
                    allocation_date, notes, created_by, created_at
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (credit_note_id, invoice_id) DO UPDATE SET
                    allocated_amount = credit_note_allocations.allocated_amount + EXCLUDED.allocated_amount,
                    allocation_date = EXCLUDED.allocation_date,
                    notes = COALESCE(EXCLUDED.notes, credit_note_allocations.notes)
                """,
                (
                    uuid4(), credit_note.id, invoice.id, applied,
                    today_utc(), notes, get_acting_user_id(), now
                )
            )

            credit_row = tx.execute_returning(
                """
                UPDATE credit_notes
                SET applied_amount = %s, balance = %s, status = %s, updated_at = %s
                WHERE id = %s
                RETURNING *
                """,
                (
                    credit_update.applied_amount, credit_update.balance,
                    credit_update.status.value, now, credit_note.id
                )
            )[0]

            invoice_row = tx.execute_returning(
                """
                UPDATE invoices
                SET paid_amount = %s, balance_due = %s, status = %s, updated_at = %s
                WHERE id = %s
                RETURNING *
                """,
                (
                    invoice_update.paid_amount, invoice_update.balance_due,
                    invoice_update.status.value, now, invoice.id
                )
            )[0]

            updated_credit = CreditNote.model_validate(credit_row)
            updated_invoice = Invoice.model_validate(invoice_row)

            self.audit.log_change(
                entity_type="credit_note",
                entity_id=credit_note.id,
                action=AuditAction.UPDATE,
                changes={
                    "applied_amount": {
                        "old": str(credit_note.applied_amount),
                        "new": str(updated_credit.applied_amount)
                    },
                    "status": {"old": credit_note.status.value, "new": updated_credit.status.value},
                    "applied_to_invoice": str(invoice.id)
                },
                executor=tx
            )
            self.audit.log_change(
                entity_type="invoice",
                entity_id=invoice.id,
                action=AuditAction.UPDATE,
                changes={
                    "paid_amount": {"old": str(invoice.paid_amount), "new": str(updated_invoice.paid_amount)},
                    "balance_due": {"old": str(invoice.balance_due), "new": str(updated_invoice.balance_due)},
                    "status": {"old": invoice.status.value, "new": updated_invoice.status.value},
                    "credit_applied": str(credit_note.id)
                },
                executor=tx
            )

        return invoice, updated_credit, updated_invoice, applied

    def list_for_customer(self, customer_id: UUID, limit: int | None = None) -> list[CreditNote]:
        """List a customer's credit notes, newest first."""
        rows = self.postgres.execute(
            """
            SELECT * FROM credit_notes
            WHERE customer_id = %s
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (customer_id, limit or self.config.default_list_limit)
        )

        return [CreditNote.model_validate(row) for row in rows]

    def list_allocations(self, credit_note_id: UUID) -> list[CreditNoteAllocation]:
        """Invoices a credit note has been applied to, with accumulated amounts."""
        rows = self.postgres.execute(
            """
            SELECT * FROM credit_note_allocations
            WHERE credit_note_id = %s
            ORDER BY created_at ASC
            """,
            (credit_note_id,)
        )

        return [CreditNoteAllocation.model_validate(row) for row in rows]
