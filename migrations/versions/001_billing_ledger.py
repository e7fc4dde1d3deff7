"""Billing ledger: companies, invoices, payments, credit notes and their allocations.

Revision ID: 001_billing_ledger
Revises:
Create Date: 2025-01-06
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '001_billing_ledger'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    # ====================
    # PARTIES
    # ====================
    op.execute("""
        CREATE TABLE companies (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)

    op.execute("""
        CREATE TABLE customers (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            company_id UUID NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
            name TEXT NOT NULL,
            email TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)

    # ====================
    # INVOICES
    # ====================
    op.execute("""
        CREATE TABLE invoices (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            company_id UUID NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
            customer_id UUID NOT NULL REFERENCES customers(id),
            invoice_number TEXT NOT NULL,
            invoice_date DATE NOT NULL,
            due_date DATE,
            status TEXT NOT NULL DEFAULT 'draft'
                CHECK (status IN ('draft', 'sent', 'partial', 'paid', 'overdue', 'cancelled')),
            subtotal NUMERIC(15,2) NOT NULL DEFAULT 0,
            tax_amount NUMERIC(15,2) NOT NULL DEFAULT 0,
            total_amount NUMERIC(15,2) NOT NULL DEFAULT 0,
            paid_amount NUMERIC(15,2) NOT NULL DEFAULT 0,
            balance_due NUMERIC(15,2) NOT NULL DEFAULT 0,
            notes TEXT,
            created_by UUID,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            UNIQUE (company_id, invoice_number),
            CHECK (balance_due = total_amount - paid_amount)
        )
    """)
    op.execute("CREATE INDEX idx_invoices_company_id ON invoices(company_id)")
    op.execute("CREATE INDEX idx_invoices_customer_id ON invoices(customer_id)")
    op.execute("CREATE INDEX idx_invoices_status ON invoices(status)")

    # ====================
    # PAYMENTS
    # ====================
    op.execute("""
        CREATE TABLE payments (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            company_id UUID NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
            customer_id UUID NOT NULL REFERENCES customers(id),
            payment_number TEXT NOT NULL UNIQUE,
            payment_date DATE NOT NULL,
            amount NUMERIC(15,2) NOT NULL CHECK (amount <> 0),
            payment_method TEXT NOT NULL
                CHECK (payment_method IN ('cash', 'cheque', 'bank_transfer', 'mobile_money', 'credit_card', 'other')),
            reference_number TEXT,
            notes TEXT,
            created_by UUID,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)
    op.execute("CREATE INDEX idx_payments_company_id ON payments(company_id)")
    op.execute("CREATE INDEX idx_payments_customer_id ON payments(customer_id)")

    op.execute("""
        CREATE TABLE payment_allocations (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            payment_id UUID NOT NULL REFERENCES payments(id) ON DELETE CASCADE,
            invoice_id UUID NOT NULL REFERENCES invoices(id) ON DELETE CASCADE,
            amount_allocated NUMERIC(15,2) NOT NULL,
            allocation_date DATE NOT NULL DEFAULT CURRENT_DATE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)
    op.execute("CREATE INDEX idx_payment_allocations_payment_id ON payment_allocations(payment_id)")
    op.execute("CREATE INDEX idx_payment_allocations_invoice_id ON payment_allocations(invoice_id)")

    # ====================
    # CREDIT NOTES
    # ====================
    op.execute("""
        CREATE TABLE credit_notes (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            company_id UUID NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
            customer_id UUID NOT NULL REFERENCES customers(id),
            invoice_id UUID REFERENCES invoices(id),
            credit_note_number TEXT NOT NULL,
            credit_note_date DATE NOT NULL,
            status TEXT NOT NULL DEFAULT 'draft'
                CHECK (status IN ('draft', 'sent', 'applied', 'cancelled')),
            reason TEXT,
            subtotal NUMERIC(15,2) NOT NULL DEFAULT 0,
            tax_amount NUMERIC(15,2) NOT NULL DEFAULT 0,
            total_amount NUMERIC(15,2) NOT NULL DEFAULT 0,
            applied_amount NUMERIC(15,2) NOT NULL DEFAULT 0,
            balance NUMERIC(15,2) NOT NULL DEFAULT 0,
            notes TEXT,
            created_by UUID,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            UNIQUE (company_id, credit_note_number),
            CHECK (balance = total_amount - applied_amount)
        )
    """)
    op.execute("CREATE INDEX idx_credit_notes_company_id ON credit_notes(company_id)")
    op.execute("CREATE INDEX idx_credit_notes_customer_id ON credit_notes(customer_id)")
    op.execute("CREATE INDEX idx_credit_notes_invoice_id ON credit_notes(invoice_id)")

    op.execute("""
        CREATE TABLE credit_note_allocations (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            credit_note_id UUID NOT NULL REFERENCES credit_notes(id) ON DELETE CASCADE,
            invoice_id UUID NOT NULL REFERENCES invoices(id),
            allocated_amount NUMERIC(15,2) NOT NULL DEFAULT 0,
            allocation_date DATE NOT NULL DEFAULT CURRENT_DATE,
            notes TEXT,
            created_by UUID,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            UNIQUE (credit_note_id, invoice_id)
        )
    """)
    op.execute("CREATE INDEX idx_credit_note_allocations_invoice_id ON credit_note_allocations(invoice_id)")

    # ====================
    # AUDIT
    # ====================
    op.execute("""
        CREATE TABLE audit_log (
            id UUID PRIMARY KEY,
            user_id UUID,
            entity_type TEXT NOT NULL,
            entity_id UUID NOT NULL,
            action TEXT NOT NULL,
            changes JSONB NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)
    op.execute("CREATE INDEX idx_audit_log_entity ON audit_log(entity_type, entity_id)")


def downgrade() -> None:
    op.drop_table('audit_log')
    op.drop_table('credit_note_allocations')
    op.drop_table('credit_notes')
    op.drop_table('payment_allocations')
    op.drop_table('payments')
    op.drop_table('invoices')
    op.drop_table('customers')
    op.drop_table('companies')
