"""Numbered documents outside the ledger, plus atomic per-year counters.

Revision ID: 002_document_numbering
Revises: 001_billing_ledger
Create Date: 2025-01-13

document_sequences holds one row per (company, document type, year). The
generator increments current_number with an upsert, so concurrent callers
never receive the same number.
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '002_document_numbering'
down_revision: Union[str, None] = '001_billing_ledger'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE quotations (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            company_id UUID NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
            customer_id UUID REFERENCES customers(id),
            quotation_number TEXT NOT NULL,
            quotation_date DATE NOT NULL DEFAULT CURRENT_DATE,
            status TEXT NOT NULL DEFAULT 'draft',
            total_amount NUMERIC(15,2) NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            UNIQUE (company_id, quotation_number)
        )
    """)

    op.execute("""
        CREATE TABLE lpos (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            company_id UUID NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
            supplier_id UUID,
            lpo_number TEXT NOT NULL,
            lpo_date DATE NOT NULL DEFAULT CURRENT_DATE,
            status TEXT NOT NULL DEFAULT 'draft'
                CHECK (status IN ('draft', 'sent', 'approved', 'received', 'cancelled')),
            total_amount NUMERIC(15,2) NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            UNIQUE (company_id, lpo_number)
        )
    """)

    op.execute("""
        CREATE TABLE proforma_invoices (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            company_id UUID NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
            customer_id UUID REFERENCES customers(id),
            proforma_number TEXT NOT NULL,
            proforma_date DATE NOT NULL DEFAULT CURRENT_DATE,
            status TEXT NOT NULL DEFAULT 'draft',
            total_amount NUMERIC(15,2) NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            UNIQUE (company_id, proforma_number)
        )
    """)

    op.execute("""
        CREATE TABLE document_sequences (
            company_id UUID NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
            document_type TEXT NOT NULL,
            year INTEGER NOT NULL,
            current_number INTEGER NOT NULL DEFAULT 0,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            PRIMARY KEY (company_id, document_type, year)
        )
    """)


def downgrade() -> None:
    op.drop_table('document_sequences')
    op.drop_table('proforma_invoices')
    op.drop_table('lpos')
    op.drop_table('quotations')
