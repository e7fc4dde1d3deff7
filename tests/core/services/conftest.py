"""Service fixtures wired to the in-memory ledger database."""

import pytest

from core.audit import AuditLogger
from core.config import LedgerConfig
from core.event_bus import EventBus
from core.events import LedgerEvent
from core.numbering import DocumentNumberGenerator


@pytest.fixture
def config():
    return LedgerConfig()


@pytest.fixture
def audit(ledger_db):
    return AuditLogger(ledger_db)


@pytest.fixture
def published():
    """Every event published on the bus, in order."""
    return []


@pytest.fixture
def event_bus(published):
    bus = EventBus()
    bus.subscribe(LedgerEvent, published.append)
    return bus


@pytest.fixture
def numbers(ledger_db, config):
    return DocumentNumberGenerator(ledger_db, config)


@pytest.fixture
def payment_service(ledger_db, audit, event_bus, numbers, config):
    from core.services.payment_service import PaymentService

    return PaymentService(ledger_db, audit, event_bus, numbers, config)


@pytest.fixture
def credit_note_service(ledger_db, audit, event_bus, numbers, config):
    from core.services.credit_note_service import CreditNoteService

    return CreditNoteService(ledger_db, audit, event_bus, numbers, config)


@pytest.fixture
def invoice_service(ledger_db, audit, event_bus, numbers, config):
    from core.services.invoice_service import InvoiceService

    return InvoiceService(ledger_db, audit, event_bus, numbers, config)
