"""FastAPI application factory for the billing ledger."""

from fastapi import FastAPI

from api.actions import create_actions_router
from api.data import create_data_router
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from clients.postgres_client import PostgresClient
from core.audit import AuditLogger
from core.config import LedgerConfig
from core.event_bus import EventBus
from core.numbering import DocumentNumberGenerator
from core.services.credit_note_service import CreditNoteService
from core.services.invoice_service import InvoiceService
from core.services.payment_service import PaymentService


def build_services(
    postgres: PostgresClient,
    config: LedgerConfig | None = None,
    event_bus: EventBus | None = None
) -> dict:
    """Wire the ledger services around one client, audit logger and event bus."""
    config = config or LedgerConfig()
    audit = AuditLogger(postgres)
    event_bus = event_bus or EventBus()
    numbers = DocumentNumberGenerator(postgres, config)

    return {
        "invoice": InvoiceService(postgres, audit, event_bus, numbers, config),
        "payment": PaymentService(postgres, audit, event_bus, numbers, config),
        "credit_note": CreditNoteService(postgres, audit, event_bus, numbers, config),
        "audit": audit,
        "numbers": numbers,
        "event_bus": event_bus,
    }


def create_app(services: dict) -> FastAPI:
    """App with request IDs, error handlers, and the data/actions routes under /api."""
    app = FastAPI(title="Billing Ledger")
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    app.include_router(create_data_router(services), prefix="/api")
    app.include_router(create_actions_router(services), prefix="/api")

    return app
