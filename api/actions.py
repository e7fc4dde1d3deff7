"""POST /api/actions: unified mutation endpoint."""

from datetime import date
from decimal import Decimal
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field, TypeAdapter

from api.base import success_response
from api.errors import ledger_error_response
from core.models import CreditNoteCreate, InvoiceCreate, LedgerResult, PaymentCreate
from core.numbering import DocumentType


_AMOUNT = TypeAdapter(Annotated[Decimal, Field(max_digits=15, decimal_places=2)])


class ActionRequest(BaseModel):
    domain: str
    action: str
    data: dict


def create_actions_router(services: dict) -> APIRouter:
    router = APIRouter()

    handlers = {
        "invoice": InvoiceHandler(services["invoice"]),
        "payment": PaymentHandler(services["payment"]),
        "credit_note": CreditNoteHandler(services["credit_note"]),
        "document_number": DocumentNumberHandler(services["numbers"]),
    }

    @router.post("/actions")
    async def perform_action(request: Request, body: ActionRequest):
        handler = handlers.get(body.domain)
        if handler is None:
            raise ValueError(
                f"Unknown domain '{body.domain}'. "
                f"Valid domains: {', '.join(sorted(handlers.keys()))}"
            )

        if body.action not in handler.ALLOWED_ACTIONS:
            raise ValueError(
                f"Action '{body.action}' not allowed on '{body.domain}'. "
                f"Allowed: {', '.join(sorted(handler.ALLOWED_ACTIONS))}"
            )

        request_id = getattr(request.state, "request_id", None)
        method = getattr(handler, f"_handle_{body.action}")
        result = method(dict(body.data))

        if isinstance(result, LedgerResult) and not result.success:
            return ledger_error_response(result.error_kind, result.error, request_id)
        if isinstance(result, BaseModel):
            result = result.model_dump(mode="json")

        return success_response(result, request_id).model_dump(mode="json")

    return router


# =============================================================================
# HANDLER CLASSES
# =============================================================================


class InvoiceHandler:
    ALLOWED_ACTIONS = {"create", "send", "cancel", "mark_overdue"}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        return self.service.create(InvoiceCreate(**data))

    def _handle_send(self, data: dict):
        return self.service.send(UUID(data["id"]))

    def _handle_cancel(self, data: dict):
        return self.service.cancel(UUID(data["id"]))

    def _handle_mark_overdue(self, data: dict):
        as_of = date.fromisoformat(data["as_of"]) if data.get("as_of") else None
        invoices = self.service.mark_overdue(UUID(data["company_id"]), as_of)
        return [i.model_dump(mode="json") for i in invoices]


class PaymentHandler:
    ALLOWED_ACTIONS = {"record"}

    def __init__(self, service):
        self.service = service

    def _handle_record(self, data: dict):
        return self.service.record_payment_with_allocation(PaymentCreate(**data))


class CreditNoteHandler:
    ALLOWED_ACTIONS = {"create", "issue", "cancel", "apply"}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        return self.service.create(CreditNoteCreate(**data))

    def _handle_issue(self, data: dict):
        return self.service.issue(UUID(data["id"]))

    def _handle_cancel(self, data: dict):
        return self.service.cancel(UUID(data["id"]))

    def _handle_apply(self, data: dict):
        return self.service.apply_to_invoice(
            UUID(data["id"]),
            UUID(data["invoice_id"]),
            _AMOUNT.validate_python(data["amount"]),
            data.get("notes"),
        )


class DocumentNumberHandler:
    ALLOWED_ACTIONS = {"next", "preview"}

    def __init__(self, generator):
        self.generator = generator

    def _handle_next(self, data: dict):
        number = self.generator.next_number(
            UUID(data["company_id"]), DocumentType(data["document_type"])
        )
        return {"number": number}

    def _handle_preview(self, data: dict):
        number = self.generator.preview(
            UUID(data["company_id"]), DocumentType(data["document_type"])
        )
        return {"number": number}
