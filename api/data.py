"""GET /api/data: unified read endpoint."""

from uuid import UUID

from fastapi import APIRouter, Query, Request

from api.base import success_response


VALID_TYPES = {"invoices", "payments", "credit_notes"}


def create_data_router(services: dict) -> APIRouter:
    router = APIRouter()

    invoice_svc = services["invoice"]
    payment_svc = services["payment"]
    credit_note_svc = services["credit_note"]
    audit = services["audit"]

    @router.get("/data")
    async def get_data(
        request: Request,
        type: str | None = Query(None),
        id: str | None = Query(None),
        company_id: str | None = Query(None),
        customer_id: str | None = Query(None),
        invoice_id: str | None = Query(None),
        include: str | None = Query(None),
        filter: str | None = Query(None),
        limit: int | None = Query(None, ge=1, le=500),
    ):
        if type is None:
            raise ValueError("'type' query parameter is required")

        if type not in VALID_TYPES:
            raise ValueError(f"Unknown type '{type}'. Valid types: {', '.join(sorted(VALID_TYPES))}")

        includes = set(include.split(",")) if include else set()
        request_id = getattr(request.state, "request_id", None)

        if type == "invoices":
            data = _handle_invoices(
                invoice_svc, payment_svc, audit, id, company_id, customer_id, filter, includes, limit
            )
        elif type == "payments":
            data = _handle_payments(payment_svc, audit, id, company_id, invoice_id, includes, limit)
        else:
            data = _handle_credit_notes(credit_note_svc, audit, id, customer_id, includes, limit)

        return success_response(data, request_id).model_dump(mode="json")

    return router


def _dump(items) -> list[dict]:
    return [item.model_dump(mode="json") for item in items]


def _handle_invoices(invoice_svc, payment_svc, audit, id, company_id, customer_id, filter, includes, limit):
    if id:
        invoice = invoice_svc.get_by_id(UUID(id), UUID(company_id) if company_id else None)
        if invoice is None:
            raise ValueError(f"Invoice {id} not found")

        data = invoice.model_dump(mode="json")
        if "payments" in includes:
            data["payments"] = _dump(payment_svc.list_for_invoice(invoice.id))
        if "history" in includes:
            data["history"] = audit.get_entity_history("invoice", invoice.id)
        return data

    if customer_id:
        return _dump(invoice_svc.list_for_customer(UUID(customer_id), limit))

    if company_id and filter == "outstanding":
        return _dump(invoice_svc.list_outstanding(UUID(company_id), limit))

    raise ValueError(
        "'invoices' type requires 'id', 'customer_id', or 'company_id' with filter=outstanding"
    )


def _handle_payments(payment_svc, audit, id, company_id, invoice_id, includes, limit):
    if id:
        payment = payment_svc.get_by_id(UUID(id))
        if payment is None:
            raise ValueError(f"Payment {id} not found")

        data = payment.model_dump(mode="json")
        if "allocations" in includes:
            data["allocations"] = _dump(payment_svc.list_allocations(payment.id))
        if "history" in includes:
            data["history"] = audit.get_entity_history("payment", payment.id)
        return data

    if invoice_id:
        return _dump(payment_svc.list_for_invoice(UUID(invoice_id)))

    if company_id:
        return _dump(payment_svc.list_for_company(UUID(company_id), limit))

    raise ValueError("'payments' type requires 'id', 'invoice_id' or 'company_id' parameter")


def _handle_credit_notes(credit_note_svc, audit, id, customer_id, includes, limit):
    if id:
        credit_note = credit_note_svc.get_by_id(UUID(id))
        if credit_note is None:
            raise ValueError(f"Credit note {id} not found")

        data = credit_note.model_dump(mode="json")
        if "allocations" in includes:
            data["allocations"] = _dump(credit_note_svc.list_allocations(credit_note.id))
        if "history" in includes:
            data["history"] = audit.get_entity_history("credit_note", credit_note.id)
        return data

    if customer_id:
        return _dump(credit_note_svc.list_for_customer(UUID(customer_id), limit))

    raise ValueError("'credit_notes' type requires 'id' or 'customer_id' parameter")
