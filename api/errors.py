"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from core.exceptions import ErrorKind, LedgerError

logger = logging.getLogger(__name__)


# ErrorKind -> (error code, HTTP status)
ERROR_KIND_RESPONSES = {
    ErrorKind.NOT_FOUND: (ErrorCodes.NOT_FOUND, 404),
    ErrorKind.INVALID_AMOUNT: (ErrorCodes.INVALID_AMOUNT, 400),
    ErrorKind.INVALID_STATE: (ErrorCodes.INVALID_STATE, 400),
    ErrorKind.INSUFFICIENT_CREDIT: (ErrorCodes.INSUFFICIENT_CREDIT, 409),
    ErrorKind.EXCEEDS_INVOICE_BALANCE: (ErrorCodes.EXCEEDS_INVOICE_BALANCE, 409),
    ErrorKind.UNEXPECTED: (ErrorCodes.INTERNAL_ERROR, 500),
}


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def ledger_error_response(
    kind: ErrorKind,
    message: str,
    request_id: str | None = None
) -> JSONResponse:
    """Error envelope for a ledger failure, with the status its kind maps to."""
    code, status_code = ERROR_KIND_RESPONSES.get(kind, (ErrorCodes.INTERNAL_ERROR, 500))
    return JSONResponse(
        status_code=status_code,
        content=error_response(code, message, request_id).model_dump(mode="json"),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        return ledger_error_response(exc.kind, str(exc), _request_id(request))

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        message = str(exc)
        if "not found" in message.lower():
            return JSONResponse(
                status_code=404,
                content=error_response(
                    ErrorCodes.NOT_FOUND, message, _request_id(request)
                ).model_dump(mode="json"),
            )
        return JSONResponse(
            status_code=400,
            content=error_response(
                ErrorCodes.INVALID_REQUEST, message, _request_id(request)
            ).model_dump(mode="json"),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=error_response(
                ErrorCodes.VALIDATION_ERROR,
                str(exc.errors()),
                _request_id(request),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return JSONResponse(
            status_code=500,
            content=error_response(
                ErrorCodes.INTERNAL_ERROR,
                "An internal error occurred",
                _request_id(request),
            ).model_dump(mode="json"),
        )
