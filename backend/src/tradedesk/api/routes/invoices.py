"""
Invoice endpoints.

Thin HTTP layer over InvoiceService: decode the body, call the handler,
send back its status code and body unchanged.
"""

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from tradedesk.api.dependencies import get_invoice_service
from tradedesk.api.schemas import (
    ERROR_RESPONSES,
    InvoiceCreatedResponse,
    InvoiceFetchedResponse,
    SuccessResponse,
)
from tradedesk.domain.errors import ValidationError
from tradedesk.domain.validation import parse_invoice_id
from tradedesk.services.invoices import HandlerResponse, InvoiceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoice", tags=["invoices"])


def _reject_constant(token: str) -> Any:
    # NaN and Infinity are not JSON
    raise ValueError(f"Invalid JSON constant: {token}")


async def read_json_body(request: Request) -> Any:
    """
    Decode the request body as JSON.

    An absent body decodes to an empty payload so the validator reports it
    as empty rather than malformed. The NaN and Infinity extensions are
    rejected as malformed.
    """
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        return json.loads(raw, parse_constant=_reject_constant)
    except ValueError:
        logger.info("Rejected request with malformed JSON body")
        raise ValidationError("Invalid request syntax.", label="Bad Request") from None


def to_json_response(response: HandlerResponse) -> JSONResponse:
    return JSONResponse(content=response.body, status_code=response.status_code)


@router.post(
    "/add",
    status_code=201,
    response_model=InvoiceCreatedResponse,
    responses=ERROR_RESPONSES,
)
async def add_invoice(
    request: Request,
    service: InvoiceService = Depends(get_invoice_service),
) -> JSONResponse:
    """
    Create an invoice together with its product lines.

    The client, the enterprise and every product must already exist, and
    a product may appear only once in the products list.
    """
    payload = await read_json_body(request)
    return to_json_response(await service.handle_create_invoice(payload))


@router.get(
    "/get/{invoice_id}",
    response_model=InvoiceFetchedResponse,
    responses=ERROR_RESPONSES,
)
async def get_invoice(
    invoice_id: str,
    service: InvoiceService = Depends(get_invoice_service),
) -> JSONResponse:
    """Fetch an invoice with its lines and the products they reference."""
    return to_json_response(await service.handle_get_invoice(invoice_id))


@router.put(
    "/update/{invoice_id}",
    response_model=SuccessResponse,
    responses=ERROR_RESPONSES,
)
async def update_invoice(
    invoice_id: str,
    request: Request,
    service: InvoiceService = Depends(get_invoice_service),
) -> JSONResponse:
    """
    Replace an invoice's header and reconcile its product lines.

    Lines missing from the submission are deleted, lines already present
    get the submitted quantity, new products are added.
    """
    # Path parameter errors take precedence over body errors
    parse_invoice_id(invoice_id)
    payload = await read_json_body(request)
    return to_json_response(await service.handle_update_invoice(invoice_id, payload))


@router.delete(
    "/delete/{invoice_id}",
    response_model=SuccessResponse,
    responses=ERROR_RESPONSES,
)
async def delete_invoice(
    invoice_id: str,
    service: InvoiceService = Depends(get_invoice_service),
) -> JSONResponse:
    """Delete an invoice and all of its lines."""
    return to_json_response(await service.handle_delete_invoice(invoice_id))


@router.get("/get", include_in_schema=False)
@router.put("/update", include_in_schema=False)
@router.delete("/delete", include_in_schema=False)
async def missing_invoice_id() -> JSONResponse:
    """Requests that omit the invoiceId path parameter."""
    raise ValidationError("invoiceId parameter is required.", label="Bad Request")
