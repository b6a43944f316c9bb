"""
Invoice request handlers.

Coordinates the full pipeline for one request:
1. Path parameter and payload validation (pure)
2. Referential checks against the store (client, enterprise, products)
3. Invoice existence (update only, checked after every other check)
4. Reconciliation inside one store transaction

Every outcome, success or failure, is turned into a HandlerResponse here;
no exception escapes a handler.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from tradedesk.domain.errors import InvoiceError, NotFoundError, PersistenceError, ValidationError
from tradedesk.domain.models import ValidatedInvoice
from tradedesk.domain.validation import parse_invoice_id, validate_invoice_payload
from tradedesk.infrastructure.store import InvoiceStore

from .reconciler import LineReconciler

logger = logging.getLogger(__name__)


@dataclass
class HandlerResponse:
    """Status code plus the JSON body sent back to the caller."""
    status_code: int
    body: dict[str, Any] = field(default_factory=dict)


def _success(status_code: int, label: str, message: str, **extra: Any) -> HandlerResponse:
    body = {"statusCode": status_code, "success": label, "message": message}
    body.update(extra)
    return HandlerResponse(status_code=status_code, body=body)


def _failure(error: Exception, action: str) -> HandlerResponse:
    """Format any error raised while handling an invoice request."""
    if isinstance(error, PersistenceError):
        logger.error(f"Store failure while {action} invoice: {error.message}")
        message = f"Error {action} invoice: {error.message}"
        return HandlerResponse(
            status_code=PersistenceError.status_code,
            body={
                "statusCode": PersistenceError.status_code,
                "error": PersistenceError.label,
                "message": message,
            },
        )
    if isinstance(error, InvoiceError):
        logger.info(f"Invoice request rejected ({error.status_code}): {error.message}")
        return HandlerResponse(status_code=error.status_code, body=error.to_body())

    logger.exception(f"Unexpected error while {action} invoice: {error}")
    return HandlerResponse(
        status_code=500,
        body={
            "statusCode": 500,
            "error": "Internal Server Error",
            "message": f"Error {action} invoice: {error}",
        },
    )


class InvoiceService:
    """
    Request-boundary entry points for invoices.

    Example:
        service = InvoiceService(SqlAlchemyInvoiceStore(session))
        response = await service.handle_create_invoice(payload)
        return JSONResponse(response.body, status_code=response.status_code)
    """

    def __init__(self, store: InvoiceStore) -> None:
        self.store = store
        self.reconciler = LineReconciler(store)

    async def check_references(self, validated: ValidatedInvoice) -> None:
        """
        Confirm every foreign reference of a validated invoice.

        Order is fixed: client, enterprise, duplicate products, product
        existence. The first failure wins.

        Raises:
            NotFoundError: a referenced client, enterprise or product is absent
            ValidationError: the line set repeats a product
        """
        header = validated.header

        if await self.store.find_client(header.client_id) is None:
            raise NotFoundError("Specified client does not exist.")

        if await self.store.find_enterprise(header.enterprise_id) is None:
            raise NotFoundError("Specified enterprise does not exist.")

        if validated.has_duplicate_products:
            raise ValidationError(
                "Products array should not contain duplicated products, "
                "each product in the products array should have a unique productId."
            )

        unique_ids = set(validated.product_ids)
        found = await self.store.find_existing_product_ids(unique_ids)
        missing = unique_ids - found
        if missing:
            logger.info(f"Unknown product ids on invoice request: {sorted(missing)}")
            raise NotFoundError("A specified product in products array does not exist.")

    async def handle_create_invoice(self, payload: Any) -> HandlerResponse:
        """Validate and insert a new invoice with its lines."""
        try:
            validated = validate_invoice_payload(payload)
            await self.check_references(validated)

            async with self.store.transaction():
                invoice_id = await self.reconciler.create(validated)
        except Exception as e:
            return _failure(e, "creating")

        return _success(201, "Created", "Invoice created successfully.", invoiceId=invoice_id)

    async def handle_update_invoice(self, invoice_id: str | None, payload: Any) -> HandlerResponse:
        """
        Validate a full invoice payload and reconcile it onto an existing invoice.

        Existence of the invoice itself is verified last, after every
        payload and referential check has passed.
        """
        try:
            target_id = parse_invoice_id(invoice_id)
            validated = validate_invoice_payload(payload)
            await self.check_references(validated)

            if await self.store.find_invoice(target_id) is None:
                raise NotFoundError("Invoice not found.")

            async with self.store.transaction():
                await self.reconciler.update(target_id, validated)
        except Exception as e:
            return _failure(e, "updating")

        return _success(200, "OK", "Invoice updated successfully.")

    async def handle_get_invoice(self, invoice_id: str | None) -> HandlerResponse:
        """Fetch an invoice with its lines and their products."""
        try:
            target_id = parse_invoice_id(invoice_id)
            invoice = await self.store.get_invoice_with_lines(target_id)
            if invoice is None:
                raise NotFoundError("Invoice not found.")
        except Exception as e:
            return _failure(e, "fetching")

        return _success(200, "OK", "Invoice fetched successfully.", invoice=invoice)

    async def handle_delete_invoice(self, invoice_id: str | None) -> HandlerResponse:
        """Delete an invoice; its lines are removed with it."""
        try:
            target_id = parse_invoice_id(invoice_id)
            if await self.store.find_invoice(target_id) is None:
                raise NotFoundError("Invoice not found.")

            async with self.store.transaction():
                await self.store.delete_invoice(target_id)
        except Exception as e:
            return _failure(e, "deleting")

        logger.info(f"Invoice {target_id} deleted")
        return _success(200, "OK", "Invoice deleted successfully.")
