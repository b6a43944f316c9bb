"""
Persistence contract consumed by the invoice pipeline.

The validator's referential checks and the reconciler's writes go through
this interface only, so the pipeline can run against SQLAlchemy in
production and an in-memory store in tests.

Design Decisions:
- Abstract interface for multiple backends
- Every operation is a coroutine; each call is one round-trip
- Records come back as plain dicts (camelCase keys, JSON-ready)
- transaction() groups the writes of one request into a unit of work
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Any, Iterable

from tradedesk.domain.models import InvoiceHeader, InvoiceLine

Record = dict[str, Any]


class InvoiceStore(ABC):
    """Abstract interface for invoice persistence backends."""

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[None]:
        """
        Unit of work for one request.

        Writes issued inside the block are committed together on normal
        exit and rolled back if the block raises.
        """

    # -- referential lookups -------------------------------------------------

    @abstractmethod
    async def find_client(self, client_id: int) -> Record | None:
        """Look up a client by primary key."""

    @abstractmethod
    async def find_enterprise(self, enterprise_id: int) -> Record | None:
        """Look up an enterprise by primary key."""

    @abstractmethod
    async def find_product(self, product_id: int) -> Record | None:
        """Look up a product by primary key."""

    @abstractmethod
    async def find_existing_product_ids(self, product_ids: Iterable[int]) -> set[int]:
        """Return the subset of product_ids that name existing products, in one query."""

    # -- invoice header ------------------------------------------------------

    @abstractmethod
    async def find_invoice(self, invoice_id: int) -> Record | None:
        """Look up an invoice header by primary key."""

    @abstractmethod
    async def get_invoice_with_lines(self, invoice_id: int) -> Record | None:
        """Fetch an invoice header together with its lines and their products."""

    @abstractmethod
    async def create_invoice_with_lines(
        self,
        header: InvoiceHeader,
        lines: Iterable[InvoiceLine],
    ) -> int:
        """Insert a header and all of its lines in one write. Returns the new id."""

    @abstractmethod
    async def update_invoice_header(self, invoice_id: int, header: InvoiceHeader) -> None:
        """Overwrite the header fields of an existing invoice."""

    @abstractmethod
    async def delete_invoice(self, invoice_id: int) -> None:
        """Delete an invoice; its lines go with it."""

    # -- invoice lines -------------------------------------------------------

    @abstractmethod
    async def delete_invoice_lines_not_in(
        self,
        invoice_id: int,
        keep_product_ids: Iterable[int],
    ) -> int:
        """Bulk-delete the invoice's lines whose product is not kept. Returns rows deleted."""

    @abstractmethod
    async def find_invoice_line(self, invoice_id: int, product_id: int) -> InvoiceLine | None:
        """Look up one line by its (invoice, product) key."""

    @abstractmethod
    async def update_invoice_line_quantity(
        self,
        invoice_id: int,
        product_id: int,
        quantity: float,
    ) -> None:
        """Set the quantity of an existing line."""

    @abstractmethod
    async def create_invoice_line(
        self,
        invoice_id: int,
        product_id: int,
        quantity: float,
    ) -> None:
        """Insert a new line on an existing invoice."""
