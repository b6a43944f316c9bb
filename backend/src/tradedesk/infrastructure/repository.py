"""
SQLAlchemy implementation of the invoice store.

Each instance wraps one AsyncSession, so one store serves one request.
Line-level writes are issued as Core statements to avoid lazy loads on
async relationships.
"""

import functools
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Iterable

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tradedesk.domain.errors import PersistenceError
from tradedesk.domain.models import InvoiceHeader, InvoiceLine

from .database import Client, Enterprise, Invoice, InvoiceDetail, Product
from .store import InvoiceStore, Record

logger = logging.getLogger(__name__)


def _translate_errors(method):
    """Re-raise SQLAlchemy failures as PersistenceError, keeping the driver text."""

    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        try:
            return await method(self, *args, **kwargs)
        except SQLAlchemyError as e:
            logger.debug(f"{method.__name__} failed: {e}")
            raise PersistenceError(str(e), cause=e) from e

    return wrapper


class SqlAlchemyInvoiceStore(InvoiceStore):
    """Invoice store backed by an async SQLAlchemy session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[None, None]:
        # The session has usually autobegun during the read-only checks;
        # commit or roll back whatever is open at the end of the block.
        try:
            yield
        except Exception:
            await self.session.rollback()
            raise
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError(str(e), cause=e) from e

    @_translate_errors
    async def find_client(self, client_id: int) -> Record | None:
        client = await self.session.get(Client, client_id)
        return client.to_dict() if client else None

    @_translate_errors
    async def find_enterprise(self, enterprise_id: int) -> Record | None:
        enterprise = await self.session.get(Enterprise, enterprise_id)
        return enterprise.to_dict() if enterprise else None

    @_translate_errors
    async def find_product(self, product_id: int) -> Record | None:
        product = await self.session.get(Product, product_id)
        return product.to_dict() if product else None

    @_translate_errors
    async def find_existing_product_ids(self, product_ids: Iterable[int]) -> set[int]:
        ids = list(product_ids)
        if not ids:
            return set()
        result = await self.session.execute(
            select(Product.product_id).where(Product.product_id.in_(ids))
        )
        return set(result.scalars().all())

    @_translate_errors
    async def find_invoice(self, invoice_id: int) -> Record | None:
        invoice = await self.session.get(Invoice, invoice_id)
        return invoice.to_dict() if invoice else None

    @_translate_errors
    async def get_invoice_with_lines(self, invoice_id: int) -> Record | None:
        stmt = (
            select(Invoice)
            .where(Invoice.invoice_id == invoice_id)
            .options(selectinload(Invoice.details).selectinload(InvoiceDetail.product))
            .execution_options(populate_existing=True)
        )
        invoice = (await self.session.execute(stmt)).scalar_one_or_none()
        if invoice is None:
            return None
        record = invoice.to_dict()
        record["invoicedetails"] = [detail.to_dict() for detail in invoice.details]
        return record

    @_translate_errors
    async def create_invoice_with_lines(
        self,
        header: InvoiceHeader,
        lines: Iterable[InvoiceLine],
    ) -> int:
        invoice = Invoice(
            invoice_date=header.invoice_date,
            invoice_due_date=header.invoice_due_date,
            invoice_amount=header.invoice_amount,
            client_id=header.client_id,
            enterprise_id=header.enterprise_id,
            details=[
                InvoiceDetail(product_id=line.product_id, product_quantity=line.quantity)
                for line in lines
            ],
        )
        self.session.add(invoice)
        await self.session.flush()
        return invoice.invoice_id

    @_translate_errors
    async def update_invoice_header(self, invoice_id: int, header: InvoiceHeader) -> None:
        await self.session.execute(
            update(Invoice)
            .where(Invoice.invoice_id == invoice_id)
            .values(
                invoice_date=header.invoice_date,
                invoice_due_date=header.invoice_due_date,
                invoice_amount=header.invoice_amount,
                client_id=header.client_id,
                enterprise_id=header.enterprise_id,
            )
            .execution_options(synchronize_session=False)
        )

    @_translate_errors
    async def delete_invoice(self, invoice_id: int) -> None:
        # Lines are removed explicitly as well as by ON DELETE CASCADE,
        # since SQLite only enforces foreign keys when the pragma is on.
        await self.session.execute(
            delete(InvoiceDetail)
            .where(InvoiceDetail.invoice_id == invoice_id)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(
            delete(Invoice)
            .where(Invoice.invoice_id == invoice_id)
            .execution_options(synchronize_session=False)
        )

    @_translate_errors
    async def delete_invoice_lines_not_in(
        self,
        invoice_id: int,
        keep_product_ids: Iterable[int],
    ) -> int:
        result = await self.session.execute(
            delete(InvoiceDetail)
            .where(
                InvoiceDetail.invoice_id == invoice_id,
                InvoiceDetail.product_id.not_in(list(keep_product_ids)),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    @_translate_errors
    async def find_invoice_line(self, invoice_id: int, product_id: int) -> InvoiceLine | None:
        result = await self.session.execute(
            select(InvoiceDetail.product_id, InvoiceDetail.product_quantity).where(
                InvoiceDetail.invoice_id == invoice_id,
                InvoiceDetail.product_id == product_id,
            )
        )
        row = result.one_or_none()
        if row is None:
            return None
        return InvoiceLine(product_id=row.product_id, quantity=row.product_quantity)

    @_translate_errors
    async def update_invoice_line_quantity(
        self,
        invoice_id: int,
        product_id: int,
        quantity: float,
    ) -> None:
        await self.session.execute(
            update(InvoiceDetail)
            .where(
                InvoiceDetail.invoice_id == invoice_id,
                InvoiceDetail.product_id == product_id,
            )
            .values(product_quantity=quantity)
            .execution_options(synchronize_session=False)
        )

    @_translate_errors
    async def create_invoice_line(
        self,
        invoice_id: int,
        product_id: int,
        quantity: float,
    ) -> None:
        await self.session.execute(
            insert(InvoiceDetail).values(
                invoice_id=invoice_id,
                product_id=product_id,
                product_quantity=quantity,
            )
        )
