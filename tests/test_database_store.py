"""
Integration tests for the SQLAlchemy invoice store on SQLite.

Each test opens fresh sessions the way requests do, so what is asserted
is what was committed.
"""

import logging
from datetime import datetime, timezone

import pytest
from sqlalchemy import text

from tradedesk.domain.errors import PersistenceError
from tradedesk.domain.models import InvoiceHeader, InvoiceLine
from tradedesk.infrastructure.repository import SqlAlchemyInvoiceStore
from tradedesk.infrastructure.store import InvoiceStore
from tradedesk.services.invoices import InvoiceService

HEADER = InvoiceHeader(
    invoice_date=datetime(2024, 1, 15, 10, tzinfo=timezone.utc),
    invoice_due_date=datetime(2024, 2, 15, 10, tzinfo=timezone.utc),
    invoice_amount=300.0,
    client_id=1,
    enterprise_id=1,
)


async def create_invoice(database, lines: dict[int, float]) -> int:
    async with database.session() as session:
        store = SqlAlchemyInvoiceStore(session)
        async with store.transaction():
            return await store.create_invoice_with_lines(
                HEADER,
                [InvoiceLine(product_id=pid, quantity=qty) for pid, qty in lines.items()],
            )


async def persisted_lines(database, invoice_id: int) -> dict[int, float] | None:
    async with database.session() as session:
        record = await SqlAlchemyInvoiceStore(session).get_invoice_with_lines(invoice_id)
    if record is None:
        return None
    return {line["productId"]: line["productQuantity"] for line in record["invoicedetails"]}


class TestLookups:

    async def test_reference_lookups(self, database):
        async with database.session() as session:
            store = SqlAlchemyInvoiceStore(session)
            assert (await store.find_client(1))["clientFirstName"] == "Ada"
            assert (await store.find_enterprise(1))["enterpriseName"] == "Acme"
            assert (await store.find_product(2))["productName"] == "P2"
            assert await store.find_client(42) is None
            assert await store.find_product(42) is None

    def test_batched_product_lookup_is_part_of_store_contract(self):
        assert "find_existing_product_ids" in InvoiceStore.__abstractmethods__

    async def test_batched_product_lookup(self, database):
        async with database.session() as session:
            store = SqlAlchemyInvoiceStore(session)
            assert await store.find_existing_product_ids({1, 3, 99}) == {1, 3}
            assert await store.find_existing_product_ids([]) == set()


class TestInvoiceWrites:

    async def test_create_and_fetch(self, database):
        invoice_id = await create_invoice(database, {1: 2, 2: 3})

        async with database.session() as session:
            record = await SqlAlchemyInvoiceStore(session).get_invoice_with_lines(invoice_id)

        assert record["invoiceDate"] == "2024-01-15T10:00:00.000Z"
        assert record["invoiceAmount"] == 300.0
        assert {line["productId"]: line["productQuantity"] for line in record["invoicedetails"]} == {
            1: 2,
            2: 3,
        }
        assert {line["product"]["productName"] for line in record["invoicedetails"]} == {"P1", "P2"}

    async def test_line_primitives(self, database):
        invoice_id = await create_invoice(database, {1: 2, 2: 3, 3: 4})

        async with database.session() as session:
            store = SqlAlchemyInvoiceStore(session)
            async with store.transaction():
                deleted = await store.delete_invoice_lines_not_in(invoice_id, {2})
                await store.update_invoice_line_quantity(invoice_id, 2, 8)
                await store.create_invoice_line(invoice_id, 1, 1)
                line = await store.find_invoice_line(invoice_id, 2)

        assert deleted == 2
        assert line == InvoiceLine(product_id=2, quantity=8)
        assert await persisted_lines(database, invoice_id) == {1: 1, 2: 8}

    async def test_delete_cascades_to_lines(self, database):
        invoice_id = await create_invoice(database, {1: 2})

        async with database.session() as session:
            store = SqlAlchemyInvoiceStore(session)
            async with store.transaction():
                await store.delete_invoice(invoice_id)

        async with database.session() as session:
            store = SqlAlchemyInvoiceStore(session)
            assert await store.find_invoice(invoice_id) is None
            assert await store.find_invoice_line(invoice_id, 1) is None

    async def test_duplicate_line_insert_is_persistence_error(self, database):
        invoice_id = await create_invoice(database, {1: 2})

        async with database.session() as session:
            store = SqlAlchemyInvoiceStore(session)
            with pytest.raises(PersistenceError):
                async with store.transaction():
                    await store.create_invoice_line(invoice_id, 1, 5)

        assert await persisted_lines(database, invoice_id) == {1: 2}


class TestReconciliationOnSqlite:

    async def test_update_reconciles_and_commits(self, database, make_payload):
        invoice_id = await create_invoice(database, {1: 2, 2: 3})

        async with database.session() as session:
            response = await InvoiceService(SqlAlchemyInvoiceStore(session)).handle_update_invoice(
                str(invoice_id),
                make_payload(products=[
                    {"productId": 2, "productQuantity": 5},
                    {"productId": 3, "productQuantity": 1},
                ]),
            )

        assert response.status_code == 200
        assert await persisted_lines(database, invoice_id) == {2: 5, 3: 1}

    async def test_repeated_update_leaves_single_line(self, database, make_payload):
        invoice_id = await create_invoice(database, {1: 2, 2: 3})
        payload = make_payload(products=[{"productId": 1, "productQuantity": 5}])

        for _ in range(2):
            async with database.session() as session:
                service = InvoiceService(SqlAlchemyInvoiceStore(session))
                response = await service.handle_update_invoice(str(invoice_id), payload)
                assert response.status_code == 200

        assert await persisted_lines(database, invoice_id) == {1: 5}

    async def test_failed_update_rolls_back_header_and_lines(self, database, make_payload):
        invoice_id = await create_invoice(database, {1: 2, 2: 3})

        async with database.session() as session:
            store = SqlAlchemyInvoiceStore(session)

            async def refuse(*args, **kwargs):
                raise PersistenceError("disk full")

            store.create_invoice_line = refuse
            response = await InvoiceService(store).handle_update_invoice(
                str(invoice_id),
                make_payload(invoiceAmount=1.0, products=[
                    {"productId": 2, "productQuantity": 9},
                    {"productId": 3, "productQuantity": 1},
                ]),
            )

        assert response.status_code == 500
        assert response.body["message"] == "Error updating invoice: disk full"
        assert await persisted_lines(database, invoice_id) == {1: 2, 2: 3}
        async with database.session() as session:
            header = await SqlAlchemyInvoiceStore(session).find_invoice(invoice_id)
        assert header["invoiceAmount"] == 300.0

    async def test_store_failure_is_logged_once(self, database, make_payload, caplog):
        async with database.session() as session:
            await session.execute(text("DROP TABLE invoice_details"))
            await session.execute(text("DROP TABLE invoices"))
            await session.execute(text("DROP TABLE clients"))
            await session.commit()

        with caplog.at_level(logging.DEBUG, logger="tradedesk"):
            async with database.session() as session:
                response = await InvoiceService(SqlAlchemyInvoiceStore(session)).handle_create_invoice(
                    make_payload()
                )

        assert response.status_code == 500
        assert response.body["message"].startswith("Error creating invoice: ")
        errors = [r for r in caplog.records if r.levelno >= logging.ERROR]
        assert len(errors) == 1
        assert "Store failure while creating invoice" in errors[0].getMessage()
