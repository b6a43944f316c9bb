"""
Shared fixtures for the invoice pipeline tests.

Provides:
- InMemoryInvoiceStore: dict-backed store recording every call
- Seeded store/service fixtures (clients 1, enterprises 1, products 1-3)
- SQLite-backed Database and FastAPI app for integration tests
"""

import copy
from contextlib import asynccontextmanager
from typing import Any, Iterable

import pytest
from fastapi.testclient import TestClient

from tradedesk.config import Settings
from tradedesk.domain.errors import PersistenceError
from tradedesk.domain.models import InvoiceHeader, InvoiceLine
from tradedesk.domain.validation import format_timestamp
from tradedesk.infrastructure.database import Client, Database, Enterprise, Product
from tradedesk.infrastructure.store import InvoiceStore, Record
from tradedesk.main import create_app
from tradedesk.services.invoices import InvoiceService


class InMemoryInvoiceStore(InvoiceStore):
    """
    Store backed by plain dicts.

    Every call is appended to `calls` as (method, args) so tests can assert
    ordering. `fail_on` names a method that raises PersistenceError.
    """

    def __init__(self) -> None:
        self.clients: dict[int, Record] = {}
        self.enterprises: dict[int, Record] = {}
        self.products: dict[int, Record] = {}
        self.invoices: dict[int, Record] = {}
        self.lines: dict[tuple[int, int], float] = {}
        self.calls: list[tuple[str, tuple]] = []
        self.fail_on: str | None = None
        self.commits = 0
        self.rollbacks = 0
        self._next_invoice_id = 1

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if self.fail_on == name:
            raise PersistenceError(f"{name} exploded")

    def lines_for(self, invoice_id: int) -> dict[int, float]:
        return {pid: qty for (iid, pid), qty in self.lines.items() if iid == invoice_id}

    def called(self, name: str) -> list[tuple]:
        return [args for method, args in self.calls if method == name]

    @asynccontextmanager
    async def transaction(self):
        snapshot = (copy.deepcopy(self.invoices), dict(self.lines))
        try:
            yield
        except Exception:
            self.invoices, self.lines = snapshot
            self.rollbacks += 1
            raise
        self.commits += 1

    async def find_client(self, client_id: int) -> Record | None:
        self._record("find_client", client_id)
        return self.clients.get(client_id)

    async def find_enterprise(self, enterprise_id: int) -> Record | None:
        self._record("find_enterprise", enterprise_id)
        return self.enterprises.get(enterprise_id)

    async def find_product(self, product_id: int) -> Record | None:
        self._record("find_product", product_id)
        return self.products.get(product_id)

    async def find_existing_product_ids(self, product_ids: Iterable[int]) -> set[int]:
        ids = set(product_ids)
        self._record("find_existing_product_ids", ids)
        return {pid for pid in ids if pid in self.products}

    async def find_invoice(self, invoice_id: int) -> Record | None:
        self._record("find_invoice", invoice_id)
        return self.invoices.get(invoice_id)

    async def get_invoice_with_lines(self, invoice_id: int) -> Record | None:
        self._record("get_invoice_with_lines", invoice_id)
        invoice = self.invoices.get(invoice_id)
        if invoice is None:
            return None
        record = dict(invoice)
        record["invoicedetails"] = [
            {"productId": pid, "productQuantity": qty, "product": self.products.get(pid)}
            for pid, qty in self.lines_for(invoice_id).items()
        ]
        return record

    async def create_invoice_with_lines(
        self,
        header: InvoiceHeader,
        lines: Iterable[InvoiceLine],
    ) -> int:
        lines = list(lines)
        self._record("create_invoice_with_lines", header, lines)
        invoice_id = self._next_invoice_id
        self._next_invoice_id += 1
        self.invoices[invoice_id] = _header_record(invoice_id, header)
        for line in lines:
            self.lines[(invoice_id, line.product_id)] = line.quantity
        return invoice_id

    async def update_invoice_header(self, invoice_id: int, header: InvoiceHeader) -> None:
        self._record("update_invoice_header", invoice_id, header)
        self.invoices[invoice_id] = _header_record(invoice_id, header)

    async def delete_invoice(self, invoice_id: int) -> None:
        self._record("delete_invoice", invoice_id)
        self.invoices.pop(invoice_id, None)
        for key in [key for key in self.lines if key[0] == invoice_id]:
            del self.lines[key]

    async def delete_invoice_lines_not_in(
        self,
        invoice_id: int,
        keep_product_ids: Iterable[int],
    ) -> int:
        keep = set(keep_product_ids)
        self._record("delete_invoice_lines_not_in", invoice_id, keep)
        doomed = [key for key in self.lines if key[0] == invoice_id and key[1] not in keep]
        for key in doomed:
            del self.lines[key]
        return len(doomed)

    async def find_invoice_line(self, invoice_id: int, product_id: int) -> InvoiceLine | None:
        self._record("find_invoice_line", invoice_id, product_id)
        quantity = self.lines.get((invoice_id, product_id))
        if quantity is None:
            return None
        return InvoiceLine(product_id=product_id, quantity=quantity)

    async def update_invoice_line_quantity(
        self,
        invoice_id: int,
        product_id: int,
        quantity: float,
    ) -> None:
        self._record("update_invoice_line_quantity", invoice_id, product_id, quantity)
        self.lines[(invoice_id, product_id)] = quantity

    async def create_invoice_line(
        self,
        invoice_id: int,
        product_id: int,
        quantity: float,
    ) -> None:
        self._record("create_invoice_line", invoice_id, product_id, quantity)
        if (invoice_id, product_id) in self.lines:
            raise PersistenceError("Unique constraint failed on (invoice_id, product_id)")
        self.lines[(invoice_id, product_id)] = quantity


def _header_record(invoice_id: int, header: InvoiceHeader) -> Record:
    return {
        "invoiceId": invoice_id,
        "invoiceDate": format_timestamp(header.invoice_date),
        "invoiceDueDate": format_timestamp(header.invoice_due_date),
        "invoiceAmount": header.invoice_amount,
        "clientId": header.client_id,
        "enterpriseId": header.enterprise_id,
    }


def build_payload(**overrides: Any) -> dict[str, Any]:
    """A valid invoice payload referencing the seeded records."""
    payload = {
        "invoiceDate": "2024-01-15T10:00:00.000Z",
        "invoiceDueDate": "2024-02-15T10:00:00.000Z",
        "invoiceAmount": 1250.5,
        "clientId": 1,
        "enterpriseId": 1,
        "products": [
            {"productId": 1, "productQuantity": 2},
            {"productId": 2, "productQuantity": 3},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_payload():
    """Factory for valid invoice payloads; keyword arguments override fields."""
    return build_payload


@pytest.fixture
def store() -> InMemoryInvoiceStore:
    store = InMemoryInvoiceStore()
    store.clients[1] = {"clientId": 1, "clientFirstName": "Ada"}
    store.enterprises[1] = {"enterpriseId": 1, "enterpriseName": "Acme"}
    for product_id in (1, 2, 3):
        store.products[product_id] = {"productId": product_id, "productName": f"P{product_id}"}
    return store


@pytest.fixture
def service(store: InMemoryInvoiceStore) -> InvoiceService:
    return InvoiceService(store)


@pytest.fixture
async def database(tmp_path):
    """SQLite database with tables created and reference rows seeded."""
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'tradedesk.db'}")
    await database.create_all()
    async with database.session() as session:
        session.add(Client(client_id=1, first_name="Ada", last_name="Lovelace"))
        session.add(Enterprise(enterprise_id=1, name="Acme"))
        session.add_all([
            Product(product_id=product_id, name=f"P{product_id}", selling_price=10.0 * product_id)
            for product_id in (1, 2, 3)
        ])
        await session.commit()
    yield database
    await database.dispose()


@pytest.fixture
def client(tmp_path):
    """TestClient over an app backed by a fresh, seeded SQLite file."""
    settings = Settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")
    app = create_app(settings=settings)
    with TestClient(app) as test_client:
        test_client.portal.call(_seed, app.state.database)
        yield test_client


async def _seed(database: Database) -> None:
    async with database.session() as session:
        session.add(Client(client_id=1, first_name="Ada", last_name="Lovelace"))
        session.add(Enterprise(enterprise_id=1, name="Acme"))
        session.add_all([Product(product_id=pid, name=f"P{pid}") for pid in (1, 2, 3)])
        await session.commit()
