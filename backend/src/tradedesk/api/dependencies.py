"""
FastAPI dependencies.

The Database handle lives on app.state and is created by the application
factory; each request gets its own session and store.
"""

from typing import AsyncGenerator

from fastapi import Depends, Request

from tradedesk.infrastructure.database import Database
from tradedesk.infrastructure.repository import SqlAlchemyInvoiceStore
from tradedesk.services.invoices import InvoiceService


def get_database(request: Request) -> Database:
    """Return the Database handle owned by the running application."""
    return request.app.state.database


async def get_invoice_service(
    database: Database = Depends(get_database),
) -> AsyncGenerator[InvoiceService, None]:
    """Yield an InvoiceService bound to a fresh session for this request."""
    async with database.session() as session:
        yield InvoiceService(SqlAlchemyInvoiceStore(session))
