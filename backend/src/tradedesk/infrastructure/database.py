"""
Database configuration and session management with SQLAlchemy.

Uses async SQLAlchemy for non-blocking database operations.

Design Decisions:
- AsyncSession for non-blocking operations
- Connection pooling with sensible defaults (skipped for SQLite)
- One Database handle owned by the application, no module-level engine
- Session-per-request pattern
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncGenerator

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from tradedesk.config import Settings
from tradedesk.domain.validation import format_timestamp

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class Client(Base):
    """A customer that invoices are billed to."""
    __tablename__ = "clients"

    client_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    first_name: Mapped[str] = mapped_column(String(128))
    last_name: Mapped[str] = mapped_column(String(128))
    address: Mapped[str | None] = mapped_column(String(256))
    phone_number: Mapped[str | None] = mapped_column(String(32))
    email: Mapped[str | None] = mapped_column(String(256), unique=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "clientId": self.client_id,
            "clientFirstName": self.first_name,
            "clientLastName": self.last_name,
            "clientAddress": self.address,
            "clientPhoneNumber": self.phone_number,
            "clientEmail": self.email,
        }


class Enterprise(Base):
    """The issuing business an invoice is drawn on."""
    __tablename__ = "enterprises"

    enterprise_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(256))
    capital: Mapped[float | None] = mapped_column(Float)
    workforce_count: Mapped[int | None] = mapped_column(Integer)
    address: Mapped[str | None] = mapped_column(String(256))
    phone_number: Mapped[str | None] = mapped_column(String(32))
    email: Mapped[str | None] = mapped_column(String(256))
    headquarters_location: Mapped[str | None] = mapped_column(String(256))
    creation_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    identifier_number: Mapped[str | None] = mapped_column(String(64), unique=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "enterpriseId": self.enterprise_id,
            "enterpriseName": self.name,
            "enterpriseCapital": self.capital,
            "enterpriseWorkforceCount": self.workforce_count,
            "enterpriseAddress": self.address,
            "enterprisePhoneNumber": self.phone_number,
            "enterpriseEmail": self.email,
            "enterpriseHeadquartersLocation": self.headquarters_location,
            "enterpriseCreationDate": (
                format_timestamp(self.creation_date) if self.creation_date else None
            ),
            "enterpriseIdentifierNumber": self.identifier_number,
        }


class Product(Base):
    """A product that can appear on invoice lines."""
    __tablename__ = "products"

    product_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(256))
    buying_price: Mapped[float | None] = mapped_column(Float)
    selling_price: Mapped[float | None] = mapped_column(Float)
    dimensions: Mapped[str | None] = mapped_column(String(128))
    weight: Mapped[float | None] = mapped_column(Float)
    profit_margin_rate: Mapped[float | None] = mapped_column(Float)

    def to_dict(self) -> dict[str, Any]:
        return {
            "productId": self.product_id,
            "productName": self.name,
            "productBuyingPrice": self.buying_price,
            "productSellingPrice": self.selling_price,
            "productDimensions": self.dimensions,
            "productWeight": self.weight,
            "productProfitMarginRate": self.profit_margin_rate,
        }


class Invoice(Base):
    """
    Invoice header.

    Owns its line set: deleting a header removes every InvoiceDetail row
    pointing at it.
    """
    __tablename__ = "invoices"

    invoice_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    invoice_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    invoice_due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    invoice_amount: Mapped[float] = mapped_column(Float)
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.client_id"), index=True)
    enterprise_id: Mapped[int] = mapped_column(ForeignKey("enterprises.enterprise_id"), index=True)

    details: Mapped[list["InvoiceDetail"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "invoiceId": self.invoice_id,
            "invoiceDate": format_timestamp(self.invoice_date),
            "invoiceDueDate": format_timestamp(self.invoice_due_date),
            "invoiceAmount": self.invoice_amount,
            "clientId": self.client_id,
            "enterpriseId": self.enterprise_id,
        }


class InvoiceDetail(Base):
    """One product line on an invoice, keyed by (invoice, product)."""
    __tablename__ = "invoice_details"

    invoice_id: Mapped[int] = mapped_column(
        ForeignKey("invoices.invoice_id", ondelete="CASCADE"),
        primary_key=True,
    )
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.product_id"),
        primary_key=True,
    )
    product_quantity: Mapped[float] = mapped_column(Float)

    invoice: Mapped[Invoice] = relationship(back_populates="details")
    product: Mapped[Product] = relationship()

    def to_dict(self) -> dict[str, Any]:
        return {
            "productId": self.product_id,
            "productQuantity": self.product_quantity,
            "product": self.product.to_dict() if self.product else None,
        }


class Database:
    """
    Owner of the async engine and session factory.

    Created once by the application factory and handed to whatever needs
    a session. Nothing in this module caches an engine globally.

    Usage:
        database = Database.from_settings(get_settings())
        async with database.session() as session:
            ...
        await database.dispose()
    """

    def __init__(
        self,
        url: str,
        echo: bool = False,
        pool_size: int = 5,
        max_overflow: int = 10,
    ) -> None:
        engine_kwargs: dict[str, Any] = {"echo": echo}
        if not url.startswith("sqlite"):
            engine_kwargs.update(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=30,
            )
        self.url = url
        self.engine = create_async_engine(url, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.info(f"Database engine created for {self.engine.url.render_as_string(hide_password=True)}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        """Build a handle from application settings."""
        return cls(
            settings.database_url,
            echo=settings.debug,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get a database session for a request.

        Usage:
            async with database.session() as session:
                session.add(record)
                await session.commit()
        """
        session = self.session_factory()
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def create_all(self) -> None:
        """
        Initialize database tables.

        Call this on application startup to ensure tables exist.
        In production, use Alembic migrations instead.
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables initialized")

    async def ping(self) -> bool:
        """Round-trip a trivial query; False if the database is unreachable."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as e:
            logger.warning(f"Database ping failed: {e}")
            return False
        return True

    async def dispose(self) -> None:
        """Close database connections on shutdown."""
        await self.engine.dispose()
        logger.info("Database connections closed")
