"""
FastAPI application entry point.

This is the main application that ties together all components:
- API routes for invoices and health checks
- Database lifecycle management
- Error handling and logging
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tradedesk import __version__
from tradedesk.api.routes import health, invoices
from tradedesk.config import Settings, get_settings
from tradedesk.domain.errors import InvoiceError
from tradedesk.infrastructure.database import Database

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown tasks:
    - Initialize database tables
    - Dispose of the engine on shutdown
    """
    database: Database = app.state.database

    logger.info(f"Starting Tradedesk v{__version__}")

    await database.create_all()

    yield  # Application runs here

    # Shutdown
    logger.info("Shutting down Tradedesk")
    await database.dispose()


def create_app(
    settings: Settings | None = None,
    database: Database | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Settings to use; loaded from the environment if None
        database: Database handle to own; built from settings if None

    Returns:
        Configured FastAPI instance ready to serve requests.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title="Tradedesk API",
        description=(
            "Invoice records backend.\n\n"
            "Validates invoice payloads against clients, enterprises and "
            "products, and reconciles invoice product lines on update."
        ),
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    app.state.database = database or Database.from_settings(settings)

    # Register routers
    app.include_router(health.router)
    app.include_router(invoices.router, prefix="/api/v1")

    @app.exception_handler(InvoiceError)
    async def invoice_error_handler(request: Request, exc: InvoiceError):
        """Errors raised before a handler could format its own response."""
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Catch-all exception handler for unhandled errors."""
        logger.exception(f"Unhandled error: {exc}")

        # Don't expose internal errors in production
        if settings.debug:
            detail = str(exc)
        else:
            detail = "An internal error occurred"

        return JSONResponse(
            status_code=500,
            content={
                "statusCode": 500,
                "error": "Internal Server Error",
                "message": detail,
            },
        )

    return app


# Development server entry point
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tradedesk.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8080,
        reload=True,
    )
