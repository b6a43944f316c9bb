"""
Pydantic schemas documenting the API contract.

Request payloads are validated by tradedesk.domain.validation so that
error messages follow the invoice rules exactly; these models describe
the response shapes for the OpenAPI document.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialising field names as camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Response Schemas
# =============================================================================

class SuccessResponse(CamelModel):
    """Standard success response."""
    status_code: int
    success: str
    message: str


class InvoiceCreatedResponse(SuccessResponse):
    """Success response for a created invoice."""
    invoice_id: int


class InvoiceFetchedResponse(SuccessResponse):
    """Success response carrying an invoice with its lines."""
    invoice: dict[str, Any]


class ErrorResponse(CamelModel):
    """Standard error response."""
    status_code: int
    error: str
    message: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    version: str
    database: str = "connected"


ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "Invalid request or payload"},
    404: {"model": ErrorResponse, "description": "Referenced record or invoice not found"},
    500: {"model": ErrorResponse, "description": "Unexpected storage failure"},
}
