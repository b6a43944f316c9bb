"""
Typed exceptions for the invoice pipeline.

Every error carries the HTTP status it maps to and the short label that
goes into the response body next to the human-readable message, so the
request boundary can format a response without parsing message text.

    InvoiceError (base)
    |
    +-- ValidationError      400  malformed, missing, wrong-typed or duplicate input
    +-- NotFoundError        404  referenced client/enterprise/product/invoice absent
    +-- PersistenceError     500  unexpected failure from the storage layer
"""


class InvoiceError(Exception):
    """Base class for all errors surfaced by the invoice pipeline."""

    status_code: int = 500
    label: str = "Internal Server Error"

    def __init__(self, message: str, label: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if label is not None:
            self.label = label

    def to_body(self) -> dict:
        """Structured response body for this error."""
        return {
            "statusCode": self.status_code,
            "error": self.label,
            "message": self.message,
        }


class ValidationError(InvoiceError):
    """Payload failed a presence, type, format or uniqueness check."""

    status_code = 400
    label = "Bad request"


class NotFoundError(InvoiceError):
    """A referenced record does not exist."""

    status_code = 404
    label = "Not found"


class PersistenceError(InvoiceError):
    """The store raised while reading or writing."""

    status_code = 500
    label = "Internal Server Error"

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause
