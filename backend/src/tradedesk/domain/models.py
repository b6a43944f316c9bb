"""
Domain models for invoice records.

These are the normalized, typed shapes produced by validation and consumed
by the reconciler. They carry no persistence concerns.

Design Decisions:
- Frozen dataclasses so a validated request cannot drift between passes
- Line sets are tuples to keep submission order
- Field schemas are data, consumed by one generic validation routine
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable


class FieldKind(Enum):
    """Runtime kind a JSON payload value must have."""
    STRING = "string"
    NUMBER = "number"
    OBJECT = "object"

    def matches(self, value: Any) -> bool:
        """Check a decoded JSON value against this kind."""
        if self is FieldKind.STRING:
            return isinstance(value, str)
        if self is FieldKind.NUMBER:
            # bool is an int subclass but JSON true/false are not numbers
            return isinstance(value, (int, float)) and not isinstance(value, bool)
        return value is None or isinstance(value, (dict, list))


@dataclass(frozen=True)
class FieldSpec:
    """
    Declarative rule for one required payload field.

    Attributes:
        name: Key in the JSON payload
        kind: Expected runtime kind
        allow_empty_string: Exempt the field from the empty-value and type
            tests when it equals ""; a later structural pass handles it
        format_check: Optional predicate applied in the format pass
    """
    name: str
    kind: FieldKind
    allow_empty_string: bool = False
    format_check: Callable[[Any], bool] | None = None


@dataclass(frozen=True)
class InvoiceLine:
    """One (product, quantity) pair on an invoice."""
    product_id: int
    quantity: float


@dataclass(frozen=True)
class InvoiceHeader:
    """Header fields of an invoice, as written to the store."""
    invoice_date: datetime
    invoice_due_date: datetime
    invoice_amount: float
    client_id: int
    enterprise_id: int


@dataclass(frozen=True)
class ValidatedInvoice:
    """
    Invoice request that passed every payload-only validation pass.

    Referential checks against the store still have to run before the
    request can be handed to the reconciler.
    """
    header: InvoiceHeader
    lines: tuple[InvoiceLine, ...] = field(default_factory=tuple)

    @property
    def product_ids(self) -> list[int]:
        """Product references in submission order, duplicates kept."""
        return [line.product_id for line in self.lines]

    @property
    def has_duplicate_products(self) -> bool:
        ids = self.product_ids
        return len(ids) != len(set(ids))


@dataclass(frozen=True)
class ReconcileSummary:
    """Counts of line-level writes applied by one reconciliation."""
    deleted: int = 0
    updated: int = 0
    inserted: int = 0
