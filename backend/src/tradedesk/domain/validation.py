"""
Payload validation rules for invoice requests.

This module contains pure functions: no side effects, no I/O. It turns a
decoded JSON payload into a ValidatedInvoice or raises ValidationError.

Passes run in a fixed order and stop at the first failing pass:
1. Empty body
2. Presence / emptiness / type of the required header fields
3. Structure of the products line list
4. Timestamp format of the two date fields

Referential checks (client, enterprise, products) need the store and run
afterwards in the invoice service.

Design Decisions:
- Required fields are declared once in INVOICE_SCHEMA and checked by one
  generic routine, so other entities can reuse check_required_fields
- The header pass scans every key before reporting, the line pass reports
  the first offending line
"""

import re
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from .errors import ValidationError
from .models import FieldKind, FieldSpec, InvoiceHeader, InvoiceLine, ValidatedInvoice


# Fixed timestamp layout with millisecond precision and a literal Z suffix
TIMESTAMP_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}T[0-9]{2}:[0-9]{2}:[0-9]{2}\.[0-9]{3}Z")
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

PRODUCTS_KEY = "products"
PRODUCT_ID_KEY = "productId"
PRODUCT_QUANTITY_KEY = "productQuantity"


def parse_timestamp(value: str) -> datetime:
    """
    Parse a fixed-format timestamp into an aware UTC datetime.

    Raises:
        ValueError: if the value does not match the layout or is not a real
            calendar instant (e.g. month 13)
    """
    if not TIMESTAMP_PATTERN.fullmatch(value):
        raise ValueError(f"Timestamp does not match fixed format: {value!r}")
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render a datetime in the fixed layout. Naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def is_valid_timestamp(value: Any) -> bool:
    """True if value is a string in the fixed millisecond-precision layout."""
    if not isinstance(value, str):
        return False
    try:
        parse_timestamp(value)
    except ValueError:
        return False
    return True


INVOICE_SCHEMA: tuple[FieldSpec, ...] = (
    FieldSpec("invoiceDate", FieldKind.STRING, format_check=is_valid_timestamp),
    FieldSpec("invoiceDueDate", FieldKind.STRING, format_check=is_valid_timestamp),
    FieldSpec("invoiceAmount", FieldKind.NUMBER),
    FieldSpec("clientId", FieldKind.NUMBER),
    FieldSpec("enterpriseId", FieldKind.NUMBER),
    FieldSpec(PRODUCTS_KEY, FieldKind.OBJECT, allow_empty_string=True),
)


def _key_list_message(keys: list[str], singular: str, plural: str) -> str:
    if len(keys) == 1:
        return f"{singular}: {keys[0]}."
    return f"{plural}: {', '.join(keys)}."


def ensure_not_empty(payload: Any) -> Mapping[str, Any]:
    """Reject an empty or non-object request body."""
    if not payload:
        raise ValidationError("Request body is empty.", label="Bad Request")
    if not isinstance(payload, Mapping):
        raise ValidationError("Request body must be a JSON object.", label="Bad Request")
    return payload


def check_required_fields(payload: Mapping[str, Any], schema: Iterable[FieldSpec]) -> None:
    """
    Classify every schema field as missing, empty or wrong-typed.

    All keys are scanned before anything is reported. Missing keys mask
    empty values, which mask type mismatches.

    Raises:
        ValidationError: naming every field of the first non-empty class
    """
    missing: list[str] = []
    empty: list[str] = []
    wrong_type: list[str] = []

    for spec in schema:
        if spec.name not in payload:
            missing.append(spec.name)
            continue

        value = payload[spec.name]
        if isinstance(value, str) and value == "":
            if not spec.allow_empty_string:
                empty.append(spec.name)
        elif not spec.kind.matches(value):
            wrong_type.append(spec.name)

    if missing:
        raise ValidationError(_key_list_message(
            missing,
            "Request body is missing the following required key",
            "Request body is missing the following required keys",
        ))
    if empty:
        raise ValidationError(_key_list_message(
            empty,
            "Following key must have a value",
            "Following keys must have a value",
        ))
    if wrong_type:
        raise ValidationError(_key_list_message(
            wrong_type,
            "Following key have wrong value type",
            "Following keys have wrong value types",
        ))


def check_formats(payload: Mapping[str, Any], schema: Iterable[FieldSpec]) -> None:
    """Run each field's format check and report every invalid field at once."""
    invalid = [
        spec.name
        for spec in schema
        if spec.format_check is not None and not spec.format_check(payload[spec.name])
    ]
    if invalid:
        raise ValidationError(f"Invalid {' and '.join(invalid)} value format.")


def validate_line_set(products: Any) -> tuple[InvoiceLine, ...]:
    """
    Validate the structure of the products list.

    The first offending line fails the request and the message cites its
    index in the list.
    """
    if not isinstance(products, list) or len(products) == 0:
        raise ValidationError("Products array must have at least one product.")

    lines: list[InvoiceLine] = []
    for index, product in enumerate(products):
        if not isinstance(product, Mapping) or PRODUCT_ID_KEY not in product:
            raise ValidationError(
                f"Product at index {index} in products array must have a productId key."
            )
        if PRODUCT_QUANTITY_KEY not in product:
            raise ValidationError(
                f"Product at index {index} in products array must have a productQuantity key."
            )
        if not FieldKind.NUMBER.matches(product[PRODUCT_ID_KEY]):
            raise ValidationError(
                f"Product productId key at index {index} in products array have wrong value type."
            )
        if not FieldKind.NUMBER.matches(product[PRODUCT_QUANTITY_KEY]):
            raise ValidationError(
                f"Product productQuantity key at index {index} in products array have wrong value type."
            )
        lines.append(InvoiceLine(
            product_id=product[PRODUCT_ID_KEY],
            quantity=product[PRODUCT_QUANTITY_KEY],
        ))

    return tuple(lines)


def validate_invoice_payload(payload: Any) -> ValidatedInvoice:
    """
    Validate a raw invoice payload.

    Args:
        payload: Decoded JSON request body

    Returns:
        ValidatedInvoice ready for the referential checks and the reconciler

    Raises:
        ValidationError: on the first failing pass
    """
    body = ensure_not_empty(payload)
    check_required_fields(body, INVOICE_SCHEMA)
    lines = validate_line_set(body[PRODUCTS_KEY])
    check_formats(body, INVOICE_SCHEMA)

    header = InvoiceHeader(
        invoice_date=parse_timestamp(body["invoiceDate"]),
        invoice_due_date=parse_timestamp(body["invoiceDueDate"]),
        invoice_amount=body["invoiceAmount"],
        client_id=body["clientId"],
        enterprise_id=body["enterpriseId"],
    )
    return ValidatedInvoice(header=header, lines=lines)


def parse_invoice_id(raw: str | None) -> int:
    """
    Validate the invoiceId path parameter.

    Raises:
        ValidationError: if the parameter is absent or not an integer
    """
    if raw is None or raw == "":
        raise ValidationError("invoiceId parameter is required.", label="Bad Request")
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(
            "invoiceId parameter must be a number.", label="Bad Request"
        ) from None
