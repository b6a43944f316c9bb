"""
Services package - Business logic on top of the invoice store.

Includes the line reconciler and the request-boundary invoice handlers.
"""

from .invoices import HandlerResponse, InvoiceService
from .reconciler import LineReconciler

__all__ = ["HandlerResponse", "InvoiceService", "LineReconciler"]
