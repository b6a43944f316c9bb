"""
Tradedesk - invoice records backend for a small commerce operation.

Clients, enterprises and products are referenced by invoices whose product
lines are validated and reconciled against a relational store.
"""

__version__ = "0.1.0"
