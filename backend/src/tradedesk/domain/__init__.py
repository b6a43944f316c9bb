"""
Domain package - Core business logic with no external dependencies.

This package contains pure Python domain models, typed errors and the
validation rules for invoice payloads.
"""
