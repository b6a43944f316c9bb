"""
Infrastructure package - persistence contract and its SQLAlchemy backend.
"""
