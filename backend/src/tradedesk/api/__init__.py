"""
API package - FastAPI routers, dependencies and response schemas.
"""
