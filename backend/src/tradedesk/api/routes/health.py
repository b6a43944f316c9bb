"""
Health check endpoint.

Provides system health status for monitoring and load balancers.
"""

from fastapi import APIRouter, Depends

from tradedesk import __version__
from tradedesk.api.dependencies import get_database
from tradedesk.api.schemas import HealthResponse
from tradedesk.infrastructure.database import Database

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(database: Database = Depends(get_database)) -> HealthResponse:
    """
    Check system health.
    
    Returns status of core components for monitoring dashboards
    and load balancer health checks.
    """
    reachable = await database.ping()
    
    return HealthResponse(
        status="healthy" if reachable else "degraded",
        version=__version__,
        database="connected" if reachable else "unreachable",
    )
