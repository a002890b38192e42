"""Health check API endpoints."""

from fastapi import APIRouter
from pydantic import BaseModel, Field

from recovery_ledger.core.config import settings
from recovery_ledger.core.database import db_client
from recovery_ledger.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()


class HealthCheckResponse(BaseModel):
    status: str = Field(..., description="Health check status")
    version: str = Field(..., description="Running application version")
    service: str = Field(..., description="Service name")
    database: str = Field(..., description="Database connectivity status")


@router.get(
    "/",
    response_model=HealthCheckResponse,
    tags=["Health"],
    summary="Health check endpoint",
    description="Check if the service is running and its database is reachable",
    operation_id="get_service_health_status",
)
async def health_check() -> HealthCheckResponse:
    """Health check endpoint."""
    db_health = await db_client.health_check()
    if db_health["status"] != "healthy":
        LOGGER.warning("Health check degraded", extra={"database": db_health})

    return HealthCheckResponse(
        status="healthy" if db_health["status"] == "healthy" else "degraded",
        version=settings.app_version,
        service=settings.app_name,
        database=db_health["status"],
    )
