"""Establishment API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from recovery_ledger.core.database import get_async_session as get_session
from recovery_ledger.core.exceptions import AppError
from recovery_ledger.schemas.establishment import RecoveryCostUpdate
from recovery_ledger.services.establishment_service import EstablishmentService
from recovery_ledger.utils.responses import create_api_response, to_http_exception

router = APIRouter()


async def get_establishment_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> EstablishmentService:
    """Dependency for establishment service."""
    return EstablishmentService(db_session)


@router.get(
    "/{establishment_code:path}",
    response_model=dict,
    summary="Get consolidated totals for an establishment",
    operation_id="get_establishment",
)
async def get_establishment(
    request: Request,
    establishment_code: str,
    establishment_service: Annotated[EstablishmentService, Depends(get_establishment_service)],
) -> dict:
    """Sum the committed totals of every live case of the establishment.

    Raises:
        HTTPException 404: Establishment has no cases
    """
    try:
        aggregate = await establishment_service.aggregate_establishment(establishment_code)
    except AppError as e:
        raise to_http_exception(e, request) from e

    return create_api_response(
        data=aggregate,
        message=f"Aggregated {aggregate.case_count} cases",
        request=request
    )


@router.put(
    "/{establishment_code:path}/recovery-cost",
    response_model=dict,
    summary="Set the establishment's recovery cost charged",
    operation_id="set_recovery_cost",
)
async def set_recovery_cost(
    request: Request,
    establishment_code: str,
    payload: RecoveryCostUpdate,
    establishment_service: Annotated[EstablishmentService, Depends(get_establishment_service)],
) -> dict:
    try:
        aggregate = await establishment_service.set_recovery_cost_charged(
            establishment_code, payload.recovery_cost_charged
        )
    except AppError as e:
        raise to_http_exception(e, request) from e

    return create_api_response(
        data=aggregate,
        message="Recovery cost updated",
        request=request
    )
