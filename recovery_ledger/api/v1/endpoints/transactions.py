"""Recovery transaction API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from recovery_ledger.core.database import get_async_session as get_session
from recovery_ledger.core.exceptions import AppError
from recovery_ledger.schemas.recovery import TransactionCreate, TransactionUpdate
from recovery_ledger.services.recovery_service import RecoveryService
from recovery_ledger.utils.logging import get_logger
from recovery_ledger.utils.responses import create_api_response, to_http_exception

LOGGER = get_logger(__name__)

router = APIRouter()


async def get_recovery_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> RecoveryService:
    """Dependency for recovery service."""
    return RecoveryService(db_session)


@router.post(
    "",
    response_model=dict,
    status_code=status.HTTP_201_CREATED,
    summary="Record a recovery transaction",
    operation_id="submit_transaction",
)
async def submit_transaction(
    request: Request,
    payload: TransactionCreate,
    recovery_service: Annotated[RecoveryService, Depends(get_recovery_service)],
) -> dict:
    """Record a payment and reconcile its case.

    Without an ``allocation`` the amount (less any recovery cost) is split by
    the statutory waterfall; with one, the manual split is validated as is.

    Raises:
        HTTPException 404: Case not found or in the trash
        HTTPException 409: Duplicate reference, or the case is busy
        HTTPException 422: Amount or allocation breaks a ledger rule
    """
    try:
        result = await recovery_service.submit_transaction(payload)
    except AppError as e:
        raise to_http_exception(e, request) from e

    return create_api_response(
        data=result,
        message="Recovery transaction recorded",
        request=request
    )


@router.get(
    "/{transaction_id}",
    response_model=dict,
    summary="Get a recovery transaction",
    operation_id="get_transaction",
)
async def get_transaction(
    request: Request,
    transaction_id: UUID,
    recovery_service: Annotated[RecoveryService, Depends(get_recovery_service)],
) -> dict:
    try:
        transaction = await recovery_service.get_transaction(transaction_id)
    except AppError as e:
        raise to_http_exception(e, request) from e

    return create_api_response(
        data=transaction,
        message="Transaction retrieved successfully",
        request=request
    )


@router.put(
    "/{transaction_id}",
    response_model=dict,
    summary="Edit a recovery transaction",
    operation_id="edit_transaction",
)
async def edit_transaction(
    request: Request,
    transaction_id: UUID,
    payload: TransactionUpdate,
    recovery_service: Annotated[RecoveryService, Depends(get_recovery_service)],
) -> dict:
    """Replace a transaction's amount and allocation, then reconcile."""
    try:
        result = await recovery_service.edit_transaction(transaction_id, payload)
    except AppError as e:
        raise to_http_exception(e, request) from e

    return create_api_response(
        data=result,
        message="Recovery transaction updated",
        request=request
    )


@router.delete(
    "/{transaction_id}",
    response_model=dict,
    summary="Delete a recovery transaction",
    operation_id="delete_transaction",
)
async def delete_transaction(
    request: Request,
    transaction_id: UUID,
    recovery_service: Annotated[RecoveryService, Depends(get_recovery_service)],
) -> dict:
    try:
        result = await recovery_service.delete_transaction(transaction_id)
    except AppError as e:
        raise to_http_exception(e, request) from e

    return create_api_response(
        data=result,
        message="Recovery transaction deleted",
        request=request
    )
