"""Case record API endpoints.

Covers demand intake, operator edits, the trash, forced recomputes and the
case-scoped transaction views.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from recovery_ledger.core.database import get_async_session as get_session
from recovery_ledger.core.exceptions import AppError
from recovery_ledger.schemas.cases import CaseCreate, CaseUpdate
from recovery_ledger.schemas.recovery import AllocationPreviewRequest
from recovery_ledger.services.case_service import CaseService
from recovery_ledger.services.reconciliation_service import LedgerReconciliationService
from recovery_ledger.services.recovery_service import RecoveryService
from recovery_ledger.utils.logging import get_logger
from recovery_ledger.utils.responses import create_api_response, to_http_exception

LOGGER = get_logger(__name__)

router = APIRouter()


async def get_case_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> CaseService:
    """Dependency for case service."""
    return CaseService(db_session)


async def get_recovery_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> RecoveryService:
    """Dependency for recovery service."""
    return RecoveryService(db_session)


async def get_reconciliation_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> LedgerReconciliationService:
    """Dependency for reconciliation service."""
    return LedgerReconciliationService(db_session)


@router.post(
    "",
    response_model=dict,
    status_code=status.HTTP_201_CREATED,
    summary="Create a case",
    operation_id="create_case",
)
async def create_case(
    request: Request,
    payload: CaseCreate,
    case_service: Annotated[CaseService, Depends(get_case_service)],
) -> dict:
    """Open a case with its demand per sub-account.

    Raises:
        HTTPException 409: Case number already used by the establishment
        HTTPException 422: Unknown sub-account or invalid amount
    """
    try:
        case = await case_service.create_case(payload)
    except AppError as e:
        raise to_http_exception(e, request) from e

    return create_api_response(
        data=case,
        message="Case created successfully",
        request=request
    )


@router.get(
    "/{case_id}",
    response_model=dict,
    summary="Get a case with its aggregates",
    operation_id="get_case",
)
async def get_case(
    request: Request,
    case_id: UUID,
    case_service: Annotated[CaseService, Depends(get_case_service)],
) -> dict:
    """Get a case and the aggregates persisted by its last recompute.

    Raises:
        HTTPException 404: Case not found or in the trash
    """
    try:
        case = await case_service.get_case(case_id)
    except AppError as e:
        raise to_http_exception(e, request) from e

    return create_api_response(
        data=case,
        message="Case retrieved successfully",
        request=request
    )


@router.patch(
    "/{case_id}/demand",
    response_model=dict,
    summary="Edit a case's demand and details",
    operation_id="update_case_demand",
)
async def update_case_demand(
    request: Request,
    case_id: UUID,
    payload: CaseUpdate,
    case_service: Annotated[CaseService, Depends(get_case_service)],
) -> dict:
    """Merge demand edits into the case and recompute it.

    Raises:
        HTTPException 404: Case not found or in the trash
        HTTPException 422: Computed field, unknown field or unknown sub-account
    """
    try:
        case = await case_service.update_demand(
            case_id, payload.model_dump(exclude_unset=True)
        )
    except AppError as e:
        raise to_http_exception(e, request) from e

    return create_api_response(
        data=case,
        message="Case updated successfully",
        request=request
    )


@router.delete(
    "/{case_id}",
    response_model=dict,
    summary="Move a case to the trash",
    operation_id="delete_case",
)
async def delete_case(
    request: Request,
    case_id: UUID,
    case_service: Annotated[CaseService, Depends(get_case_service)],
) -> dict:
    try:
        case = await case_service.delete_case(case_id)
    except AppError as e:
        raise to_http_exception(e, request) from e

    return create_api_response(
        data=case,
        message="Case moved to trash",
        request=request
    )


@router.post(
    "/{case_id}/restore",
    response_model=dict,
    summary="Restore a case from the trash",
    operation_id="restore_case",
)
async def restore_case(
    request: Request,
    case_id: UUID,
    case_service: Annotated[CaseService, Depends(get_case_service)],
) -> dict:
    try:
        case = await case_service.restore_case(case_id)
    except AppError as e:
        raise to_http_exception(e, request) from e

    return create_api_response(
        data=case,
        message="Case restored successfully",
        request=request
    )


@router.post(
    "/{case_id}/reconcile",
    response_model=dict,
    summary="Force a full recompute of a case",
    operation_id="reconcile_case",
)
async def reconcile_case(
    request: Request,
    case_id: UUID,
    reconciliation_service: Annotated[
        LedgerReconciliationService, Depends(get_reconciliation_service)
    ],
) -> dict:
    try:
        aggregates = await reconciliation_service.recompute(case_id)
    except AppError as e:
        raise to_http_exception(e, request) from e

    message = "Case reconciled successfully"
    if aggregates.warnings:
        message = f"Case reconciled with {len(aggregates.warnings)} data warnings"

    return create_api_response(
        data=aggregates,
        message=message,
        request=request
    )


@router.get(
    "/{case_id}/transactions",
    response_model=dict,
    summary="List a case's recovery transactions",
    operation_id="list_case_transactions",
)
async def list_case_transactions(
    request: Request,
    case_id: UUID,
    recovery_service: Annotated[RecoveryService, Depends(get_recovery_service)],
) -> dict:
    try:
        result = await recovery_service.list_transactions(case_id)
    except AppError as e:
        raise to_http_exception(e, request) from e

    return create_api_response(
        data=result,
        message=f"Retrieved {result.total} transactions",
        request=request
    )


@router.post(
    "/{case_id}/allocation-preview",
    response_model=dict,
    summary="Preview the statutory allocation of an amount",
    operation_id="preview_allocation",
)
async def preview_allocation(
    request: Request,
    case_id: UUID,
    payload: AllocationPreviewRequest,
    recovery_service: Annotated[RecoveryService, Depends(get_recovery_service)],
) -> dict:
    """Propose how an amount would be split, without recording anything.

    Pass ``exclude_transaction_id`` when editing an existing transaction so
    its own allocation is left out of the balances.
    """
    try:
        preview = await recovery_service.preview_allocation(
            case_id,
            payload.amount,
            cost_amount=payload.cost_amount,
            exclude_transaction_id=payload.exclude_transaction_id,
        )
    except AppError as e:
        raise to_http_exception(e, request) from e

    return create_api_response(
        data=preview,
        message="Allocation preview computed",
        request=request
    )
