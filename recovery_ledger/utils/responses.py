from datetime import datetime, timezone
from typing import Any, Optional, Dict
from uuid import uuid4

from fastapi import HTTPException, Request, status as http_status

from recovery_ledger.core.exceptions import (
    AppError,
    ConcurrencyConflict,
    DatabaseError,
    DuplicateCaseError,
    DuplicateTransactionError,
    NotFoundError,
    ValidationError,
)
from recovery_ledger.schemas.common import ApiResponse, ResponseMeta, ErrorDetail
from recovery_ledger.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Most specific first: duplicates are ValidationError subclasses
ERROR_STATUS = (
    (DuplicateTransactionError, http_status.HTTP_409_CONFLICT, "Duplicate Transaction"),
    (DuplicateCaseError, http_status.HTTP_409_CONFLICT, "Duplicate Case"),
    (ValidationError, http_status.HTTP_422_UNPROCESSABLE_ENTITY, "Validation Error"),
    (NotFoundError, http_status.HTTP_404_NOT_FOUND, "Not Found"),
    (ConcurrencyConflict, http_status.HTTP_409_CONFLICT, "Concurrency Conflict"),
    (DatabaseError, http_status.HTTP_500_INTERNAL_SERVER_ERROR, "Database Error"),
)


def create_api_response(
    data: Any,
    message: str = "Operation successful",
    status: bool = True,
    request: Optional[Request] = None,
    api_version: str = "v1"
) -> Dict[str, Any]:
    """Create a standardized API response as a dictionary.

    Returns a dict to be compatible with FastAPI's response_model=dict.
    """
    request_id = str(uuid4())
    if request and hasattr(request.state, "request_id"):
        request_id = request.state.request_id

    meta = ResponseMeta(
        timestamp=datetime.now(timezone.utc),
        request_id=request_id,
        api_version=api_version
    )

    data_dict: Dict[str, Any] = {}
    if isinstance(data, dict):
        data_dict = data
    elif hasattr(data, "model_dump"):
        data_dict = data.model_dump()
    elif isinstance(data, list):
        data_dict = {"items": [item.model_dump() if hasattr(item, "model_dump") else item for item in data]}
    elif data is None:
        data_dict = {}
    else:
        data_dict = {"value": data}

    response = ApiResponse(
        status=status,
        message=message,
        data=data_dict,
        meta=meta
    )
    return response.model_dump(mode="json")


def create_error_detail(
    title: str,
    status: int,
    detail: str,
    request: Optional[Request] = None,
    instance: Optional[str] = None,
    section: Optional[str] = None,
    account: Optional[str] = None
) -> ErrorDetail:
    """Create a standardized error detail (RFC 7807)."""
    request_id = str(uuid4())
    if request and hasattr(request.state, "request_id"):
        request_id = request.state.request_id

    return ErrorDetail(
        title=title,
        status=status,
        detail=detail,
        instance=instance or (request.url.path if request else None),
        request_id=request_id,
        timestamp=datetime.now(timezone.utc),
        section=section,
        account=account
    )


def to_http_exception(error: AppError, request: Optional[Request] = None) -> HTTPException:
    """Map an application error onto an HTTPException carrying an ErrorDetail."""
    status_code = http_status.HTTP_500_INTERNAL_SERVER_ERROR
    title = "Internal Server Error"
    for error_type, mapped_status, mapped_title in ERROR_STATUS:
        if isinstance(error, error_type):
            status_code, title = mapped_status, mapped_title
            break

    if status_code >= 500:
        LOGGER.error(f"Request failed: {error.message}", exc_info=error)

    error_detail = create_error_detail(
        title=title,
        status=status_code,
        detail=error.message,
        request=request,
        section=getattr(error, "section", None),
        account=getattr(error, "account", None)
    )
    return HTTPException(
        status_code=status_code,
        detail=error_detail.model_dump(mode="json")
    )
