"""Response envelope and error schemas shared by every endpoint."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ResponseMeta(BaseModel):
    timestamp: datetime
    request_id: str
    api_version: str = "v1"


class ApiResponse(BaseModel):
    """Standard success envelope."""

    status: bool = True
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)
    meta: ResponseMeta


class ErrorDetail(BaseModel):
    """Problem details for HTTP APIs (RFC 7807)."""

    title: str
    status: int
    detail: str
    instance: Optional[str] = None
    request_id: str
    timestamp: datetime
    section: Optional[str] = Field(None, description="Statutory section the error concerns")
    account: Optional[str] = Field(None, description="Sub-account code the error concerns")
