"""Operation results returned by every driver call.

Drivers never raise to their callers; each operation resolves to one
``OperationResult`` whose ``kind`` tells the caller what happened.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, model_validator


class ResultKind(str, Enum):
    """Outcome taxonomy shared by all drivers."""
    SUCCESS = "success"
    VALIDATION_ERROR = "validation_error"
    AUTH_ERROR = "auth_error"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    PROVIDER_REJECTED = "provider_rejected"
    TRANSIENT_NETWORK_ERROR = "transient_network_error"
    SCHEMA_MISMATCH = "schema_mismatch"


class Pagination(BaseModel):
    """Page metadata for list operations."""
    model_config = ConfigDict(frozen=True)

    page: int
    per_page: int
    total: Optional[int] = None
    has_more: bool = False
    next_cursor: Optional[str] = None


class OperationResult(BaseModel):
    """Normalized driver outcome.

    A failed result never carries a data payload.
    """
    model_config = ConfigDict(frozen=True)

    success: bool
    kind: ResultKind
    message: str = ""
    data: Optional[Dict[str, Any]] = None
    pagination: Optional[Pagination] = None
    error_code: Optional[str] = None
    field: Optional[str] = None
    retry_after: Optional[int] = None

    @model_validator(mode="after")
    def _check_consistency(self) -> "OperationResult":
        if self.success != (self.kind == ResultKind.SUCCESS):
            raise ValueError("success flag must match kind")
        if not self.success and self.data is not None:
            raise ValueError("failed results cannot carry data")
        return self

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def ok(
        cls,
        message: str = "OK",
        data: Optional[Dict[str, Any]] = None,
        pagination: Optional[Pagination] = None,
    ) -> "OperationResult":
        return cls(
            success=True,
            kind=ResultKind.SUCCESS,
            message=message,
            data=data if data is not None else {},
            pagination=pagination,
        )

    @classmethod
    def validation_error(cls, message: str, field: Optional[str] = None) -> "OperationResult":
        return cls(success=False, kind=ResultKind.VALIDATION_ERROR, message=message, field=field)

    @classmethod
    def auth_error(cls, message: str) -> "OperationResult":
        return cls(success=False, kind=ResultKind.AUTH_ERROR, message=message)

    @classmethod
    def rate_limited(cls, message: str, retry_after: Optional[int] = None) -> "OperationResult":
        return cls(
            success=False,
            kind=ResultKind.RATE_LIMIT_EXCEEDED,
            message=message,
            retry_after=retry_after,
        )

    @classmethod
    def provider_rejected(cls, message: str, error_code: Optional[str] = None) -> "OperationResult":
        return cls(
            success=False,
            kind=ResultKind.PROVIDER_REJECTED,
            message=message,
            error_code=error_code,
        )

    @classmethod
    def transient(cls, message: str) -> "OperationResult":
        return cls(success=False, kind=ResultKind.TRANSIENT_NETWORK_ERROR, message=message)

    @classmethod
    def schema_mismatch(cls, message: str) -> "OperationResult":
        return cls(success=False, kind=ResultKind.SCHEMA_MISMATCH, message=message)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
