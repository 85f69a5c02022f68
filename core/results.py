"""
Outcome values returned by every mutation in the service layer.

Mutations never raise past their boundary: they hand back an ``ActionResult``
which is either a success carrying ``data`` or a failure carrying one of the
``ErrorCode`` values below.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ErrorCode(str, Enum):
    VALIDATION_FAILED = "validation_failed"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND_OR_UNAUTHORIZED = "not_found_or_unauthorized"
    INTERNAL_FAILURE = "internal_failure"


HTTP_STATUS = {
    ErrorCode.VALIDATION_FAILED: 422,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.NOT_FOUND_OR_UNAUTHORIZED: 404,
    ErrorCode.INTERNAL_FAILURE: 500,
}


@dataclass(frozen=True)
class ActionResult(Generic[T]):
    success: bool
    data: T | None = None
    error: ErrorCode | None = None
    message: str | None = None
    details: dict[str, list[str]] = field(default_factory=dict)

    @classmethod
    def ok(cls, data: T | None = None) -> "ActionResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def validation_failed(cls, details: dict[str, list[str]]) -> "ActionResult[Any]":
        return cls(
            success=False,
            error=ErrorCode.VALIDATION_FAILED,
            message="Validation failed",
            details=details,
        )

    @classmethod
    def unauthorized(cls) -> "ActionResult[Any]":
        return cls(success=False, error=ErrorCode.UNAUTHORIZED, message="Unauthorized")

    @classmethod
    def not_found(cls, message: str) -> "ActionResult[Any]":
        return cls(success=False, error=ErrorCode.NOT_FOUND_OR_UNAUTHORIZED, message=message)

    @classmethod
    def internal(cls, message: str) -> "ActionResult[Any]":
        return cls(success=False, error=ErrorCode.INTERNAL_FAILURE, message=message)

    @property
    def status_code(self) -> int:
        if self.success:
            return 200
        return HTTP_STATUS[self.error]

    def to_dict(self, payload: Any = None) -> dict[str, Any]:
        if self.success:
            return {"success": True, "data": payload}
        body: dict[str, Any] = {
            "success": False,
            "error": self.error.value,
            "message": self.message,
        }
        if self.details:
            body["details"] = self.details
        return body
