"""
Structured operation results.

Registry operations never raise for domain failures. They return an OpResult
carrying either a value or an error code, and serialize to the wire forms
{"value": V} and {"error": code}.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Domain failure codes."""

    INVALID_STATE = 400
    PERMISSION_DENIED = 403
    NOT_FOUND = 404


@dataclass(frozen=True)
class OpResult:
    """Tagged success/failure value returned by every registry operation.

    Attributes:
        value: Result value on success
        error: Failure code, None on success
    """

    value: Any = None
    error: ErrorCode | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Any) -> OpResult:
        return cls(value=value)

    @classmethod
    def failure(cls, error: ErrorCode) -> OpResult:
        return cls(error=error)

    def to_dict(self) -> dict[str, Any]:
        if self.error is not None:
            return {"error": int(self.error)}
        return {"value": self.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OpResult:
        if "error" in data:
            return cls(error=ErrorCode(data["error"]))
        return cls(value=data.get("value"))


NOT_FOUND = OpResult.failure(ErrorCode.NOT_FOUND)
PERMISSION_DENIED = OpResult.failure(ErrorCode.PERMISSION_DENIED)
INVALID_STATE = OpResult.failure(ErrorCode.INVALID_STATE)
