"""Structured outcomes of workflow operations.

Workflow operations never raise: they return a Result holding either the
value or a WorkflowError. Callers branch on `error.code`.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    NOT_FOUND = "NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    VALIDATION = "VALIDATION"
    STORE_ERROR = "STORE_ERROR"
    PARTIAL_FAILURE = "PARTIAL_FAILURE"


@dataclass(frozen=True)
class PartialFailure:
    """Which records a failed two-record change left written."""

    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    compensated: bool = False
    detail: str = ""


@dataclass(frozen=True)
class WorkflowError:
    code: ErrorCode
    message: str
    partial_failure: PartialFailure | None = None
    details: dict | None = None

    @property
    def retryable(self) -> bool:
        return self.code == ErrorCode.STORE_ERROR


@dataclass(frozen=True)
class Result:
    value: Any = None
    error: WorkflowError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Any = None) -> "Result":
        return cls(value=value)

    @classmethod
    def failure(cls, code: ErrorCode, message: str, **kwargs) -> "Result":
        return cls(error=WorkflowError(code=code, message=message, **kwargs))
