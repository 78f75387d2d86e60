from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Literal, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    INPUT_INVALID = "input_invalid"
    TRANSIENT_NETWORK = "transient_network"
    UPSTREAM_REJECTED = "upstream_rejected"
    PARSE_FAILURE = "parse_failure"
    HOST_ENVIRONMENT = "host_environment"


class PipelineError(Exception):
    """Base error for extraction pipeline failures."""


class RasterizationFailed(PipelineError):
    """Raised when a document yields no renderable pages or cannot be opened."""


class HostEnvironmentError(PipelineError):
    """
    Raised when rendering fails because of the host's font/glyph subsystem.

    This aborts the operation instead of travelling as a normal failure result:
    the input is fine, the machine is not, and an operator has to fix it.
    """

    kind = ErrorKind.HOST_ENVIRONMENT


@dataclass(frozen=True)
class Failure:
    """Classified, human-readable failure returned to callers."""

    kind: ErrorKind
    message: str
    blocked: bool = False
    detail: Optional[str] = None


@dataclass(frozen=True)
class Result(Generic[T]):
    status: Literal["ok", "error"]
    value: Optional[T] = None
    failure: Optional[Failure] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(status="ok", value=value)

    @classmethod
    def fail(
        cls,
        kind: ErrorKind,
        message: str,
        *,
        blocked: bool = False,
        detail: Optional[str] = None,
    ) -> "Result[T]":
        return cls(
            status="error",
            failure=Failure(kind=kind, message=message, blocked=blocked, detail=detail),
        )
