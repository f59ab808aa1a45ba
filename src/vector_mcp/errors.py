"""Error taxonomy shared by handlers, backends and the dispatcher."""

from __future__ import annotations


class VectorMCPError(Exception):
    """Base class for failures that are reported to tool callers."""

    kind = "Error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class InvalidArgument(VectorMCPError):
    kind = "InvalidArgument"


class NotFound(VectorMCPError):
    kind = "NotFound"


class AlreadyExists(VectorMCPError):
    kind = "AlreadyExists"


class UnsupportedBackend(VectorMCPError):
    kind = "UnsupportedBackend"


class OperationTimeout(VectorMCPError):
    kind = "Timeout"


class OperationCancelled(OperationTimeout):
    """Raised when the caller cancels an operation before it completes."""


class BackendFailure(VectorMCPError):
    kind = "BackendFailure"


class ToolNotFound(VectorMCPError):
    kind = "ToolNotFound"
