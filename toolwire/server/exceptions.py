# toolwire/server/exceptions.py
"""Custom exceptions for the toolwire dispatcher."""

from typing import Any

from toolwire.shared.exceptions import ToolwireError
from toolwire.types import (
    CONNECTION_CLOSED,
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    REQUEST_CANCELLED,
    REQUEST_TIMEOUT,
    RESOURCE_EXHAUSTED,
    RESOURCE_NOT_FOUND,
    ErrorData,
)


class DuplicateNameError(ToolwireError):
    """A capability with this name is already registered in its category."""

    def __init__(self, category: str, name: str):
        self.category = category
        self.name = name
        super().__init__(
            ErrorData(
                code=INVALID_REQUEST,
                message=f"{category} already registered: {name}",
                data={"category": category, "name": name},
            )
        )


class NotFoundError(ToolwireError):
    """Lookup of an unregistered name. Reported to clients as INVALID_PARAMS."""

    def __init__(self, category: str, name: str):
        self.category = category
        self.name = name
        super().__init__(
            ErrorData(
                code=INVALID_PARAMS,
                message=f"Unknown {category}: {name}",
                data={"detail": "unknown target", "target": name},
            )
        )


class ArgumentValidationError(ToolwireError):
    """Arguments did not match the declared schema."""

    def __init__(self, target: str, errors: list[dict[str, str]]):
        self.target = target
        self.errors = errors
        super().__init__(
            ErrorData(
                code=INVALID_PARAMS,
                message=f"Invalid arguments for {target}",
                data={"errors": errors},
            )
        )


class ResourceExhaustedError(ToolwireError):
    """No execution slot became free within the admission timeout. Clients may retry."""

    def __init__(self, message: str = "Server is at capacity, retry later", data: dict[str, Any] | None = None):
        super().__init__(
            ErrorData(code=RESOURCE_EXHAUSTED, message=message, data={"retryable": True, **(data or {})})
        )


class ConnectionClosedError(ToolwireError):
    """The session is shutting down and admits no new work."""

    def __init__(self, message: str = "Connection closed"):
        super().__init__(ErrorData(code=CONNECTION_CLOSED, message=message))


class RequestTimeoutError(ToolwireError):
    """Handler exceeded its call timeout."""

    def __init__(self, target: str, timeout: float):
        super().__init__(
            ErrorData(
                code=REQUEST_TIMEOUT,
                message=f"Request timed out after {timeout:g}s",
                data={"target": target, "timeout": timeout},
            )
        )


class RequestCancelledError(ToolwireError):
    """The request was cancelled by the client or by session shutdown."""

    def __init__(self, reason: str | None = None):
        super().__init__(
            ErrorData(
                code=REQUEST_CANCELLED,
                message="Request cancelled",
                data={"reason": reason} if reason else None,
            )
        )


class HandlerError(ToolwireError):
    """Raised by handlers to fail a call with an explicit code."""

    def __init__(
        self,
        message: str,
        code: int | None = None,
        data: Any | None = None,
    ):
        super().__init__(
            ErrorData(
                code=code if code is not None else INTERNAL_ERROR,
                message=message,
                data=data,
            )
        )


class ResourceNotFoundError(HandlerError):
    """Raised by resource handlers when the backing data is gone."""

    def __init__(self, uri: str):
        super().__init__(f"Resource not found: {uri}", code=RESOURCE_NOT_FOUND, data={"uri": uri})
