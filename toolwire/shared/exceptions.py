# toolwire/shared/exceptions.py
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from toolwire.types import ErrorData


class ToolwireError(Exception):
    """
    Exception type carrying a protocol error; its `error` is what goes on the wire.
    """

    error: ErrorData

    def __init__(self, error: ErrorData):
        """Initialize ToolwireError."""
        super().__init__(error.message)
        self.error = error

    @property
    def code(self) -> int:
        return self.error.code
