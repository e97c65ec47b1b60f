# toolwire/server/models.py
"""
This module provides simpler types to use with the server for managing sessions.
"""

from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, ConfigDict, Field

from toolwire.types import ServerCapabilities


class InitializationOptions(BaseModel):
    server_name: str
    server_version: str
    capabilities: ServerCapabilities
    instructions: str | None = None


class SessionState(BaseModel):
    """Server identity and negotiated capabilities, fixed for the life of the process."""

    server_name: str
    server_version: str
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    capabilities: ServerCapabilities

    model_config = ConfigDict(frozen=True)

    def uptime(self) -> timedelta:
        return datetime.now(timezone.utc) - self.started_at
