# toolwire/server/settings.py
from __future__ import annotations as _annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """toolwire server settings.

    All settings can be configured via environment variables with the prefix TOOLWIRE_.
    For example, TOOLWIRE_MAX_CONCURRENCY=4 will set max_concurrency=4.
    """

    model_config = SettingsConfigDict(
        env_prefix="TOOLWIRE_",
        env_file=".env",
        extra="ignore",
    )

    # Server settings
    debug: bool = False
    """Log at DEBUG regardless of log_level."""
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # Execution limits
    max_concurrency: int = Field(default=16, ge=1)
    admission_timeout: float = Field(default=5.0, ge=0)
    """Seconds to wait for a free slot; 0 rejects immediately when all slots are busy."""
    call_timeout: float | None = Field(default=60.0, ge=0)
    """Seconds a handler may run before its cancellation token fires; None or 0 disables it."""
    cancel_grace: float = Field(default=5.0, ge=0)
    """Seconds between the token firing and the handler being cancelled outright."""

    # Registry settings
    duplicate_policy: Literal["error", "replace"] = "error"
    warn_on_duplicate: bool = True

    # Routing settings
    strict_arguments: bool = True
    """Reject unknown arguments instead of dropping them."""
    ordered_responses: bool = False

    # Capability overrides, None leaves the decision to registry population
    enable_tools: bool | None = None
    enable_resources: bool | None = None
    enable_prompts: bool | None = None
    resources_subscribe: bool = False
