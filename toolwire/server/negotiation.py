# toolwire/server/negotiation.py
"""Capability negotiation.

A category is advertised when its explicit flag enables it, or when it has at
least one registered entry and no explicit flag disables it. Explicit flags win
in both directions: a disabled category stays hidden even if populated, and an
enabled one is advertised even while empty so entries can be added later.
"""

from __future__ import annotations as _annotations

from typing import Any

from pydantic import BaseModel, ConfigDict

import toolwire.types as types
from toolwire.server.registry import CapabilityCategory, CapabilityRegistry


class NotificationOptions:
    def __init__(
        self,
        prompts_changed: bool = False,
        resources_changed: bool = False,
        tools_changed: bool = False,
    ):
        self.prompts_changed = prompts_changed
        self.resources_changed = resources_changed
        self.tools_changed = tools_changed


class CapabilityFlags(BaseModel):
    """Explicit overrides supplied by the embedding application.

    ``None`` leaves the decision to registry population.
    """

    tools: bool | None = None
    resources: bool | None = None
    prompts: bool | None = None
    resources_subscribe: bool = False

    model_config = ConfigDict(frozen=True)

    def explicit(self, category: CapabilityCategory) -> bool | None:
        match category:
            case CapabilityCategory.TOOL:
                return self.tools
            case CapabilityCategory.RESOURCE:
                return self.resources
            case CapabilityCategory.PROMPT:
                return self.prompts


def is_category_enabled(registry: CapabilityRegistry, flags: CapabilityFlags, category: CapabilityCategory) -> bool:
    explicit = flags.explicit(category)
    if explicit is not None:
        return explicit
    return not registry.is_empty(category)


def negotiate(
    registry: CapabilityRegistry,
    flags: CapabilityFlags | None = None,
    notification_options: NotificationOptions | None = None,
    experimental_capabilities: dict[str, dict[str, Any]] | None = None,
) -> types.ServerCapabilities:
    """Compute the capability advertisement for the current registry state."""
    flags = flags or CapabilityFlags()
    notification_options = notification_options or NotificationOptions()

    tools_capability = None
    resources_capability = None
    prompts_capability = None

    if is_category_enabled(registry, flags, CapabilityCategory.TOOL):
        tools_capability = types.ToolsCapability(listChanged=notification_options.tools_changed)

    if is_category_enabled(registry, flags, CapabilityCategory.RESOURCE):
        resources_capability = types.ResourcesCapability(
            subscribe=flags.resources_subscribe,
            listChanged=notification_options.resources_changed,
        )

    if is_category_enabled(registry, flags, CapabilityCategory.PROMPT):
        prompts_capability = types.PromptsCapability(listChanged=notification_options.prompts_changed)

    return types.ServerCapabilities(
        tools=tools_capability,
        resources=resources_capability,
        prompts=prompts_capability,
        experimental=experimental_capabilities or None,
    )


def advertises(capabilities: types.ServerCapabilities, category: CapabilityCategory) -> bool:
    match category:
        case CapabilityCategory.TOOL:
            return capabilities.tools is not None
        case CapabilityCategory.RESOURCE:
            return capabilities.resources is not None
        case CapabilityCategory.PROMPT:
            return capabilities.prompts is not None
