# toolwire/server/registry.py
from __future__ import annotations as _annotations

import functools
import inspect
import threading
from collections.abc import Iterable, Mapping, ValuesView
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Literal

from pydantic import BaseModel, ConfigDict, Field

from toolwire.server.exceptions import DuplicateNameError, NotFoundError
from toolwire.types import Prompt, PromptArgument, Resource, Tool
from toolwire.utilities.logging import get_logger

logger = get_logger(__name__)

ArgumentType = Literal["string", "integer", "number", "boolean", "object", "array", "any"]


class CapabilityCategory(str, Enum):
    TOOL = "tool"
    RESOURCE = "resource"
    PROMPT = "prompt"


class DuplicatePolicy(str, Enum):
    """What `CapabilityRegistry.register` does when a name is already taken."""

    ERROR = "error"
    REPLACE = "replace"


def _is_async_callable(obj: Any) -> bool:
    """Return True if obj is an async callable (function or __call__)."""
    while isinstance(obj, functools.partial):
        obj = obj.func
    return inspect.iscoroutinefunction(obj) or (
        callable(obj) and inspect.iscoroutinefunction(getattr(obj, "__call__", None))
    )


class ArgumentSpec(BaseModel):
    """One declared argument of a tool or prompt."""

    name: str
    description: str | None = None
    type: ArgumentType = "any"
    required: bool = False
    default: Any = None

    model_config = ConfigDict(frozen=True)

    def json_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {} if self.type == "any" else {"type": self.type}
        if self.description:
            schema["description"] = self.description
        if not self.required and self.default is not None:
            schema["default"] = self.default
        return schema


class CapabilityDescriptor(BaseModel):
    """Registration record binding a name (or URI) to its handler."""

    name: str = Field(description="Name or URI, unique within its category.")
    description: str | None = Field(default=None, description="Human description.")
    title: str | None = Field(default=None, description="Human-readable title.")
    arguments: tuple[ArgumentSpec, ...] = Field(default=(), description="Declared arguments, in order.")
    handler: Callable[..., Any] = Field(exclude=True)
    is_async: bool = Field(default=False, description="Whether the handler is a coroutine function.")
    mime_type: str | None = Field(default=None, description="MIME type of resource contents.")
    output_schema: dict[str, Any] | None = Field(
        default=None, description="JSON schema the structured output of a tool must satisfy."
    )

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    @classmethod
    def from_function(
        cls,
        fn: Callable[..., Any],
        *,
        name: str | None = None,
        description: str | None = None,
        title: str | None = None,
        arguments: Iterable[ArgumentSpec] = (),
        mime_type: str | None = None,
        output_schema: dict[str, Any] | None = None,
    ) -> CapabilityDescriptor:
        """Create a descriptor from a handler function.

        The name defaults to the function's ``__name__`` and the description to
        its docstring.
        """
        func_name = name or getattr(fn, "__name__", None)
        if not func_name:
            raise ValueError("You must provide a name for lambda functions")
        args = tuple(arguments)
        seen: set[str] = set()
        for arg in args:
            if arg.name in seen:
                raise ValueError(f"Duplicate argument {arg.name!r} declared for {func_name}")
            seen.add(arg.name)
        return cls(
            name=func_name,
            description=description if description is not None else inspect.getdoc(fn),
            title=title,
            arguments=args,
            handler=fn,
            is_async=_is_async_callable(fn),
            mime_type=mime_type,
            output_schema=output_schema,
        )

    def input_schema(self) -> dict[str, Any]:
        """JSON schema of the declared arguments, for discovery listings."""
        return {
            "type": "object",
            "properties": {arg.name: arg.json_schema() for arg in self.arguments},
            "required": [arg.name for arg in self.arguments if arg.required],
        }

    def to_tool(self) -> Tool:
        return Tool(
            name=self.name,
            title=self.title,
            description=self.description,
            inputSchema=self.input_schema(),
            outputSchema=self.output_schema,
        )

    def to_resource(self) -> Resource:
        return Resource(
            uri=self.name,
            name=self.title or self.name,
            description=self.description,
            mimeType=self.mime_type,
        )

    def to_prompt(self) -> Prompt:
        return Prompt(
            name=self.name,
            title=self.title,
            description=self.description,
            arguments=[
                PromptArgument(name=arg.name, description=arg.description, required=arg.required)
                for arg in self.arguments
            ],
        )


class CapabilityRegistry:
    """Registry of tools, resources and prompts.

    Each category is an immutable snapshot that is swapped on write, so lookups and
    listings never take a lock and a listing in progress keeps the snapshot it
    started from. Writers serialize on a single lock.
    """

    def __init__(
        self,
        duplicate_policy: DuplicatePolicy | str = DuplicatePolicy.ERROR,
        warn_on_duplicate: bool = True,
    ):
        self.duplicate_policy = DuplicatePolicy(duplicate_policy)
        self.warn_on_duplicate = warn_on_duplicate
        self._write_lock = threading.Lock()
        self._snapshots: dict[CapabilityCategory, Mapping[str, CapabilityDescriptor]] = {
            category: MappingProxyType({}) for category in CapabilityCategory
        }

    def register(self, category: CapabilityCategory | str, descriptor: CapabilityDescriptor) -> CapabilityDescriptor:
        """Add a descriptor to a category.

        Raises:
            DuplicateNameError: the name exists and the policy is ``ERROR``.
        """
        category = CapabilityCategory(category)
        with self._write_lock:
            current = self._snapshots[category]
            if descriptor.name in current:
                if self.duplicate_policy is DuplicatePolicy.ERROR:
                    raise DuplicateNameError(category.value, descriptor.name)
                if self.warn_on_duplicate:
                    logger.warning("Replacing existing %s: %s", category.value, descriptor.name)
            updated = dict(current)
            # Replacing keeps the original listing position.
            updated[descriptor.name] = descriptor
            self._snapshots[category] = MappingProxyType(updated)
        logger.debug("Registered %s %r", category.value, descriptor.name)
        return descriptor

    def unregister(self, category: CapabilityCategory | str, name: str) -> CapabilityDescriptor:
        category = CapabilityCategory(category)
        with self._write_lock:
            current = self._snapshots[category]
            if name not in current:
                raise NotFoundError(category.value, name)
            updated = dict(current)
            removed = updated.pop(name)
            self._snapshots[category] = MappingProxyType(updated)
        logger.debug("Unregistered %s %r", category.value, name)
        return removed

    def lookup(self, category: CapabilityCategory | str, name: str) -> CapabilityDescriptor:
        category = CapabilityCategory(category)
        descriptor = self._snapshots[category].get(name)
        if descriptor is None:
            raise NotFoundError(category.value, name)
        return descriptor

    def get(self, category: CapabilityCategory | str, name: str) -> CapabilityDescriptor | None:
        return self._snapshots[CapabilityCategory(category)].get(name)

    def list(self, category: CapabilityCategory | str) -> ValuesView[CapabilityDescriptor]:
        """Descriptors of a category in registration order.

        The returned view is bound to the current snapshot: it can be iterated any
        number of times and is unaffected by later registrations.
        """
        return self._snapshots[CapabilityCategory(category)].values()

    def count(self, category: CapabilityCategory | str) -> int:
        return len(self._snapshots[CapabilityCategory(category)])

    def is_empty(self, category: CapabilityCategory | str) -> bool:
        return self.count(category) == 0

    def __contains__(self, item: tuple[CapabilityCategory | str, str]) -> bool:
        category, name = item
        return name in self._snapshots[CapabilityCategory(category)]
