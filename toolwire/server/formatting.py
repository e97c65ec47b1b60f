# toolwire/server/formatting.py
"""Response formatting.

Turns what a handler returned into the result model of its category, and any
result or error into a JSON-RPC envelope. Content blocks keep the order in which
the handler produced them.
"""

from __future__ import annotations as _annotations

import base64
import json
from collections.abc import Iterable
from typing import Any

import jsonschema
import pydantic_core
from pydantic import BaseModel

import toolwire.types as types
from toolwire.server.registry import CapabilityDescriptor
from toolwire.shared.exceptions import ToolwireError

_BLOCK_TYPES = (types.TextContent, types.StructuredContent, types.ResourceLink)


class OutputSchemaError(ToolwireError):
    """Structured tool output does not match the tool's declared output schema."""

    def __init__(self, target: str, detail: str):
        super().__init__(
            types.ErrorData(
                code=types.INTERNAL_ERROR,
                message=f"Output validation error for {target}",
                data={"detail": detail, "target": target},
            )
        )


def _structured(value: Any) -> dict[str, Any] | list[Any]:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    return pydantic_core.to_jsonable_python(value)


def to_content_blocks(value: Any) -> list[types.ContentBlock]:
    """Flatten a handler return value into content blocks.

    - ``None`` gives no blocks
    - a ``str`` gives one text block
    - a content block is kept as is
    - a dict or pydantic model gives one structured block
    - any other iterable is flattened in order
    - anything else is rendered as text
    """
    if value is None:
        return []
    if isinstance(value, _BLOCK_TYPES):
        return [value]
    if isinstance(value, str):
        return [types.TextContent(text=value)]
    if isinstance(value, dict | BaseModel):
        return [types.StructuredContent(data=_structured(value))]
    if isinstance(value, bytes | bytearray):
        return [types.TextContent(text=base64.b64encode(value).decode())]
    if isinstance(value, Iterable):
        blocks: list[types.ContentBlock] = []
        for item in value:
            blocks.extend(to_content_blocks(item))
        return blocks
    return [types.TextContent(text=json.dumps(pydantic_core.to_jsonable_python(value)))]


def format_tool_result(value: Any, descriptor: CapabilityDescriptor) -> types.CallToolResult:
    """Build the `tools/call` result.

    A dict or pydantic model return value is also reported as ``structuredContent``.
    A handler may return a ``(content, structured)`` pair to set both explicitly.

    Raises:
        OutputSchemaError: the tool declares an output schema and the structured
            output does not satisfy it.
    """
    if isinstance(value, types.CallToolResult):
        return value

    structured: dict[str, Any] | None = None
    if isinstance(value, tuple) and len(value) == 2 and isinstance(value[1], dict):
        value, structured = value
    elif isinstance(value, dict | BaseModel):
        data = _structured(value)
        structured = data if isinstance(data, dict) else None

    if descriptor.output_schema is not None:
        if structured is None:
            raise OutputSchemaError(descriptor.name, "Tool declares an output schema but returned no structured output")
        try:
            jsonschema.validate(instance=structured, schema=descriptor.output_schema)
        except jsonschema.ValidationError as e:
            raise OutputSchemaError(descriptor.name, e.message) from e

    content = to_content_blocks(value)
    if structured is not None and not content:
        content = [types.TextContent(text=json.dumps(structured, indent=2))]
    return types.CallToolResult(content=content, structuredContent=structured)


def _resource_contents(
    item: Any, uri: str, mime_type: str | None
) -> types.TextResourceContents | types.BlobResourceContents:
    match item:
        case types.TextResourceContents() | types.BlobResourceContents():
            return item
        case str():
            return types.TextResourceContents(uri=uri, text=item, mimeType=mime_type or "text/plain")
        case bytes() | bytearray():
            return types.BlobResourceContents(
                uri=uri,
                blob=base64.b64encode(item).decode(),
                mimeType=mime_type or "application/octet-stream",
            )
        case types.TextContent(text=text):
            return types.TextResourceContents(uri=uri, text=text, mimeType=mime_type or "text/plain")
        case _:
            return types.TextResourceContents(
                uri=uri,
                text=json.dumps(_structured(item) if isinstance(item, BaseModel) else pydantic_core.to_jsonable_python(item)),
                mimeType=mime_type or "application/json",
            )


def format_resource_result(value: Any, descriptor: CapabilityDescriptor) -> types.ReadResourceResult:
    """Build the `resources/read` result.

    Text becomes `TextResourceContents`, bytes become base64 `BlobResourceContents`,
    other values are serialized as JSON. A list or tuple yields one entry per item.
    """
    if isinstance(value, types.ReadResourceResult):
        return value
    items = list(value) if isinstance(value, list | tuple) else [value]
    return types.ReadResourceResult(
        contents=[_resource_contents(item, descriptor.name, descriptor.mime_type) for item in items if item is not None]
    )


def format_prompt_result(value: Any, descriptor: CapabilityDescriptor) -> types.GetPromptResult:
    """Build the `prompts/get` result.

    `PromptMessage`s are kept; every other block becomes a ``user`` message.
    """
    if isinstance(value, types.GetPromptResult):
        return value
    items = value if isinstance(value, list | tuple) else [value]
    messages: list[types.PromptMessage] = []
    for item in items:
        if isinstance(item, types.PromptMessage):
            messages.append(item)
            continue
        messages.extend(types.PromptMessage(role="user", content=block) for block in to_content_blocks(item))
    return types.GetPromptResult(description=descriptor.description, messages=messages)


def format_error(error: BaseException | types.ErrorData) -> types.ErrorData:
    """Map an exception or error model to the error sent on the wire."""
    if isinstance(error, types.ErrorData):
        return error
    if isinstance(error, ToolwireError):
        return error.error
    return types.ErrorData(
        code=types.INTERNAL_ERROR,
        message="Internal error",
        data={"detail": str(error), "type": type(error).__name__},
    )


def to_jsonrpc(request_id: types.RequestId, response: types.ServerResult | types.ErrorData) -> types.JSONRPCMessage:
    """Wrap a result or an error in its JSON-RPC envelope."""
    if isinstance(response, types.ErrorData):
        return types.JSONRPCMessage(types.JSONRPCError(jsonrpc="2.0", id=request_id, error=response))
    return types.JSONRPCMessage(
        types.JSONRPCResponse(
            jsonrpc="2.0",
            id=request_id,
            result=response.model_dump(by_alias=True, mode="json", exclude_none=True),
        )
    )
