# toolwire/shared/message.py
"""Message wrapper with metadata support.

Transports hand the session `SessionMessage` objects so that transport-specific
details can travel alongside the decoded JSON-RPC message.
"""

from dataclasses import dataclass
from typing import Any

from toolwire.types import JSONRPCMessage, RequestId


@dataclass
class ServerMessageMetadata:
    """Metadata attached to messages the server sends."""

    related_request_id: RequestId | None = None
    # Transport-specific request context, None for stdio.
    request_context: Any = None


@dataclass
class SessionMessage:
    """A message with transport metadata."""

    message: JSONRPCMessage
    metadata: ServerMessageMetadata | None = None
