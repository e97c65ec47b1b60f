# toolwire/server/__init__.py
from .exceptions import HandlerError, ResourceNotFoundError
from .lowlevel import NotificationOptions, Server
from .models import InitializationOptions, SessionState
from .registry import ArgumentSpec, CapabilityCategory
from .settings import Settings

__all__ = [
    "Server",
    "NotificationOptions",
    "InitializationOptions",
    "SessionState",
    "Settings",
    "ArgumentSpec",
    "CapabilityCategory",
    "HandlerError",
    "ResourceNotFoundError",
]
