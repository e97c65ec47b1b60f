from importlib.metadata import PackageNotFoundError, version

from .server import NotificationOptions, Server
from .shared.context import RequestContext

try:
    __version__ = version("toolwire")
except PackageNotFoundError:
    __version__ = "unknown"

__all__ = ["Server", "NotificationOptions", "RequestContext", "__version__"]
