"""Static web server for browser test runners."""

from .config import configure
from .errors import BindError, ExtensionHookError, PortAllocationError, WebServerError
from .interrupt import ShutdownChannel, install_signal_handlers
from .lifecycle import LifecycleController, ServerHandle
from .models import ServerConfig, WebServerOptions
from .port_manager import PortManager, allocate_free_port
from .renderer import IndexRenderer, compute_runner_path
from .routes import Request, Response, RouteTable, build_route_table
from .webserver import WebServer

__version__ = "0.1.0"

__all__ = [
    "BindError",
    "ExtensionHookError",
    "IndexRenderer",
    "LifecycleController",
    "PortAllocationError",
    "PortManager",
    "Request",
    "Response",
    "RouteTable",
    "ServerConfig",
    "ServerHandle",
    "ShutdownChannel",
    "WebServer",
    "WebServerError",
    "WebServerOptions",
    "allocate_free_port",
    "build_route_table",
    "compute_runner_path",
    "configure",
    "install_signal_handlers",
]
