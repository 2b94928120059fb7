"""Static web server for the browser test runner.

Serves the project under test, the bundled runner assets and a generated
index page. Startup is an explicit pipeline:

    configure -> allocate port -> build routes -> run extension -> listen

Each stage raises on failure, and nothing is retried.
"""

import logging
import uuid

from .config import configure
from .events import LOG_INFO, EventSink, LoggingEventSink
from .interrupt import ShutdownChannel
from .lifecycle import LifecycleController, ServerHandle
from .models import ServerConfig, WebServerOptions
from .port_manager import PortManager
from .renderer import IndexRenderer
from .routes import ExtensionHook, RouteTable, build_route_table
from .utils.logging import set_package_level, setup_logger

logger = setup_logger(__name__)


class WebServer:
    """One web server instance for one test run."""

    def __init__(
        self,
        options: WebServerOptions,
        shutdown: ShutdownChannel | None = None,
        extension: ExtensionHook | None = None,
        port_manager: PortManager | None = None,
        events: EventSink | None = None,
        renderer: IndexRenderer | None = None,
        host: str = "127.0.0.1",
    ) -> None:
        """Initialize the web server.

        Args:
            options: Web server options
            shutdown: Channel whose interrupt stops the server
            extension: Step allowed to register routes before the file tree
            port_manager: Port manager, a private one by default
            events: Diagnostic event sink
            renderer: Index renderer
            host: Interface to listen on
        """
        self.options = options
        self.shutdown = shutdown or ShutdownChannel()
        self.extension = extension
        self.port_manager = port_manager or PortManager(host)
        self.events = events or LoggingEventSink()
        self.renderer = renderer
        self.server_id = str(uuid.uuid4())
        self.lifecycle = LifecycleController(self.shutdown, host)
        self.config: ServerConfig | None = None
        self.route_table: RouteTable | None = None
        self.handle: ServerHandle | None = None

    def configure(self) -> ServerConfig:
        """Finalize the configuration. Runs once; later calls return the same config.

        Verbose options also lower the package loggers to DEBUG.
        """
        if self.config is None:
            self.config = configure(self.options, self.renderer)
            if self.config.verbose:
                set_package_level(logging.DEBUG)
        return self.config

    def prepare(self) -> ServerHandle:
        """Allocate a port, build the routes and start listening.

        Returns:
            Handle for the listening server

        Raises:
            PortAllocationError: If no port can be obtained
            ExtensionHookError: If the extension step fails
            BindError: If the port cannot be bound
        """
        if self.handle is not None:
            return self.handle

        config = self.configure()
        port = self.port_manager.resolve_port(config)
        self.route_table = build_route_table(config, self.extension)

        self.port_manager.allocate_port(self.server_id, port)
        try:
            self.handle = self.lifecycle.start(self.route_table, port, self.events)
        except Exception:
            self.port_manager.release_port(self.server_id)
            raise

        self.lifecycle.register_shutdown_hook(self.handle)
        self.shutdown.on_interrupt(lambda: self.port_manager.release_port(self.server_id))

        self.events(
            LOG_INFO,
            "Web server running on port",
            self.handle.port,
            "and serving from",
            config.root_directory,
        )
        return self.handle

    def close(self) -> None:
        """Stop the server. Safe to call more than once."""
        if self.handle is not None:
            self.lifecycle.stop(self.handle)
            self.port_manager.release_port(self.server_id)

    def serve_forever(self) -> None:
        """Block until the shutdown channel fires, then stop the server."""
        self.prepare()
        self.shutdown.wait()
        self.close()

    @property
    def port(self) -> int | None:
        return self.handle.port if self.handle else None

    @property
    def url(self) -> str | None:
        return self.handle.url if self.handle else None

    @property
    def runner_url(self) -> str | None:
        """Full URL of the generated index page."""
        if self.handle is None or self.config is None:
            return None
        return self.handle.url + self.config.runner_path

    def __enter__(self) -> "WebServer":
        self.prepare()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
