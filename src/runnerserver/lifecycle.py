"""Listening socket lifecycle for the web server."""

import threading
import time
from http.server import ThreadingHTTPServer

import httpx

from .dispatcher import RequestDispatcher, make_handler_class
from .errors import BindError
from .events import EventSink
from .interrupt import ShutdownChannel
from .models import ServerState
from .routes import FAVICON_PATH, RouteTable
from .utils.logging import setup_logger

logger = setup_logger(__name__)


class RunnerHTTPServer(ThreadingHTTPServer):
    """Threaded HTTP server that never shares its port."""

    daemon_threads = True
    allow_reuse_port = False


class ServerHandle:
    """A started web server.

    Owned by the ``LifecycleController`` that created it; collaborators only
    read the port and URL.
    """

    def __init__(self, host: str, server: ThreadingHTTPServer, thread: threading.Thread) -> None:
        self._host = host
        self._port = int(server.server_address[1])
        self._server = server
        self._thread = thread
        self._lock = threading.Lock()
        self._state = ServerState.LISTENING
        self._hooked = False

    @property
    def port(self) -> int:
        return self._port

    @property
    def host(self) -> str:
        return self._host

    @property
    def url(self) -> str:
        """Base URL of the server, without a trailing slash."""
        return f"http://{self._host}:{self._port}"

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def is_listening(self) -> bool:
        return self._state == ServerState.LISTENING

    def _mark_closed(self) -> bool:
        """Move to CLOSED. Returns True only for the call that made the transition."""
        with self._lock:
            if self._state == ServerState.CLOSED:
                return False
            self._state = ServerState.CLOSED
            return True

    def _mark_hooked(self) -> bool:
        """Flag the shutdown hook as registered. Returns True the first time."""
        with self._lock:
            if self._hooked:
                return False
            self._hooked = True
            return True


class LifecycleController:
    """Starts and stops the listening socket.

    At most one server is active per controller. The socket is closed exactly
    once however many times, and from however many threads, ``stop`` runs.
    """

    def __init__(self, shutdown: ShutdownChannel | None = None, host: str = "127.0.0.1") -> None:
        """Initialize the controller.

        Args:
            shutdown: Channel whose interrupt stops the server
            host: Interface to listen on
        """
        self.shutdown = shutdown or ShutdownChannel()
        self.host = host
        self._handle: ServerHandle | None = None

    @property
    def handle(self) -> ServerHandle | None:
        return self._handle

    def start(
        self,
        route_table: RouteTable,
        port: int,
        events: EventSink | None = None,
    ) -> ServerHandle:
        """Bind ``port`` and start serving the route table.

        Args:
            route_table: Built route table, frozen here
            port: Port to listen on
            events: Diagnostic event sink for the dispatcher

        Returns:
            Handle for the listening server

        Raises:
            BindError: If the port cannot be bound
            RuntimeError: If this controller already has an active server
        """
        if self._handle is not None and self._handle.is_listening:
            raise RuntimeError(f"A web server is already listening on port {self._handle.port}")

        route_table.freeze()
        handler_class = make_handler_class(RequestDispatcher(route_table, events))

        try:
            server = RunnerHTTPServer((self.host, port), handler_class)
        except OSError as e:
            raise BindError(f"Failed to bind web server to {self.host}:{port}: {e}", port) from e

        thread = threading.Thread(
            target=server.serve_forever,
            name=f"runnerserver-{port}",
            daemon=True,
        )
        thread.start()

        self._handle = ServerHandle(self.host, server, thread)
        logger.debug(f"Listening on {self._handle.url}")
        return self._handle

    def register_shutdown_hook(self, handle: ServerHandle) -> None:
        """Stop ``handle`` when the shutdown channel fires.

        Registering the same handle again has no effect.
        """
        if not handle._mark_hooked():
            return
        self.shutdown.on_interrupt(lambda: self.stop(handle))

    def stop(self, handle: ServerHandle) -> None:
        """Stop serving and close the listening socket.

        Never raises; close failures are logged.
        """
        if not handle._mark_closed():
            return

        try:
            handle._server.shutdown()
            handle._thread.join(timeout=5)
        except Exception as e:
            logger.warning(f"Error stopping web server on port {handle.port}: {e}")
        finally:
            try:
                handle._server.server_close()
            except Exception as e:
                logger.warning(f"Error closing web server socket on port {handle.port}: {e}")

        logger.debug(f"Web server on port {handle.port} closed")


def wait_until_ready(handle: ServerHandle, timeout: float = 5.0, interval: float = 0.1) -> bool:
    """Poll a started server until it answers HTTP requests.

    Args:
        handle: Started server
        timeout: Seconds to keep trying
        interval: Seconds between attempts

    Returns:
        True if the server answered within ``timeout``
    """
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not handle.is_listening:
            return False
        try:
            response = httpx.get(handle.url + FAVICON_PATH, timeout=interval * 10)
            if response.status_code < 500:
                return True
        except httpx.HTTPError:
            pass
        time.sleep(interval)
    return False
