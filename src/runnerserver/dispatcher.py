"""Request dispatch onto the route table."""

import os
import shutil
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler

from .events import LOG_DEBUG, LOG_WARN, EventSink, LoggingEventSink
from .routes import Request, Response, RouteTable
from .utils.logging import setup_logger

logger = setup_logger(__name__)

ALLOWED_METHODS = ("GET", "HEAD")
MAX_DISCARDED_BODY = 1024 * 1024


class RequestDispatcher:
    """Walks the route table for each request.

    Holds no per-request state, so one dispatcher serves every connection.
    """

    def __init__(self, route_table: RouteTable, events: EventSink | None = None) -> None:
        """Initialize the dispatcher.

        Args:
            route_table: Built route table
            events: Diagnostic event sink
        """
        self.route_table = route_table
        self.events = events or LoggingEventSink()

    def dispatch(self, request: Request) -> Response:
        """Produce the response for a request.

        Args:
            request: Incoming request

        Returns:
            Response from the first matching route
        """
        self.events(LOG_DEBUG, request.method, request.url)

        if request.method not in ALLOWED_METHODS:
            return _error_response(
                HTTPStatus.METHOD_NOT_ALLOWED, {"Allow": ", ".join(ALLOWED_METHODS)}
            )

        try:
            matched = self.route_table.match(request)
        except Exception as e:
            logger.error(f"Error serving {request.method} {request.url}: {e}")
            return _error_response(HTTPStatus.INTERNAL_SERVER_ERROR)

        response = _error_response(HTTPStatus.NOT_FOUND) if matched is None else matched[1]
        if response.status == HTTPStatus.NOT_FOUND:
            self.events(LOG_WARN, "404", request.method, request.url)
        return response


def _error_response(status: HTTPStatus, headers: dict[str, str] | None = None) -> Response:
    return Response(
        status=int(status),
        headers={"Content-Type": "text/plain; charset=utf-8", **(headers or {})},
        body=status.phrase.encode("utf-8"),
    )


def make_handler_class(dispatcher: RequestDispatcher) -> type[BaseHTTPRequestHandler]:
    """Create a request handler class bound to a dispatcher.

    Args:
        dispatcher: Dispatcher answering every request

    Returns:
        Handler class for ``ThreadingHTTPServer``
    """

    class DispatchingHandler(BaseHTTPRequestHandler):
        """Adapts the stdlib HTTP server to the dispatcher."""

        protocol_version = "HTTP/1.1"

        def do_GET(self) -> None:
            """Handle GET requests."""
            self._serve(send_body=True)

        def do_HEAD(self) -> None:
            """Handle HEAD requests."""
            self._serve(send_body=False)

        def do_POST(self) -> None:
            """Reject requests carrying bodies."""
            self._discard_body()
            self._serve(send_body=True)

        do_PUT = do_POST
        do_DELETE = do_POST
        do_PATCH = do_POST
        do_OPTIONS = do_POST

        def __getattr__(self, name: str):
            # Unknown verbs still reach the dispatcher instead of the stdlib 501.
            if name.startswith("do_"):
                return self.do_POST
            raise AttributeError(name)

        def _discard_body(self) -> None:
            try:
                length = int(self.headers.get("Content-Length") or 0)
            except ValueError:
                length = 0
            if 0 < length <= MAX_DISCARDED_BODY:
                self.rfile.read(length)

        def _serve(self, send_body: bool) -> None:
            response = dispatcher.dispatch(Request(method=self.command, url=self.path))
            source = None
            try:
                if response.file_path is not None:
                    source = response.file_path.open("rb")
                    length = os.fstat(source.fileno()).st_size
                else:
                    length = len(response.body)
            except OSError as e:
                logger.error(f"Error reading {response.file_path}: {e}")
                response = _error_response(HTTPStatus.INTERNAL_SERVER_ERROR)
                length = len(response.body)

            try:
                self.send_response(response.status)
                for name, value in response.headers.items():
                    self.send_header(name, value)
                self.send_header("Content-Length", str(length))
                if self.command not in ALLOWED_METHODS:
                    # The request body is never read, so the connection cannot be reused.
                    self.send_header("Connection", "close")
                    self.close_connection = True
                self.end_headers()
                if send_body:
                    if source is not None:
                        shutil.copyfileobj(source, self.wfile)
                    else:
                        self.wfile.write(response.body)
            finally:
                if source is not None:
                    source.close()

        def log_message(self, format: str, *args: object) -> None:
            """Route stdlib access logging through the package logger."""
            logger.debug(f"{self.address_string()} - {format % args}")

    return DispatchingHandler
