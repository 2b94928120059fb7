"""Integration tests for a listening web server."""

import http.client
import logging
from pathlib import Path

import httpx
import pytest

from runnerserver.errors import ExtensionHookError, PortAllocationError
from runnerserver.events import LOG_DEBUG, LOG_INFO, LOG_WARN
from runnerserver.interrupt import ShutdownChannel
from runnerserver.models import DATA_DIR, WebServerOptions
from runnerserver.routes import NO_CACHE_HEADERS, Response, RouteTable
from runnerserver.utils.logging import set_package_level
from runnerserver.webserver import WebServer


class TestServing:
    """Requests against a started server."""

    def test_runner_page(self, web_server: WebServer):
        """Test the generated index is served with no-cache headers."""
        response = httpx.get(web_server.runner_url, timeout=5.0)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert response.content == web_server.config.runner_content.encode("utf-8")
        assert "my-element" in response.text
        for name, value in NO_CACHE_HEADERS.items():
            assert response.headers[name] == value

    def test_runner_page_stable(self, web_server: WebServer):
        """Test repeated requests get byte-identical pages."""
        with httpx.Client(timeout=5.0) as client:
            bodies = {client.get(web_server.runner_url).content for _ in range(3)}
        assert len(bodies) == 1

    def test_bundled_browser_js(self, web_server: WebServer, project_root: Path):
        """Test the bundled browser.js shadows the project's copy."""
        response = httpx.get(f"{web_server.url}/browser.js", timeout=5.0)

        assert response.status_code == 200
        assert response.content == (DATA_DIR / "browser.js").read_bytes()
        assert response.content != (project_root / "browser.js").read_bytes()
        assert response.headers["cache-control"] == NO_CACHE_HEADERS["Cache-Control"]

    def test_project_file(self, web_server: WebServer, project_root: Path):
        """Test project files are streamed with an inferred content type."""
        response = httpx.get(f"{web_server.url}/components/my-element/my-element.js", timeout=5.0)

        assert response.status_code == 200
        assert response.content == (project_root / "my-element.js").read_bytes()
        assert response.headers["content-type"].startswith("application/javascript")
        assert response.headers["content-length"] == str(len(response.content))

    def test_not_found(self, web_server: WebServer, events):
        """Test a missing file is a 404 with exactly one warning."""
        response = httpx.get(f"{web_server.url}/nope.js", timeout=5.0)

        assert response.status_code == 404
        assert events.of(LOG_WARN) == [("404", "GET", "/nope.js")]

    def test_traversal_is_not_found(self, web_server: WebServer):
        """Test encoded traversal does not escape the root."""
        response = httpx.get(f"{web_server.url}/%2e%2e/secret.txt", timeout=5.0)
        assert response.status_code == 404

    def test_favicon(self, web_server: WebServer):
        """Test favicon requests get an empty 200."""
        response = httpx.get(f"{web_server.url}/favicon.ico", timeout=5.0)

        assert response.status_code == 200
        assert response.content == b""

    def test_head(self, web_server: WebServer, project_root: Path):
        """Test HEAD requests get headers only."""
        response = httpx.head(f"{web_server.url}/my-element.js", timeout=5.0)

        assert response.status_code == 200
        assert response.content == b""
        size = (project_root / "my-element.js").stat().st_size
        assert response.headers["content-length"] == str(size)

    def test_post_rejected(self, web_server: WebServer):
        """Test request bodies are not accepted."""
        response = httpx.post(f"{web_server.url}/my-element.js", content=b"data", timeout=5.0)
        assert response.status_code == 405

    def test_debug_events(self, web_server: WebServer, events):
        """Test each request emits a debug event with method and URL."""
        httpx.get(f"{web_server.url}/index.html?a=1", timeout=5.0)
        assert ("GET", "/index.html?a=1") in events.of(LOG_DEBUG)

    def test_unknown_method(self, web_server: WebServer, events):
        """Test an unregistered verb is logged and answered with 405."""
        connection = http.client.HTTPConnection("127.0.0.1", web_server.port, timeout=5.0)
        try:
            connection.request("PROPFIND", "/x")
            response = connection.getresponse()
            response.read()
        finally:
            connection.close()

        assert response.status == 405
        assert response.getheader("Allow") == "GET, HEAD"
        assert ("PROPFIND", "/x") in events.of(LOG_DEBUG)

    def test_startup_event(self, web_server: WebServer, project_root: Path, events):
        """Test startup is announced once with the port and root."""
        assert events.of(LOG_INFO) == [
            ("Web server running on port", web_server.port, "and serving from", project_root)
        ]


class TestWebServerLifecycle:
    """Startup and shutdown of WebServer."""

    def test_explicit_port(self, options: WebServerOptions, shutdown, events):
        """Test a configured port is used as is."""
        first = WebServer(options.model_copy(), shutdown=shutdown, events=events)
        first.prepare()
        port = first.port
        first.close()

        server = WebServer(
            options.model_copy(update={"port": port}), shutdown=shutdown, events=events
        )
        with server:
            assert server.port == port
            assert httpx.get(f"{server.url}/favicon.ico", timeout=5.0).status_code == 200

    def test_sequential_servers_get_different_ports(self, options, shutdown, port_manager, events):
        """Test dynamic ports are discovered per instance."""
        first = WebServer(options, shutdown=shutdown, port_manager=port_manager, events=events)
        second = WebServer(options, shutdown=shutdown, port_manager=port_manager, events=events)
        with first, second:
            assert first.port != second.port
            assert port_manager.get_allocated_port(first.server_id) == first.port
            assert port_manager.get_allocated_port(second.server_id) == second.port

    def test_close_releases_port(self, web_server: WebServer, port_manager):
        """Test closing releases the port allocation."""
        web_server.close()
        assert port_manager.get_allocated_port(web_server.server_id) is None

    def test_closed_server_refuses_connections(self, web_server: WebServer):
        """Test connections are refused after close, and close is repeatable."""
        url = f"{web_server.url}/favicon.ico"
        web_server.close()
        web_server.close()

        with pytest.raises(httpx.ConnectError):
            httpx.get(url, timeout=2.0)

    def test_interrupt_stops_server(self, options, port_manager, events):
        """Test firing the shutdown channel closes the socket."""
        channel = ShutdownChannel()
        server = WebServer(options, shutdown=channel, port_manager=port_manager, events=events)
        server.prepare()
        url = f"{server.url}/favicon.ico"

        channel.interrupt()

        assert not server.handle.is_listening
        assert port_manager.get_allocated_port(server.server_id) is None
        with pytest.raises(httpx.ConnectError):
            httpx.get(url, timeout=2.0)
        server.close()

    def test_prepare_is_idempotent(self, web_server: WebServer):
        """Test preparing twice returns the running handle."""
        assert web_server.prepare() is web_server.handle

    def test_extension_route(self, options, shutdown, events):
        """Test routes added by the extension are served ahead of the root."""

        def extension(table: RouteTable) -> None:
            table.get(r"^/index\.html$", lambda request: Response(body=b"extended"))

        with WebServer(options, shutdown=shutdown, extension=extension, events=events) as server:
            response = httpx.get(f"{server.url}/index.html", timeout=5.0)
            assert response.content == b"extended"

    def test_extension_failure_aborts_startup(self, options, shutdown, port_manager, events):
        """Test a failing extension prevents the server from listening."""

        def extension(table: RouteTable) -> None:
            raise RuntimeError("no socket for you")

        server = WebServer(
            options,
            shutdown=shutdown,
            extension=extension,
            port_manager=port_manager,
            events=events,
        )
        with pytest.raises(ExtensionHookError) as exc_info:
            server.prepare()

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert server.handle is None
        assert events.of(LOG_INFO) == []
        assert port_manager.get_allocated_port(server.server_id) is None

    def test_port_conflict_between_instances(self, options, shutdown, port_manager, events):
        """Test two instances cannot claim the same explicit port."""
        with WebServer(options, shutdown=shutdown, port_manager=port_manager, events=events) as a:
            clash = WebServer(
                options.model_copy(update={"port": a.port}),
                shutdown=shutdown,
                port_manager=port_manager,
                events=events,
            )
            with pytest.raises(PortAllocationError):
                clash.prepare()


class TestVerbose:
    """Verbose mode on WebServer."""

    def test_verbose_lowers_package_level(self, options: WebServerOptions, shutdown, events):
        """Test a verbose server switches the package loggers to DEBUG."""
        server = WebServer(
            options.model_copy(update={"verbose": True}), shutdown=shutdown, events=events
        )
        try:
            config = server.configure()
            assert config.client_options["verbose"] is True
            assert logging.getLogger("runnerserver.webserver").level == logging.DEBUG
        finally:
            set_package_level(logging.INFO)

    def test_quiet_keeps_package_level(self, options: WebServerOptions, shutdown, events):
        """Test a non-verbose server leaves logger levels alone."""
        before = logging.getLogger("runnerserver.webserver").level
        WebServer(options.model_copy(), shutdown=shutdown, events=events).configure()
        assert logging.getLogger("runnerserver.webserver").level == before
