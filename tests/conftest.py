"""Pytest configuration and fixtures."""

import shutil
import tempfile
from pathlib import Path
from typing import Any

import pytest

from runnerserver.config import configure
from runnerserver.interrupt import ShutdownChannel
from runnerserver.lifecycle import LifecycleController
from runnerserver.models import ServerConfig, WebServerOptions
from runnerserver.port_manager import PortManager
from runnerserver.webserver import WebServer


class CollectingEventSink:
    """Event sink that records every event."""

    def __init__(self) -> None:
        self.events: list[tuple[Any, ...]] = []

    def __call__(self, event: str, *args: Any) -> None:
        self.events.append((event, *args))

    def of(self, event: str) -> list[tuple[Any, ...]]:
        """Return the arguments of every recorded ``event``."""
        return [entry[1:] for entry in self.events if entry[0] == event]


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fixture_project_dir() -> Path:
    """Get the read-only fixture project tree."""
    return Path(__file__).parent / "fixtures" / "project"


@pytest.fixture
def project_root(temp_dir: Path, fixture_project_dir: Path) -> Path:
    """Copy the fixture project into a temp dir and return the test root."""
    shutil.copytree(fixture_project_dir, temp_dir / "project")
    return temp_dir / "project" / "my-element"


@pytest.fixture
def events() -> CollectingEventSink:
    """Create an event sink that records events."""
    return CollectingEventSink()


@pytest.fixture
def port_manager() -> PortManager:
    """Create a port manager for testing."""
    return PortManager()


@pytest.fixture
def shutdown() -> ShutdownChannel:
    """Create a shutdown channel, fired at teardown."""
    channel = ShutdownChannel()
    yield channel
    channel.interrupt()


@pytest.fixture
def options(project_root: Path) -> WebServerOptions:
    """Create web server options rooted at the fixture project."""
    return WebServerOptions(root=project_root)


@pytest.fixture
def server_config(options: WebServerOptions) -> ServerConfig:
    """Create a finalized server configuration."""
    return configure(options)


@pytest.fixture
def lifecycle(shutdown: ShutdownChannel) -> LifecycleController:
    """Create a lifecycle controller bound to the test shutdown channel."""
    return LifecycleController(shutdown)


@pytest.fixture
def web_server(
    options: WebServerOptions,
    shutdown: ShutdownChannel,
    port_manager: PortManager,
    events: CollectingEventSink,
) -> WebServer:
    """Create and start a web server for testing."""
    server = WebServer(options, shutdown=shutdown, port_manager=port_manager, events=events)
    server.prepare()
    yield server
    server.close()
