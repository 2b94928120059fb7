"""Route table for the web server.

Routes are evaluated top to bottom and the first route returning a response
wins. The table built by ``build_route_table`` is ordered as:

1. static overrides (bundled assets shadowing project files)
2. the generated runner index
3. routes registered by the extension step
4. the waterfall file tree under the test root
5. ``/favicon.ico``
6. not found
"""

import asyncio
import inspect
import re
from concurrent.futures import ThreadPoolExecutor
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterator
from pathlib import Path

from pydantic import BaseModel, Field

from .errors import ExtensionHookError
from .models import RouteTableState, ServerConfig
from .utils.logging import setup_logger
from .waterfall import WaterfallResolver, guess_content_type

logger = setup_logger(__name__)

NO_CACHE_HEADERS: dict[str, str] = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

FAVICON_PATH = "/favicon.ico"


class Request(BaseModel):
    """Incoming request as seen by routes."""

    method: str = "GET"
    url: str = Field(description="Request target including any query string")

    @property
    def path(self) -> str:
        """Request path without the query string."""
        return self.url.split("?", 1)[0].split("#", 1)[0]


class Response(BaseModel):
    """Response produced by a route.

    Either ``body`` holds the content or ``file_path`` names a file streamed
    by the HTTP layer.
    """

    status: int = 200
    headers: dict[str, str] = Field(default_factory=dict)
    body: bytes = b""
    file_path: Path | None = None

    def read_body(self) -> bytes:
        """Return the full response content."""
        if self.file_path is not None:
            return self.file_path.read_bytes()
        return self.body


def not_found_response() -> Response:
    """Plain 404 response."""
    return Response(
        status=404,
        headers={"Content-Type": "text/plain; charset=utf-8"},
        body=b"Not Found",
    )


class Route(ABC):
    """Base class for routes."""

    @abstractmethod
    def handle(self, request: Request) -> Response | None:
        """Produce a response, or None if the route does not match.

        Args:
            request: Incoming request

        Returns:
            Response, or None to fall through to the next route
        """


class StaticOverride(Route):
    """Serves one local file for every path matching a regular expression."""

    def __init__(self, pattern: str | re.Pattern[str], file_path: Path) -> None:
        self.pattern = re.compile(pattern) if isinstance(pattern, str) else pattern
        self.file_path = file_path

    def handle(self, request: Request) -> Response | None:
        if not self.pattern.search(request.path):
            return None
        try:
            body = self.file_path.read_bytes()
        except FileNotFoundError:
            return not_found_response()
        return Response(
            headers={**NO_CACHE_HEADERS, "Content-Type": guess_content_type(self.file_path)},
            body=body,
        )

    def __repr__(self) -> str:
        return f"StaticOverride({self.pattern.pattern!r}, {str(self.file_path)!r})"


class GeneratedIndex(Route):
    """Serves pre-rendered HTML at one exact path."""

    def __init__(self, path: str, content: str) -> None:
        self.path = path
        self._body = content.encode("utf-8")

    def handle(self, request: Request) -> Response | None:
        if request.path != self.path:
            return None
        return Response(
            headers={**NO_CACHE_HEADERS, "Content-Type": "text/html; charset=utf-8"},
            body=self._body,
        )

    def __repr__(self) -> str:
        return f"GeneratedIndex({self.path!r})"


class ExtensionRoute(Route):
    """Route registered by the extension step.

    The handler may itself return None to fall through.
    """

    def __init__(
        self,
        pattern: str | re.Pattern[str],
        handler: Callable[[Request], Response | None],
    ) -> None:
        self.pattern = re.compile(pattern) if isinstance(pattern, str) else pattern
        self.handler = handler

    def handle(self, request: Request) -> Response | None:
        if not self.pattern.search(request.path):
            return None
        return self.handler(request)

    def __repr__(self) -> str:
        return f"ExtensionRoute({self.pattern.pattern!r})"


class FileTreeFallback(Route):
    """Serves files beneath the test root through waterfall resolution."""

    def __init__(self, resolver: WaterfallResolver) -> None:
        self.resolver = resolver

    def handle(self, request: Request) -> Response | None:
        file_path = self.resolver.resolve(request.url)
        if file_path is None:
            return None
        return Response(
            headers={**NO_CACHE_HEADERS, "Content-Type": guess_content_type(file_path)},
            file_path=file_path,
        )

    def __repr__(self) -> str:
        return f"FileTreeFallback({str(self.resolver.root)!r})"


class Favicon(Route):
    """Empty response for browser favicon requests."""

    def handle(self, request: Request) -> Response | None:
        if request.path != FAVICON_PATH:
            return None
        return Response()


class NotFound(Route):
    """Terminal route, matches everything with a 404."""

    def handle(self, request: Request) -> Response | None:
        return not_found_response()


class RouteTable:
    """Ordered routes, matched top to bottom.

    Routes can only be added while the table is unbuilt. Once built the table
    is frozen before the server starts and stays read-only for its lifetime.
    """

    def __init__(self) -> None:
        self._routes: list[Route] = []
        self._state = RouteTableState.UNBUILT

    @property
    def state(self) -> RouteTableState:
        return self._state

    def add(self, route: Route) -> Route:
        """Append a route.

        Raises:
            RuntimeError: If the table has already been built
        """
        if self._state != RouteTableState.UNBUILT:
            raise RuntimeError(f"Cannot add routes to a {self._state.value} route table")
        self._routes.append(route)
        return route

    def get(
        self,
        pattern: str | re.Pattern[str],
        handler: Callable[[Request], Response | None],
    ) -> Route:
        """Register an extension route for paths matching ``pattern``."""
        return self.add(ExtensionRoute(pattern, handler))

    def build(self) -> None:
        """Mark the table as complete."""
        if self._state != RouteTableState.UNBUILT:
            raise RuntimeError("Route table has already been built")
        self._state = RouteTableState.BUILT

    def freeze(self) -> None:
        """Make the table read-only for the server's lifetime."""
        if self._state == RouteTableState.UNBUILT:
            raise RuntimeError("Cannot freeze a route table that has not been built")
        self._state = RouteTableState.FROZEN

    def match(self, request: Request) -> tuple[Route, Response] | None:
        """Find the first route producing a response.

        Args:
            request: Incoming request

        Returns:
            Tuple of (route, response), or None if no route matched
        """
        for route in self._routes:
            response = route.handle(request)
            if response is not None:
                return route, response
        return None

    def __iter__(self) -> Iterator[Route]:
        return iter(tuple(self._routes))

    def __len__(self) -> int:
        return len(self._routes)


ExtensionHook = Callable[[RouteTable], Awaitable[None] | None]


def run_extension(extension: ExtensionHook, table: RouteTable) -> None:
    """Run the extension step against an unbuilt route table.

    Coroutine functions are awaited to completion before returning.

    Raises:
        ExtensionHookError: If the extension fails, with the original error
            as its cause
    """
    try:
        result = extension(table)
        if inspect.isawaitable(result):
            _run_to_completion(result)
    except Exception as e:
        logger.error(f"Web server extension failed: {e}")
        raise ExtensionHookError(f"Web server extension failed: {e}", e) from e


async def _await(awaitable: Awaitable[None]) -> None:
    await awaitable


def _run_to_completion(awaitable: Awaitable[None]) -> None:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        asyncio.run(_await(awaitable))
        return

    # The caller owns a running loop; drive the extension on a fresh one.
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="runnerserver-extension") as pool:
        pool.submit(asyncio.run, _await(awaitable)).result()


def build_route_table(
    config: ServerConfig,
    extension: ExtensionHook | None = None,
    resolver: WaterfallResolver | None = None,
) -> RouteTable:
    """Assemble the route table for a finalized configuration.

    Args:
        config: Finalized server configuration
        extension: Optional step allowed to register routes ahead of the file tree
        resolver: File tree resolver, defaults to the configured path mappings

    Returns:
        Built route table

    Raises:
        ExtensionHookError: If the extension step fails
    """
    table = RouteTable()

    for pattern, file_path in config.static_route_map.items():
        table.add(StaticOverride(pattern, file_path))

    if config.runner_content:
        table.add(GeneratedIndex(config.runner_path, config.runner_content))

    if extension is not None:
        run_extension(extension, table)

    table.add(
        FileTreeFallback(
            resolver or WaterfallResolver(config.root_directory, config.path_mappings)
        )
    )
    table.add(Favicon())
    table.add(NotFound())
    table.build()
    return table
