"""Waterfall resolution of URL paths onto the filesystem.

A request path is tried against an ordered list of ``{url_prefix: directory}``
mappings and the first existing file wins. Resolution is traversal safe:

- the path is URL-decoded once and the query string ignored
- ``..`` segments, NUL bytes and backslashes are refused outright
- the candidate is resolved (following symlinks) and must still live under
  the mapping's directory
"""

import mimetypes
from pathlib import Path
from urllib.parse import unquote, urlsplit

from .renderer import BASENAME_PLACEHOLDER
from .utils.logging import setup_logger

logger = setup_logger(__name__)

INDEX_FILE = "index.html"

# mimetypes varies by platform for these
_CONTENT_TYPE_OVERRIDES = {
    ".js": "application/javascript",
    ".mjs": "application/javascript",
    ".map": "application/json",
    ".json": "application/json",
    ".html": "text/html",
    ".css": "text/css",
    ".svg": "image/svg+xml",
    ".wasm": "application/wasm",
}


def default_path_mappings(root: Path) -> list[dict[str, Path]]:
    """Default waterfall for a test root.

    The project is reachable under ``/components/<basename>/``, its installed
    dependencies and siblings under ``/components/``, and everything else from
    the root itself.
    """
    return [
        {f"/components/{BASENAME_PLACEHOLDER}/": root},
        {"/components/": root / "bower_components"},
        {"/components/": root.parent},
        {"/": root},
    ]


def guess_content_type(path: Path) -> str:
    """Infer a Content-Type header value from a file name."""
    suffix = path.suffix.lower()
    if suffix in _CONTENT_TYPE_OVERRIDES:
        content_type = _CONTENT_TYPE_OVERRIDES[suffix]
    else:
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    if content_type.startswith("text/") or content_type == "application/javascript":
        content_type += "; charset=utf-8"
    return content_type


class WaterfallResolver:
    """Maps request paths to files beneath a root directory."""

    def __init__(self, root: Path, mappings: list[dict[str, Path]] | None = None) -> None:
        """Initialize the resolver.

        Args:
            root: Test root directory
            mappings: Ordered ``{url_prefix: directory}`` entries; relative
                directories are taken from ``root``
        """
        self.root = root
        self.mappings: list[tuple[str, Path]] = []
        for mapping in mappings or default_path_mappings(root):
            for prefix, directory in mapping.items():
                self.mappings.append(self._normalize(prefix, Path(directory)))

    def _normalize(self, prefix: str, directory: Path) -> tuple[str, Path]:
        prefix = prefix.replace(BASENAME_PLACEHOLDER, self.root.name)
        if not prefix.startswith("/"):
            prefix = "/" + prefix
        if not prefix.endswith("/"):
            prefix += "/"
        if not directory.is_absolute():
            directory = self.root / directory
        return prefix, directory

    def resolve(self, url: str) -> Path | None:
        """Resolve a request URL to a file.

        Args:
            url: Request target, may include a query string

        Returns:
            Path of the file to serve, or None if nothing matches
        """
        path = unquote(urlsplit(url).path)
        if not is_safe_url_path(path):
            logger.debug(f"Refusing unsafe path {url!r}")
            return None

        for prefix, directory in self.mappings:
            if not path.startswith(prefix):
                continue
            candidate = _resolve_within(directory, path[len(prefix):])
            if candidate is not None:
                return candidate
        return None


def is_safe_url_path(path: str) -> bool:
    """Check a decoded URL path for traversal attempts."""
    if not path.startswith("/"):
        return False
    if "\x00" in path or "\\" in path:
        return False
    return ".." not in path.split("/")


def _resolve_within(directory: Path, relative: str) -> Path | None:
    try:
        base = directory.resolve(strict=True)
        target = (base / relative.lstrip("/")).resolve(strict=True)
    except (OSError, RuntimeError):
        return None

    if target.is_dir():
        try:
            target = (target / INDEX_FILE).resolve(strict=True)
        except (OSError, RuntimeError):
            return None

    # Symlinks may point outside the mapped directory.
    if base not in target.parents:
        return None
    return target if target.is_file() else None
