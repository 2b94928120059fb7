"""Core data models for runnerserver."""

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .utils.validation import validate_route_pattern

PACKAGE_ROOT = Path(__file__).resolve().parent
DATA_DIR = PACKAGE_ROOT / "data"

# Bundled assets shadow same-named files in the project being tested.
DEFAULT_STATIC_CONTENT: dict[str, Path] = {
    r"^(.*/web-component-tester|)/browser\.js$": DATA_DIR / "browser.js",
    r"^(.*/web-component-tester|)/browser\.js\.map$": DATA_DIR / "browser.js.map",
}


class RouteTableState(str, Enum):
    """Route table lifecycle states."""

    UNBUILT = "unbuilt"
    BUILT = "built"
    FROZEN = "frozen"


class ServerState(str, Enum):
    """Listening socket lifecycle states."""

    STOPPED = "stopped"
    LISTENING = "listening"
    CLOSED = "closed"


def _validate_port(v: int | None) -> int | None:
    if v is not None and (v < 1 or v > 65535):
        raise ValueError(f"Port must be between 1 and 65535, got {v}")
    return v


def _validate_static_content(v: dict[str, Path]) -> dict[str, Path]:
    for pattern, file_path in v.items():
        ok, error = validate_route_pattern(pattern)
        if not ok:
            raise ValueError(error)
        if not Path(file_path).is_absolute():
            raise ValueError(f"Static content for {pattern!r} must be an absolute path")
    return v


class WebServerOptions(BaseModel):
    """Web server options as supplied by the owning process."""

    root: Path = Field(default_factory=Path.cwd, description="Directory served as the test root")
    url_prefix: str = Field(
        default="", description="Prefix for the runner URL, may contain <basename>"
    )
    port: int | None = Field(default=None, description="Fixed port, or None for dynamic")
    static_content: dict[str, Path] = Field(
        default_factory=lambda: dict(DEFAULT_STATIC_CONTENT),
        description="Route expressions mapped to local files served ahead of the root",
    )
    path_mappings: list[dict[str, Path]] | None = Field(
        default=None, description="Ordered URL prefix to directory mappings"
    )
    verbose: bool = Field(default=False, description="Emit extra debug output")
    client_options: dict[str, Any] = Field(
        default_factory=dict, description="Options handed to the browser-side runner"
    )
    template_context: dict[str, Any] = Field(
        default_factory=dict, description="Extra values for the index template"
    )

    @field_validator("root", mode="before")
    @classmethod
    def validate_root(cls, v: str | Path) -> Path:
        """Convert string to Path and make it absolute."""
        path = Path(v) if isinstance(v, str) else v
        if not path.is_absolute():
            path = path.absolute()
        return path

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int | None) -> int | None:
        """Validate port is in valid range."""
        return _validate_port(v)

    @field_validator("static_content")
    @classmethod
    def validate_static_content(cls, v: dict[str, Path]) -> dict[str, Path]:
        """Validate route expressions compile and targets are absolute."""
        return _validate_static_content(v)


class ServerConfig(BaseModel):
    """Finalized web server configuration.

    Built once by ``configure()`` and never modified afterwards.
    """

    model_config = ConfigDict(frozen=True)

    root_directory: Path
    url_prefix: str = ""
    explicit_port: int | None = None
    static_route_map: dict[str, Path] = Field(default_factory=dict)
    path_mappings: list[dict[str, Path]] | None = None
    runner_path: str
    runner_content: str
    verbose: bool = False
    client_options: dict[str, Any] = Field(default_factory=dict)

    @field_validator("explicit_port")
    @classmethod
    def validate_port(cls, v: int | None) -> int | None:
        """Validate port is in valid range."""
        return _validate_port(v)

    @field_validator("static_route_map")
    @classmethod
    def validate_static_route_map(cls, v: dict[str, Path]) -> dict[str, Path]:
        """Validate route expressions compile and targets are absolute."""
        return _validate_static_content(v)
