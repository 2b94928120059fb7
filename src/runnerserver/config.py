"""Finalization of web server options."""

from .models import DEFAULT_STATIC_CONTENT, ServerConfig, WebServerOptions
from .renderer import IndexRenderer, compute_runner_path
from .utils.logging import setup_logger

logger = setup_logger(__name__)


def configure(
    options: WebServerOptions,
    renderer: IndexRenderer | None = None,
) -> ServerConfig:
    """Finalize options into an immutable server configuration.

    The runner path and page are computed here, once. Every request for the
    runner path is answered with this exact content.

    Args:
        options: Web server options
        renderer: Index renderer, defaults to the bundled template

    Returns:
        Frozen server configuration
    """
    static_content = {**DEFAULT_STATIC_CONTENT, **options.static_content}
    client_options = dict(options.client_options)

    if options.verbose:
        client_options["verbose"] = True

    # Render from the merged view so the page sees the same options as the server.
    merged = options.model_copy(
        update={"static_content": static_content, "client_options": client_options}
    )
    renderer = renderer or IndexRenderer()

    config = ServerConfig(
        root_directory=merged.root,
        url_prefix=merged.url_prefix,
        explicit_port=merged.port,
        static_route_map=static_content,
        path_mappings=merged.path_mappings,
        runner_path=compute_runner_path(merged.url_prefix, merged.root),
        runner_content=renderer.render(merged),
        verbose=merged.verbose,
        client_options=client_options,
    )
    logger.debug(f"Configured runner at {config.runner_path} for {config.root_directory}")
    return config
