"""Generated runner index page."""

from pathlib import Path
from typing import Any

from jinja2 import Environment, StrictUndefined

from .models import DATA_DIR, WebServerOptions

DEFAULT_TEMPLATE = DATA_DIR / "index.html"
BASENAME_PLACEHOLDER = "<basename>"
RUNNER_SUFFIX = "/generated-index.html"


def expand_url_prefix(url_prefix: str, root: Path) -> str:
    """Substitute the root's basename into a URL prefix."""
    return url_prefix.replace(BASENAME_PLACEHOLDER, root.name)


def compute_runner_path(url_prefix: str, root: Path) -> str:
    """Compute the public path of the generated index page.

    Args:
        url_prefix: Configured prefix, may contain ``<basename>``
        root: Test root directory

    Returns:
        URL path such as ``/components/my-element/generated-index.html``
    """
    return expand_url_prefix(url_prefix, root) + RUNNER_SUFFIX


class IndexRenderer:
    """Renders the runner index page from web server options.

    The template is read once when the renderer is created; ``render`` does no
    I/O and returns the same string for the same options.
    """

    def __init__(self, template_path: Path | None = None) -> None:
        """Load the index template.

        Args:
            template_path: Template file, defaults to the bundled ``index.html``
        """
        self.template_path = template_path or DEFAULT_TEMPLATE
        env = Environment(
            autoescape=True,
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=StrictUndefined,
        )
        self._template = env.from_string(self.template_path.read_text(encoding="utf-8"))

    def render(self, options: WebServerOptions) -> str:
        """Render the index page.

        Args:
            options: Web server options

        Returns:
            HTML document
        """
        return self._template.render(**self.build_context(options))

    @staticmethod
    def build_context(options: WebServerOptions) -> dict[str, Any]:
        """Build the template context for a set of options."""
        context: dict[str, Any] = {
            "suites": [],
            **options.template_context,
        }
        context.update(
            root=str(options.root),
            basename=options.root.name,
            url_prefix=expand_url_prefix(options.url_prefix, options.root),
            client_options=options.client_options,
            verbose=options.verbose,
        )
        return context
