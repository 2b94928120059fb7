"""Entry point for the runnerserver web server."""

import argparse
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from .errors import WebServerError
from .interrupt import ShutdownChannel, install_signal_handlers
from .lifecycle import wait_until_ready
from .models import WebServerOptions
from .utils.logging import add_file_handler, set_package_level, setup_logger
from .utils.validation import validate_root_directory
from .webserver import WebServer

logger = setup_logger(__name__)


def _key_value(text: str) -> tuple[str, str]:
    key, sep, value = text.partition("=")
    if not sep or not key or not value:
        raise argparse.ArgumentTypeError(f"Expected KEY=PATH, got {text!r}")
    return key, value


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        description="Serve a project's tests and the generated runner page to a browser"
    )
    parser.add_argument(
        "--root",
        type=str,
        default=".",
        help="Directory to serve as the test root (default: current directory)",
    )
    parser.add_argument(
        "--url-prefix",
        type=str,
        default="",
        help="Prefix for the runner URL, <basename> is replaced by the root's name",
    )
    parser.add_argument(
        "--port",
        type=int,
        help="Port to listen on (default: any free port)",
    )
    parser.add_argument(
        "--static",
        type=_key_value,
        action="append",
        default=[],
        metavar="REGEX=PATH",
        help="Serve PATH for request paths matching REGEX, ahead of the root",
    )
    parser.add_argument(
        "--mapping",
        type=_key_value,
        action="append",
        default=[],
        metavar="PREFIX=PATH",
        help="Waterfall mapping of a URL prefix to a directory (repeatable, in order)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Emit debug output for every request",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        help="Also write logs to this file",
    )
    return parser


def options_from_args(args: argparse.Namespace) -> WebServerOptions:
    """Translate parsed arguments into web server options.

    Raises:
        ValidationError: If the options are invalid
    """
    values: dict = {
        "root": args.root,
        "url_prefix": args.url_prefix,
        "port": args.port,
        "verbose": args.verbose,
    }
    if args.static:
        values["static_content"] = {
            pattern: Path(path).absolute() for pattern, path in args.static
        }
    if args.mapping:
        values["path_mappings"] = [{prefix: Path(path)} for prefix, path in args.mapping]
    return WebServerOptions(**values)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the web server."""
    args = build_parser().parse_args(argv)

    set_package_level(getattr(logging, args.log_level))
    if args.log_file:
        add_file_handler(logging.getLogger("runnerserver"), Path(args.log_file))

    try:
        options = options_from_args(args)
    except ValidationError as e:
        logger.error(f"Invalid options: {e}")
        sys.exit(1)

    ok, error = validate_root_directory(options.root)
    if not ok:
        logger.error(error)
        sys.exit(1)

    shutdown = ShutdownChannel()
    install_signal_handlers(shutdown)
    server = WebServer(options, shutdown=shutdown)

    try:
        handle = server.prepare()
    except WebServerError as e:
        logger.error(f"Failed to start web server: {e}")
        sys.exit(1)

    if not wait_until_ready(handle):
        logger.warning(f"Web server on port {handle.port} is not answering yet")
    logger.info(f"Runner available at {server.runner_url}")

    try:
        shutdown.wait()
    except KeyboardInterrupt:
        logger.info("Received interrupt, shutting down...")
    finally:
        server.close()


if __name__ == "__main__":
    main()
