"""Validation utilities for runnerserver."""

import re
from pathlib import Path


def validate_root_directory(path: Path) -> tuple[bool, str | None]:
    """Validate that a serving root exists and is readable.

    Args:
        path: Path to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not path.exists():
        return False, f"Directory does not exist: {path}"

    if not path.is_dir():
        return False, f"Path is not a directory: {path}"

    try:
        next(path.iterdir(), None)
    except PermissionError:
        return False, f"Permission denied accessing directory: {path}"
    except OSError as e:
        return False, f"Error accessing directory {path}: {e}"

    return True, None


def validate_route_pattern(pattern: str) -> tuple[bool, str | None]:
    """Validate that a route key compiles as a regular expression.

    Args:
        pattern: Regular expression source

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        re.compile(pattern)
    except re.error as e:
        return False, f"Invalid route pattern {pattern!r}: {e}"
    return True, None
