"""Exceptions raised while starting the web server."""


class WebServerError(Exception):
    """Base class for web server startup failures."""


class PortAllocationError(WebServerError):
    """No usable port could be obtained."""


class BindError(WebServerError):
    """The listening socket could not be bound."""

    def __init__(self, message: str, port: int) -> None:
        super().__init__(message)
        self.port = port


class ExtensionHookError(WebServerError):
    """The extension step failed while the route table was being built.

    The original exception is kept as ``__cause__`` and on ``original``.
    """

    def __init__(self, message: str, original: BaseException) -> None:
        super().__init__(message)
        self.original = original
