"""Shutdown channel shared between the owning process and the web server."""

import atexit
import signal
import threading
from collections.abc import Callable
from types import FrameType

from .utils.logging import setup_logger

logger = setup_logger(__name__)


class ShutdownChannel:
    """One-shot interrupt broadcaster.

    Callbacks registered with ``on_interrupt`` run once, in registration order,
    the first time ``interrupt`` is called. Callbacks registered after that run
    immediately.
    """

    def __init__(self) -> None:
        self._callbacks: list[Callable[[], None]] = []
        self._lock = threading.Lock()
        self._event = threading.Event()

    def on_interrupt(self, callback: Callable[[], None]) -> None:
        """Register a callback to run when the channel fires.

        Args:
            callback: Zero-argument callable
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        self._run(callback)

    def interrupt(self) -> None:
        """Fire the channel. Later calls are no-ops."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []

        for callback in callbacks:
            self._run(callback)

    def is_set(self) -> bool:
        """Check whether the channel has fired."""
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the channel fires.

        Args:
            timeout: Seconds to wait, or None to wait forever

        Returns:
            True if the channel fired
        """
        return self._event.wait(timeout)

    @staticmethod
    def _run(callback: Callable[[], None]) -> None:
        # Shutdown must reach every subscriber even if one of them fails.
        try:
            callback()
        except Exception as e:
            logger.warning(f"Shutdown callback {callback!r} failed: {e}")


def install_signal_handlers(
    channel: ShutdownChannel,
    signals: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM),
) -> None:
    """Route process signals and interpreter exit to a shutdown channel.

    Must be called from the main thread.

    Args:
        channel: Channel to fire
        signals: Signals that trigger shutdown
    """

    def handle_signal(signum: int, frame: FrameType | None) -> None:
        logger.info(f"Received {signal.Signals(signum).name}, shutting down...")
        channel.interrupt()

    for sig in signals:
        signal.signal(sig, handle_signal)

    atexit.register(channel.interrupt)
