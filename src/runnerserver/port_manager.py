"""Port management for runnerserver."""

import socket

from .errors import PortAllocationError
from .models import ServerConfig
from .utils.logging import setup_logger

logger = setup_logger(__name__)


def allocate_free_port(host: str = "127.0.0.1") -> int:
    """Ask the OS for an unused ephemeral TCP port.

    Args:
        host: Interface to probe

    Returns:
        Available port number

    Raises:
        OSError: If no port can be obtained
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        _, port = sock.getsockname()
    return int(port)


class PortManager:
    """Resolves and tracks ports used by web server instances."""

    def __init__(self, host: str = "127.0.0.1") -> None:
        """Initialize the port manager.

        Args:
            host: Interface used for port discovery
        """
        self.host = host
        self._allocated_ports: dict[str, int] = {}

    def resolve_port(self, config: ServerConfig) -> int:
        """Resolve the port a server should listen on.

        An explicit port is returned unchanged and is never probed. Otherwise
        a fresh port is discovered; nothing is cached between calls.

        Args:
            config: Finalized server configuration

        Returns:
            Port number

        Raises:
            PortAllocationError: If no port can be obtained
        """
        if config.explicit_port is not None:
            return config.explicit_port
        return self._find_available_port()

    def allocate_port(self, server_id: str, requested_port: int | None = None) -> int:
        """Record a port as used by a server instance.

        Args:
            server_id: Server instance identifier
            requested_port: Resolved port, or None to discover one

        Returns:
            Allocated port number

        Raises:
            PortAllocationError: If the port is held by another instance
                or discovery fails
        """
        if requested_port is not None:
            owner = self._owner_of(requested_port)
            if owner is not None and owner != server_id:
                raise PortAllocationError(
                    f"Port {requested_port} is already allocated to server '{owner}'"
                )
            self._allocated_ports[server_id] = requested_port
            logger.debug(f"Allocated port {requested_port} to server '{server_id}'")
            return requested_port

        port = self._find_available_port()
        self._allocated_ports[server_id] = port
        logger.debug(f"Allocated dynamic port {port} to server '{server_id}'")
        return port

    def release_port(self, server_id: str) -> None:
        """Release a port allocation.

        Args:
            server_id: Server instance identifier
        """
        if server_id in self._allocated_ports:
            port = self._allocated_ports.pop(server_id)
            logger.debug(f"Released port {port} from server '{server_id}'")

    def get_allocated_port(self, server_id: str) -> int | None:
        """Get the port allocated to a server instance, if any."""
        return self._allocated_ports.get(server_id)

    def is_port_allocated(self, port: int) -> bool:
        """Check if a port is currently allocated."""
        return port in self._allocated_ports.values()

    def _owner_of(self, port: int) -> str | None:
        for server_id, allocated in self._allocated_ports.items():
            if allocated == port:
                return server_id
        return None

    def _find_available_port(self) -> int:
        """Find an available port using OS allocation.

        Returns:
            Available port number

        Raises:
            PortAllocationError: If no port can be allocated
        """
        try:
            return allocate_free_port(self.host)
        except OSError as e:
            raise PortAllocationError(f"Failed to allocate dynamic port: {e}") from e
