"""
Stagehand Connection Base Class

Abstract channel used by modules to execute commands on a host, plus the
factory that opens the right channel for a host.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from stagehand.engine.errors import ConnectionError
from stagehand.engine.inventory import Host

logger = logging.getLogger(__name__)

# Exit status reported when a command exceeds its timeout
TIMEOUT_RC = 124


@dataclass
class RunResult:
    """Result of running a command on a host."""

    rc: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.rc == 0


class Connection(ABC):
    """
    Abstract base class for connections.

    A connection is an authenticated execution channel to one host.
    Commands are shell command lines; modules build them and read the
    results back.
    """

    def __init__(self, host: Host):
        self.host = host

    @abstractmethod
    async def connect(self) -> None:
        """Establish the connection."""

    @abstractmethod
    async def close(self) -> None:
        """Close the connection."""

    @abstractmethod
    async def run(
        self,
        command: str,
        timeout: Optional[float] = None,
        cwd: Optional[str] = None,
    ) -> RunResult:
        """
        Run a shell command on the host.

        Args:
            command: Command line to execute
            timeout: Optional timeout in seconds
            cwd: Working directory

        Returns:
            RunResult with rc, stdout, stderr
        """

    @abstractmethod
    async def put(
        self,
        content: bytes,
        remote_path: str,
        mode: Optional[int] = None,
    ) -> None:
        """
        Store ``content`` as the file ``remote_path`` on the host.

        The parent directory must exist.

        Raises:
            OSError: If the file cannot be written
        """

    @property
    def connection_type(self) -> str:
        """Return the connection type name."""
        return self.__class__.__name__.replace('Connection', '').lower()


def create_connection(host: Host, connect_timeout: float = 30) -> Connection:
    """Create an unconnected channel matching the host's connection kind."""
    if host.is_local:
        from stagehand.connections.local import LocalConnection
        return LocalConnection(host)

    if host.connection == 'ssh':
        from stagehand.connections.ssh_asyncssh import SSHConnection
        return SSHConnection(host, connect_timeout=connect_timeout)

    raise ConnectionError(host.name, f"Unknown connection type: {host.connection}")


async def connect(host: Host, connect_timeout: float = 30) -> Connection:
    """
    Open a connected channel to ``host``.

    Raises:
        ConnectionError: If the host is unreachable or rejects authentication
    """
    conn = create_connection(host, connect_timeout=connect_timeout)
    logger.debug("connecting to %s via %s", host.name, conn.connection_type)
    await conn.connect()
    return conn
