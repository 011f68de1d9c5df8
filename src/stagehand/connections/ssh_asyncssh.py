"""
Stagehand SSH Connection (asyncssh)

SSH connection using asyncssh for async operations.
"""

import asyncio
import logging
import os
import shlex
from typing import Optional

import asyncssh

from stagehand.connections.base import TIMEOUT_RC, Connection, RunResult
from stagehand.engine.errors import ConnectionError
from stagehand.engine.inventory import Host

logger = logging.getLogger(__name__)


class SSHConnection(Connection):
    """
    SSH connection using asyncssh.

    Authenticates as the host's ``user`` with the private key file named by
    its ``credential``. Host key checking follows ``host_key_checking``
    (default on, using the user's known_hosts).
    """

    def __init__(self, host: Host, connect_timeout: float = 30):
        super().__init__(host)

        self.connect_timeout = connect_timeout
        self._conn: Optional['asyncssh.SSHClientConnection'] = None
        self._sftp: Optional['asyncssh.SFTPClient'] = None

    def _connect_kwargs(self) -> dict:
        connect_kwargs = {
            'host': self.host.address,
            'port': self.host.port,
            'username': self.host.user,
            'client_keys': [os.path.expanduser(str(self.host.credential))],
            'connect_timeout': self.connect_timeout,
        }

        checking = self.host.get_variable('host_key_checking', True)
        if str(checking).lower() in ('false', 'no', '0'):
            connect_kwargs['known_hosts'] = None

        return connect_kwargs

    async def connect(self) -> None:
        """Establish SSH connection."""
        kwargs = self._connect_kwargs()
        logger.debug(
            "ssh connect %s@%s:%s", kwargs['username'], kwargs['host'], kwargs['port']
        )
        try:
            self._conn = await asyncssh.connect(**kwargs)
        except asyncssh.PermissionDenied as e:
            raise ConnectionError(
                host=self.host.name,
                message=f"authentication rejected: {e}",
                connection_type='ssh',
            )
        except (OSError, asyncssh.Error, asyncio.TimeoutError) as e:
            raise ConnectionError(
                host=self.host.name,
                message=f"unreachable: {e}",
                connection_type='ssh',
            )

    async def close(self) -> None:
        """Close SSH connection."""
        if self._sftp:
            self._sftp.exit()
            self._sftp = None
        if self._conn:
            self._conn.close()
            await self._conn.wait_closed()
            self._conn = None

    async def run(
        self,
        command: str,
        timeout: Optional[float] = None,
        cwd: Optional[str] = None,
    ) -> RunResult:
        """Run a command over SSH."""
        if not self._conn:
            return RunResult(rc=1, stdout="", stderr="Not connected")

        if cwd:
            command = f"cd {shlex.quote(cwd)} && {command}"

        logger.debug("[%s] ssh: %s", self.host.name, command)
        try:
            result = await asyncio.wait_for(
                self._conn.run(command, check=False),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            return RunResult(rc=TIMEOUT_RC, stdout="", stderr="Command timed out")
        except asyncssh.Error as e:
            return RunResult(rc=1, stdout="", stderr=str(e))

        return RunResult(
            rc=result.exit_status or 0,
            stdout=str(result.stdout or ""),
            stderr=str(result.stderr or ""),
        )

    async def _get_sftp(self) -> 'asyncssh.SFTPClient':
        """Get or create SFTP client."""
        if self._sftp is None:
            self._sftp = await self._conn.start_sftp_client()
        return self._sftp

    async def put(
        self,
        content: bytes,
        remote_path: str,
        mode: Optional[int] = None,
    ) -> None:
        """Upload ``content`` via SFTP."""
        if not self._conn:
            raise OSError(f"not connected to {self.host.name}")

        try:
            sftp = await self._get_sftp()
            async with sftp.open(remote_path, 'wb') as f:
                await f.write(content)
            if mode is not None:
                await sftp.chmod(remote_path, mode)
        except asyncssh.Error as e:
            raise OSError(f"sftp upload of {remote_path} failed: {e}") from e
