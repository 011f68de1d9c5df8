"""
Stagehand Local Connection

Execute commands on the local machine (no remote connection).
"""

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from stagehand.connections.base import TIMEOUT_RC, Connection, RunResult
from stagehand.engine.inventory import Host

logger = logging.getLogger(__name__)


def _umask() -> int:
    current = os.umask(0)
    os.umask(current)
    return current


class LocalConnection(Connection):
    """
    Local connection - execute commands on the control node.

    Used for localhost execution without any network operations.
    """

    def __init__(self, host: Host):
        super().__init__(host)
        self._connected = False

    async def connect(self) -> None:
        """Local connection is always available."""
        self._connected = True

    async def close(self) -> None:
        """Nothing to close for local connection."""
        self._connected = False

    async def run(
        self,
        command: str,
        timeout: Optional[float] = None,
        cwd: Optional[str] = None,
    ) -> RunResult:
        """Run a command through the local shell."""
        logger.debug("[%s] local: %s", self.host.name, command)
        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=os.environ.copy(),
            )
        except OSError as e:
            return RunResult(rc=1, stdout="", stderr=str(e))

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                process.communicate(),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return RunResult(rc=TIMEOUT_RC, stdout="", stderr="Command timed out")

        return RunResult(
            rc=process.returncode or 0,
            stdout=stdout_bytes.decode('utf-8', errors='replace'),
            stderr=stderr_bytes.decode('utf-8', errors='replace'),
        )

    async def put(
        self,
        content: bytes,
        remote_path: str,
        mode: Optional[int] = None,
    ) -> None:
        """Write the file through a sibling temp file and an atomic rename."""
        dest = Path(remote_path)
        fd, tmp = tempfile.mkstemp(dir=dest.parent, prefix=f".{dest.name}.")
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(content)
            os.chmod(tmp, mode if mode is not None else 0o666 & ~_umask())
            os.replace(tmp, dest)
        except OSError:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
