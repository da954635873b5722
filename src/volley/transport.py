"""Remote shell and remote copy capabilities.

The executor only talks to the ``RemoteShell`` and ``RemoteCopy`` protocols.
The asyncssh-backed implementations below are the defaults; tests substitute
their own.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, AsyncIterator, Protocol

import asyncssh

from .config import AuthConfig
from .errors import AuthResolutionError, ConnectError, RemoteExecError, TransferError
from .inventory import HostRecord
from .timed import TimedTunnel

logger = logging.getLogger(__name__)


class Session(Protocol):
    async def run(self, command: str) -> tuple[str, str]:
        """Run ``command``, returning (stdout, stderr).

        Raises RemoteExecError if the command fails.
        """
        ...


class RemoteShell(Protocol):
    def connect(self, host: HostRecord, auth: AuthConfig) -> AsyncContextManager[Session]:
        ...


class Transfer(Protocol):
    async def send_file(self, local_path: str, remote_path: str, mode: int) -> None:
        ...


class RemoteCopy(Protocol):
    def connect(self, host: HostRecord, auth: AuthConfig) -> AsyncContextManager[Transfer]:
        ...


def resolve_credentials(host: HostRecord, auth: AuthConfig) -> dict[str, Any]:
    """Build the asyncssh authentication options for ``host``."""
    if auth.mode == "password":
        return {"password": host.password, "client_keys": None}

    key_file = auth.key_file
    try:
        key = asyncssh.read_private_key(str(key_file))
    except (OSError, asyncssh.KeyImportError, asyncssh.KeyEncryptionError) as e:
        raise AuthResolutionError(f"Cannot load private key {key_file}: {e}") from e
    return {"client_keys": [key]}


@asynccontextmanager
async def _connection(
    host: HostRecord, auth: AuthConfig
) -> AsyncIterator[asyncssh.SSHClientConnection]:
    credentials = resolve_credentials(host, auth)
    logger.debug("Connecting to %s", host.target)
    try:
        conn = await asyncssh.connect(
            host.address,
            port=host.port,
            username=host.user,
            known_hosts=None,  # Host keys are not verified
            tunnel=TimedTunnel(auth.timeout),
            connect_timeout=auth.timeout,
            **credentials,
        )
    except (asyncssh.Error, OSError, asyncio.TimeoutError) as e:
        raise ConnectError(f"Connection to {host.target} failed: {_describe(e)}") from e

    async with conn:
        yield conn


def _describe(e: BaseException) -> str:
    return str(e) or type(e).__name__


def _text(data: Any) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")
    return data.strip()


class AsyncsshSession:
    def __init__(
        self, host: HostRecord, conn: asyncssh.SSHClientConnection, timeout: float
    ):
        self.host = host
        self._conn = conn
        self.timeout = timeout

    async def run(self, command: str) -> tuple[str, str]:
        try:
            result = await self._conn.run(command, check=False)
        except (asyncssh.Error, OSError) as e:
            raise ConnectError(
                f"Connection to {self.host.target} lost before the command finished: "
                f"{_describe(e)}"
            ) from e

        stdout = _text(result.stdout)
        stderr = _text(result.stderr)
        if result.exit_status is None and not result.exit_signal:
            # No exit report: the connection went away under the command
            raise ConnectError(
                f"Connection to {self.host.target} lost before the command finished "
                f"(no I/O within {self.timeout:g}s or peer closed)"
            )
        if result.exit_status != 0:
            if result.exit_signal:
                message = f"Process killed by signal {result.exit_signal[0]}"
            else:
                message = f"Process exited with status {result.exit_status}"
            raise RemoteExecError(message, stdout, stderr)
        return stdout, stderr


class AsyncsshShell:
    """RemoteShell over asyncssh."""

    @asynccontextmanager
    async def connect(self, host: HostRecord, auth: AuthConfig) -> AsyncIterator[AsyncsshSession]:
        async with _connection(host, auth) as conn:
            yield AsyncsshSession(host, conn, auth.timeout)


class SFTPTransfer:
    def __init__(self, host: HostRecord, sftp: asyncssh.SFTPClient):
        self.host = host
        self._sftp = sftp

    async def send_file(self, local_path: str, remote_path: str, mode: int) -> None:
        logger.debug("Copying %s to %s:%s (mode %04o)", local_path, self.host.address, remote_path, mode)
        try:
            await self._sftp.put(local_path, remote_path)
            await self._sftp.chmod(remote_path, mode)
        except (asyncssh.Error, OSError) as e:
            raise TransferError(f"Copy of {local_path} to {remote_path} failed: {e}") from e


class AsyncsshCopy:
    """RemoteCopy over an asyncssh SFTP session."""

    @asynccontextmanager
    async def connect(self, host: HostRecord, auth: AuthConfig) -> AsyncIterator[SFTPTransfer]:
        async with _connection(host, auth) as conn:
            try:
                sftp = await conn.start_sftp_client()
            except (asyncssh.Error, OSError) as e:
                raise TransferError(f"Cannot open copy session on {host.target}: {e}") from e
            try:
                yield SFTPTransfer(host, sftp)
            finally:
                sftp.exit()
                await sftp.wait_closed()
