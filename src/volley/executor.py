"""Concurrent execution engine for volley."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import posixpath
import shlex
import stat
import time
from typing import AsyncIterator, Awaitable, Callable

from .config import Config
from .errors import (
    NotFoundError,
    PathMismatchError,
    RemoteExecError,
    TransferError,
    VolleyError,
)
from .inventory import CompletionStream, HostRecord, HostSet
from .transport import AsyncsshCopy, AsyncsshShell, RemoteCopy, RemoteShell

logger = logging.getLogger(__name__)

# (host) -> (stdout, stderr)
Operation = Callable[[HostRecord], Awaitable[tuple[str, str]]]


class Executor:
    """Runs remote operations across many hosts.

    Each host runs in its own task. Finished hosts are yielded in completion
    order and a failure on one host never affects another.
    """

    def __init__(
        self,
        config: Config,
        shell: RemoteShell | None = None,
        copier: RemoteCopy | None = None,
    ):
        self.config = config
        self.shell = shell if shell is not None else AsyncsshShell()
        self.copier = copier if copier is not None else AsyncsshCopy()

    async def execute(self, host: HostRecord, command: str) -> tuple[str, str]:
        """Run ``command`` on ``host`` and return (stdout, stderr)."""
        async with self.shell.connect(host, self.config.auth) as session:
            return await session.run(command)

    async def copy_file(self, host: HostRecord, src: str, dst: str, mode: int) -> None:
        """Copy one local file to ``dst`` on ``host``.

        The base names of ``src`` and ``dst`` must match; this is checked
        before any connection is made.
        """
        if os.path.basename(src) != posixpath.basename(dst):
            raise PathMismatchError(
                f"Base names of src and dst must be the same: {src} -> {dst}"
            )
        async with self.copier.connect(host, self.config.auth) as transfer:
            await transfer.send_file(src, dst, mode)

    async def copy_path(self, host: HostRecord, src: str, dst: str, mode: int) -> None:
        """Copy a file or mirror a directory tree to ``dst`` on ``host``."""
        try:
            st = os.stat(src)
        except FileNotFoundError:
            raise NotFoundError(f"Source not found: {src}") from None
        except OSError as e:
            raise TransferError(f"Cannot stat {src}: {e}") from e

        if stat.S_ISREG(st.st_mode):
            await self.copy_file(host, src, dst, mode)
            return
        if not stat.S_ISDIR(st.st_mode):
            raise TransferError(f"Not a regular file or directory: {src}")

        errors = await self._copy_tree(host, os.path.normpath(src), dst.rstrip("/") or "/", mode)
        if errors:
            raise TransferError("; ".join(str(e) for e in errors))

    async def _copy_tree(
        self, host: HostRecord, src: str, dst: str, mode: int
    ) -> list[VolleyError]:
        """Mirror directory ``src`` to ``dst``, depth first.

        The remote directory is created before anything is copied into it.
        A failed mkdir raises and abandons this subtree. Files at one level
        are copied concurrently and the call returns only once every copy
        and child subtree below it has finished. Errors from those are
        returned rather than raised.
        """
        quoted = shlex.quote(dst)
        await self.execute(host, f"mkdir -p {quoted}; chmod {mode:04o} {quoted}")
        logger.debug("Created %s:%s", host.address, dst)

        try:
            with os.scandir(src) as it:
                entries = list(it)
        except OSError as e:
            raise TransferError(f"Cannot list {src}: {e}") from e

        errors: list[VolleyError] = []
        copies = []
        try:
            for entry in entries:
                child = posixpath.join(dst, entry.name)
                if entry.is_dir(follow_symlinks=False):
                    try:
                        errors.extend(await self._copy_tree(host, entry.path, child, mode))
                    except VolleyError as e:
                        errors.append(e)
                elif entry.is_file():
                    copies.append(
                        asyncio.create_task(self.copy_file(host, entry.path, child, mode))
                    )
                else:
                    logger.warning("Skipping %s: not a regular file or directory", entry.path)
        finally:
            # Copies already started always run to completion
            results = await asyncio.gather(*copies, return_exceptions=True)

        for result in results:
            if isinstance(result, VolleyError):
                errors.append(result)
            elif isinstance(result, BaseException):
                errors.append(TransferError(f"{type(result).__name__}: {result}"))
        return errors

    async def run_all(self, hosts: HostSet, operation: Operation) -> AsyncIterator[HostRecord]:
        """Run ``operation`` on every host and yield hosts as they finish."""
        stream = hosts.stream
        limiter = asyncio.Semaphore(self.config.limit) if self.config.limit else None
        units = [
            asyncio.create_task(self._run_host(host, operation, stream, limiter))
            for host in hosts
        ]
        closer = asyncio.create_task(self._close_when_done(units, stream))

        async for host in stream:
            yield host
        await closer

    def run_command(self, hosts: HostSet, command: str) -> AsyncIterator[HostRecord]:
        """Execute ``command`` on every host."""

        async def operation(host: HostRecord) -> tuple[str, str]:
            return await self.execute(host, command)

        return self.run_all(hosts, operation)

    def run_copy(self, hosts: HostSet, src: str, dst: str, mode: int) -> AsyncIterator[HostRecord]:
        """Copy ``src`` to ``dst`` on every host."""
        if not src or not dst:
            raise ValueError("Must specify src and dst")

        async def operation(host: HostRecord) -> tuple[str, str]:
            await self.copy_path(host, src, dst, mode)
            return "OK", ""

        return self.run_all(hosts, operation)

    async def _run_host(
        self,
        host: HostRecord,
        operation: Operation,
        stream: CompletionStream,
        limiter: asyncio.Semaphore | None,
    ) -> None:
        """Run one host to completion, record its outcome and publish it."""
        async with limiter if limiter is not None else contextlib.nullcontext():
            start = time.monotonic()
            succeeded = False
            stdout = stderr = error = ""
            try:
                stdout, stderr = await operation(host)
                succeeded = True
            except RemoteExecError as e:
                # The command ran, so whatever it printed is kept
                stdout, stderr, error = e.stdout, e.stderr, str(e)
            except VolleyError as e:
                error = str(e)
            except Exception as e:
                logger.exception("Unexpected error on %s", host.target)
                error = f"{type(e).__name__}: {e}"

            if not succeeded:
                logger.warning("%s failed: %s", host.target, error)
            host.record_outcome(
                succeeded,
                stdout=stdout,
                stderr=stderr,
                error=error,
                duration=time.monotonic() - start,
            )
        stream.publish(host)

    async def _close_when_done(self, units: list[asyncio.Task], stream: CompletionStream) -> None:
        await asyncio.gather(*units, return_exceptions=True)
        logger.debug("All %d hosts reported, closing completion stream", len(units))
        stream.close()
