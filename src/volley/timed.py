"""Deadline-bounded connections.

A single connect timeout does not bound a host that accepts the connection
and then goes silent. ``TimedProtocol`` arms a deadline for every read and
every write on an established connection so any stalled I/O step fails
within the configured timeout.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)


class TimedTransport:
    """Transport proxy that arms the write deadline on each write."""

    def __init__(self, transport: asyncio.Transport, protocol: TimedProtocol):
        self._transport = transport
        self._timed = protocol

    def write(self, data: bytes) -> None:
        self._transport.write(data)
        self._timed.arm_write()

    def writelines(self, list_of_data) -> None:
        self._transport.writelines(list_of_data)
        self._timed.arm_write()

    def __getattr__(self, name: str) -> Any:
        return getattr(self._transport, name)


class TimedProtocol(asyncio.Protocol):
    """Wrap a protocol so each read and write must finish within ``timeout``.

    The read deadline is armed when the connection is made and re-armed by
    every chunk received. A write deadline expires if the transport made no
    progress draining its write buffer within ``timeout``. On expiry the
    transport is aborted and the wrapped protocol receives
    ``connection_lost(TimeoutError)``.
    """

    def __init__(self, protocol: asyncio.BaseProtocol, timeout: float):
        self.protocol = protocol
        self.timeout = timeout
        self.transport: TimedTransport | None = None
        self._raw: asyncio.Transport | None = None
        self._read_timer: asyncio.TimerHandle | None = None
        self._write_timer: asyncio.TimerHandle | None = None
        self._pending_write = 0
        self._expired: TimeoutError | None = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self._raw = transport
        self.transport = TimedTransport(transport, self)
        self._arm_read()
        self.protocol.connection_made(self.transport)

    def data_received(self, data: bytes) -> None:
        self._arm_read()
        self.protocol.data_received(data)

    def eof_received(self) -> bool | None:
        return self.protocol.eof_received()

    def pause_writing(self) -> None:
        self.protocol.pause_writing()

    def resume_writing(self) -> None:
        self.protocol.resume_writing()

    def connection_lost(self, exc: Exception | None) -> None:
        self._cancel_timers()
        if exc is None and self._expired is not None:
            exc = self._expired
        self.protocol.connection_lost(exc)

    def arm_write(self) -> None:
        if self._write_timer is None and self._raw is not None:
            self._pending_write = self._raw.get_write_buffer_size()
            self._write_timer = self._call_later(self._check_write)

    def _arm_read(self) -> None:
        if self._read_timer is not None:
            self._read_timer.cancel()
        self._read_timer = self._call_later(lambda: self._expire("read"))

    def _check_write(self) -> None:
        self._write_timer = None
        pending = self._raw.get_write_buffer_size()
        if not pending:
            return
        if pending >= self._pending_write:
            self._expire("write")
        else:
            # Still draining: the next slice gets a fresh deadline
            self.arm_write()

    def _expire(self, direction: str) -> None:
        if self._expired is not None or self._raw is None:
            return
        self._expired = TimeoutError(
            f"{direction} deadline of {self.timeout:g}s exceeded"
        )
        logger.debug("Aborting connection: %s", self._expired)
        self._cancel_timers()
        self._raw.abort()

    def _call_later(self, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(self.timeout, callback)

    def _cancel_timers(self) -> None:
        for timer in (self._read_timer, self._write_timer):
            if timer is not None:
                timer.cancel()
        self._read_timer = self._write_timer = None


class TimedTunnel:
    """Connector for ``asyncssh.connect(tunnel=...)``.

    Dials with ``timeout`` and installs a TimedProtocol around the SSH
    connection so the handshake and every later read or write share the same
    deadline.
    """

    def __init__(self, timeout: float):
        self.timeout = timeout

    async def create_connection(
        self,
        protocol_factory: Callable[[], asyncio.BaseProtocol],
        host: str,
        port: int,
    ) -> tuple[TimedTransport, asyncio.BaseProtocol]:
        loop = asyncio.get_running_loop()
        try:
            _, timed = await asyncio.wait_for(
                loop.create_connection(
                    lambda: TimedProtocol(protocol_factory(), self.timeout), host, port
                ),
                self.timeout,
            )
        except asyncio.TimeoutError:
            raise TimeoutError(
                f"Dial {host}:{port} timed out after {self.timeout:g}s"
            ) from None
        return timed.transport, timed.protocol

    def __repr__(self) -> str:
        return f"TimedTunnel(timeout={self.timeout:g})"
