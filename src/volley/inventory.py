"""Host inventory and the per-run completion stream."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Iterable

from .errors import MalformedInputError, NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_PORT = 22
DEFAULT_USER = "root"


@dataclass
class HostRecord:
    """One remote target plus the outcome of the last operation on it."""

    address: str
    port: int = DEFAULT_PORT
    user: str = DEFAULT_USER
    password: str = ""
    succeeded: bool = False
    stdout: str = ""
    stderr: str = ""
    error: str = ""
    duration: float = 0.0
    completed: bool = False

    def record_outcome(
        self,
        succeeded: bool,
        stdout: str = "",
        stderr: str = "",
        error: str = "",
        duration: float = 0.0,
    ) -> None:
        """Write the outcome fields. Allowed once per run."""
        if self.completed:
            raise RuntimeError(f"Outcome for {self.address} already recorded")
        self.succeeded = succeeded
        self.stdout = stdout
        self.stderr = stderr
        self.error = error
        # Rounded up to the millisecond
        self.duration = math.ceil(duration * 1000) / 1000
        self.completed = True

    @property
    def target(self) -> str:
        return f"{self.user}@{self.address}:{self.port}"


_CLOSED = object()


class CompletionStream:
    """Conduit through which finished hosts reach the consumer.

    Any number of producers may publish; there is a single consumer, and the
    stream is closed exactly once after the last publication.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self.published = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, host: HostRecord) -> None:
        if self._closed:
            raise RuntimeError("Completion stream is closed")
        self.published += 1
        self._queue.put_nowait(host)

    def close(self) -> None:
        if self._closed:
            raise RuntimeError("Completion stream already closed")
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> AsyncIterator[HostRecord]:
        return self

    async def __anext__(self) -> HostRecord:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


@dataclass
class HostSet:
    """The hosts of one run and the stream their outcomes are published on."""

    hosts: list[HostRecord]
    stream: CompletionStream = field(default_factory=CompletionStream)

    def __len__(self) -> int:
        return len(self.hosts)

    def __iter__(self):
        return iter(self.hosts)


def parse_inventory(lines: Iterable[str | bytes]) -> list[HostRecord]:
    """Parse ``address[,port[,user[,password]]]`` lines into host records.

    Blank lines and lines starting with ``#`` are skipped. Missing or empty
    fields take their defaults. Byte lines are decoded as UTF-8.
    """
    hosts = []
    for lineno, line in enumerate(lines, start=1):
        if isinstance(line, bytes):
            try:
                line = line.decode("utf-8")
            except UnicodeDecodeError as e:
                raise MalformedInputError(f"Line {lineno}: not valid UTF-8 ({e.reason})") from None
        line = line.rstrip("\r\n")
        if not line.strip() or line.startswith("#"):
            continue

        raw = line.split(",")
        fields = [item.strip() for item in raw]
        host = HostRecord(address=fields[0])
        if len(fields) > 1 and fields[1]:
            try:
                host.port = int(fields[1])
            except ValueError:
                raise MalformedInputError(
                    f"Line {lineno}: invalid port {fields[1]!r}"
                ) from None
        if len(fields) > 2 and fields[2]:
            host.user = fields[2]
        if len(fields) > 3:
            # Kept verbatim, commas included
            host.password = ",".join(raw[3:])
        hosts.append(host)

    return hosts


def load_inventory(path: str | Path) -> HostSet:
    """Read an inventory file into a fresh HostSet."""
    path = Path(path).expanduser()
    try:
        with open(path, "rb") as f:
            hosts = parse_inventory(f)
    except FileNotFoundError:
        raise NotFoundError(f"Inventory file not found: {path}") from None
    except IsADirectoryError:
        raise NotFoundError(f"Inventory path is a directory: {path}") from None

    logger.debug("Parsed %d hosts from inventory: %s", len(hosts), path)
    return HostSet(hosts)
