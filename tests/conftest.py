"""Shared fixtures: in-memory stand-ins for the remote shell and copy."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

import pytest

from volley.config import Config
from volley.errors import ConnectError, TransferError
from volley.inventory import HostRecord, HostSet


class FakeSession:
    def __init__(self, shell: FakeShell, host: HostRecord):
        self.shell = shell
        self.host = host

    async def run(self, command: str) -> tuple[str, str]:
        self.shell.events.append(("run", self.host.address, command))
        return await self.shell.handler(self.host, command)


class FakeShell:
    """Records every connection and command; behaviour comes from ``handler``."""

    def __init__(self, events: list | None = None, handler=None):
        self.events = events if events is not None else []
        self.connects: list[str] = []
        self.unreachable: set[str] = set()
        self.handler = handler or self._default

    @staticmethod
    async def _default(host: HostRecord, command: str) -> tuple[str, str]:
        return f"{command} on {host.address}", ""

    @asynccontextmanager
    async def connect(self, host, auth):
        self.connects.append(host.address)
        if host.address in self.unreachable:
            raise ConnectError(f"Connection to {host.target} failed: refused")
        yield FakeSession(self, host)


class FakeTransfer:
    def __init__(self, copier: FakeCopy):
        self.copier = copier

    async def send_file(self, local_path: str, remote_path: str, mode: int) -> None:
        self.copier.events.append(("send", local_path, remote_path))
        await asyncio.sleep(self.copier.delay)
        if remote_path in self.copier.failing:
            raise TransferError(f"Copy of {local_path} to {remote_path} failed: disk full")
        self.copier.sent.append((local_path, remote_path, mode))


class FakeCopy:
    def __init__(self, events: list | None = None):
        self.events = events if events is not None else []
        self.connects: list[str] = []
        self.sent: list[tuple[str, str, int]] = []
        self.failing: set[str] = set()
        self.delay = 0.0

    @asynccontextmanager
    async def connect(self, host, auth):
        self.connects.append(host.address)
        yield FakeTransfer(self)


@pytest.fixture
def events():
    return []


@pytest.fixture
def shell(events):
    return FakeShell(events)


@pytest.fixture
def copier(events):
    return FakeCopy(events)


@pytest.fixture
def config(tmp_path):
    return Config(auth_mode="password", timeout=1.0, record_path=tmp_path / "record")


@pytest.fixture
def make_hosts():
    def _make(*addresses: str) -> HostSet:
        return HostSet([HostRecord(address=a) for a in addresses])

    return _make
