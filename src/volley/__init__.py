"""volley: Run a command or copy files on many SSH hosts concurrently."""

from .config import AuthConfig, Config, load_config
from .errors import (
    AuthResolutionError,
    ConnectError,
    CorruptDataError,
    MalformedInputError,
    NotFoundError,
    PathMismatchError,
    RemoteExecError,
    TransferError,
    VolleyError,
)
from .executor import Executor
from .inventory import CompletionStream, HostRecord, HostSet, load_inventory, parse_inventory
from .store import filter_records, load_records, save_records

__all__ = [
    "AuthConfig",
    "Config",
    "load_config",
    "VolleyError",
    "NotFoundError",
    "MalformedInputError",
    "CorruptDataError",
    "AuthResolutionError",
    "ConnectError",
    "PathMismatchError",
    "RemoteExecError",
    "TransferError",
    "Executor",
    "CompletionStream",
    "HostRecord",
    "HostSet",
    "load_inventory",
    "parse_inventory",
    "filter_records",
    "load_records",
    "save_records",
]
