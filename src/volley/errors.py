"""Error types raised by volley."""

from __future__ import annotations


class VolleyError(Exception):
    """Base class for all volley errors."""


class NotFoundError(VolleyError):
    """An inventory file or result snapshot does not exist."""


class MalformedInputError(VolleyError, ValueError):
    """The inventory could not be scanned."""


class CorruptDataError(VolleyError):
    """A result snapshot could not be decoded."""


class AuthResolutionError(VolleyError):
    """Credentials or the private key could not be loaded."""


class ConnectError(VolleyError):
    """Dialing or the SSH handshake failed or timed out."""


class PathMismatchError(VolleyError):
    """Source and destination base names differ on a single-file copy."""


class TransferError(VolleyError):
    """The remote copy failed."""


class RemoteExecError(VolleyError):
    """The command ran but failed. Captured output is kept."""

    def __init__(self, message: str, stdout: str = "", stderr: str = ""):
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr
