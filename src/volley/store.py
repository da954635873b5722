"""Single-slot snapshot of the last run's host records."""

from __future__ import annotations

import contextlib
import logging
import os
import pickle
import tempfile
from pathlib import Path
from typing import Iterable

from .errors import CorruptDataError, NotFoundError
from .inventory import HostRecord

logger = logging.getLogger(__name__)


def save_records(records: Iterable[HostRecord], path: str | Path) -> None:
    """Persist ``records``, replacing any previous snapshot."""
    path = Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    records = list(records)
    payload = pickle.dumps(records, protocol=pickle.HIGHEST_PROTOCOL)

    # Atomic replace of the single slot
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp)
        raise
    logger.debug("Saved %d host records to %s", len(records), path)


def load_records(path: str | Path) -> list[HostRecord]:
    """Load the snapshot written by the last run."""
    path = Path(path).expanduser()
    try:
        data = path.read_bytes()
    except FileNotFoundError:
        raise NotFoundError("No previous run recorded, run `volley sh` or `volley cp` first") from None

    try:
        records = pickle.loads(data)
    except Exception as e:
        raise CorruptDataError(f"Cannot decode run record {path}: {e}") from e

    if not isinstance(records, list) or not all(isinstance(r, HostRecord) for r in records):
        raise CorruptDataError(f"Run record {path} does not contain host records")
    return records


def filter_records(
    records: Iterable[HostRecord], succeeded: bool | None = None
) -> list[HostRecord]:
    """Keep all records, or only the succeeded/failed ones."""
    if succeeded is None:
        return list(records)
    return [r for r in records if r.succeeded == succeeded]
