"""Tests for the run record store."""

import pickle

import pytest

from volley.errors import CorruptDataError, NotFoundError
from volley.inventory import HostRecord
from volley.store import filter_records, load_records, save_records


def _finished(address, succeeded, **outcome):
    host = HostRecord(address=address, port=2222, user="deploy", password="pw")
    host.record_outcome(succeeded, duration=0.25, **outcome)
    return host


@pytest.mark.parametrize("count", [0, 1, 3])
def test_round_trip(tmp_path, count):
    records = [
        _finished(f"10.0.0.{i}", i % 2 == 0, stdout=f"out {i}", stderr="warn", error="" if i % 2 == 0 else "boom")
        for i in range(count)
    ]
    path = tmp_path / "record"

    save_records(records, path)

    assert load_records(path) == records


def test_save_replaces_previous_run(tmp_path):
    path = tmp_path / "nested" / "record"
    save_records([_finished("a", True), _finished("b", False)], path)
    save_records([_finished("c", True)], path)

    assert [h.address for h in load_records(path)] == ["c"]
    assert [p.name for p in path.parent.iterdir()] == ["record"]


def test_load_without_previous_run(tmp_path):
    with pytest.raises(NotFoundError, match="No previous run"):
        load_records(tmp_path / "record")


def test_load_truncated(tmp_path):
    path = tmp_path / "record"
    save_records([_finished("a", True), _finished("b", True)], path)
    path.write_bytes(path.read_bytes()[:20])

    with pytest.raises(CorruptDataError):
        load_records(path)


def test_load_garbage(tmp_path):
    path = tmp_path / "record"
    path.write_bytes(b"not a snapshot at all")
    with pytest.raises(CorruptDataError):
        load_records(path)


def test_load_wrong_payload(tmp_path):
    path = tmp_path / "record"
    path.write_bytes(pickle.dumps({"hosts": []}))
    with pytest.raises(CorruptDataError):
        load_records(path)


def test_filter_records():
    records = [_finished("a", True), _finished("b", False), _finished("c", True)]

    assert [h.address for h in filter_records(records)] == ["a", "b", "c"]
    assert [h.address for h in filter_records(records, succeeded=True)] == ["a", "c"]
    assert [h.address for h in filter_records(records, succeeded=False)] == ["b"]
