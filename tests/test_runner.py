"""Tests for the command line interface."""

import pytest

from volley import runner
from volley.executor import Executor
from volley.inventory import HostRecord
from volley.store import load_records, save_records


@pytest.fixture
def config_file(tmp_path):
    inventory = tmp_path / "hosts.csv"
    inventory.write_text("# fleet\n10.0.0.1\n10.0.0.2,2222,alice,secret\n")
    path = tmp_path / "volley.yml"
    path.write_text(
        f"hosts_file: {inventory}\n"
        "auth_mode: password\n"
        "timeout: 2\n"
        f"record_path: {tmp_path / 'record'}\n"
    )
    return path


@pytest.fixture
def fake_executor(monkeypatch, shell, copier):
    monkeypatch.setattr(
        runner, "Executor", lambda config: Executor(config, shell=shell, copier=copier)
    )
    return shell


def _seed(path):
    ok = HostRecord(address="10.0.0.1")
    ok.record_outcome(True, stdout="up 3 days", duration=0.1)
    bad = HostRecord(address="10.0.0.2", port=2222, user="alice", password="secret")
    bad.record_outcome(False, error="Connection to alice@10.0.0.2:2222 failed", duration=2.0)
    save_records([ok, bad], path)


def test_dry_run_prints_command(capsys, config_file):
    assert runner.main(["-c", str(config_file), "sh", "--dry-run", "uname", "-a"]) == 0
    assert "uname -a" in capsys.readouterr().out


def test_sh_runs_everywhere_and_records(capsys, config_file, tmp_path, fake_executor):
    code = runner.main(["-c", str(config_file), "sh", "uptime"])

    assert code == 0
    out = capsys.readouterr().out
    assert "uptime on 10.0.0.1" in out and "uptime on 10.0.0.2" in out
    records = load_records(tmp_path / "record")
    assert sorted(r.address for r in records) == ["10.0.0.1", "10.0.0.2"]
    assert all(r.succeeded for r in records)


def test_sh_exit_code_reflects_failures(capsys, config_file, fake_executor):
    fake_executor.unreachable.add("10.0.0.2")

    assert runner.main(["-c", str(config_file), "sh", "uptime"]) == 1
    assert "Failed hosts: 10.0.0.2" in capsys.readouterr().err


def test_inventory_flag_overrides_config(capsys, config_file, tmp_path, fake_executor):
    other = tmp_path / "other.csv"
    other.write_text("192.168.1.9\n")

    assert runner.main(["-c", str(config_file), "-i", str(other), "sh", "id"]) == 0
    assert fake_executor.connects == ["192.168.1.9"]


def test_missing_inventory(capsys, config_file, tmp_path):
    code = runner.main(["-c", str(config_file), "-i", str(tmp_path / "none.csv"), "sh", "id"])

    assert code == 1
    assert "Inventory file not found" in capsys.readouterr().err


def test_cp_rejects_bad_mask(capsys, config_file, tmp_path):
    code = runner.main(
        ["-c", str(config_file), "cp", "-s", str(tmp_path), "-d", "/tmp/x", "-m", "rw"]
    )
    assert code == 1
    assert "Invalid permission mask" in capsys.readouterr().err


def test_cp_copies_file(config_file, tmp_path, fake_executor, copier):
    src = tmp_path / "motd"
    src.write_text("hello")

    code = runner.main(["-c", str(config_file), "cp", "-s", str(src), "-d", "/etc/motd", "-m", "0644"])

    assert code == 0
    assert copier.sent == [(str(src), "/etc/motd", 0o644)] * 2


def test_logs_csv_filtered(capsys, config_file, tmp_path):
    _seed(tmp_path / "record")

    assert runner.main(["-c", str(config_file), "logs", "-o", "csv", "-s", "false"]) == 0

    lines = capsys.readouterr().out.strip().splitlines()
    assert lines[0] == "sn,address,succeeded,stdout,stderr,error,duration"
    assert lines[1:] == ["1,10.0.0.2,false,,,Connection to alice@10.0.0.2:2222 failed,2.000"]


def test_logs_table(capsys, monkeypatch, config_file, tmp_path):
    monkeypatch.setenv("COLUMNS", "200")
    _seed(tmp_path / "record")

    assert runner.main(["-c", str(config_file), "logs"]) == 0
    out = capsys.readouterr().out
    assert "10.0.0.1" in out and "10.0.0.2" in out


def test_hosts_filtered(capsys, config_file, tmp_path):
    _seed(tmp_path / "record")

    assert runner.main(["-c", str(config_file), "hosts", "-s", "true"]) == 0
    assert capsys.readouterr().out == "10.0.0.1,22,root,\n"


def test_logs_without_previous_run(capsys, config_file):
    assert runner.main(["-c", str(config_file), "logs"]) == 1
    assert "No previous run recorded" in capsys.readouterr().err


def test_bad_config(capsys, tmp_path):
    path = tmp_path / "volley.yml"
    path.write_text("auth_mode: magic\n")

    assert runner.main(["-c", str(path), "logs"]) == 1
    assert "Configuration error" in capsys.readouterr().err


def test_sh_passes_command_flags_through(capsys, config_file, fake_executor):
    assert runner.main(["-c", str(config_file), "sh", "ls", "-l", "/etc"]) == 0

    commands = {event[2] for event in fake_executor.events if event[0] == "run"}
    assert commands == {"ls -l /etc"}
    assert "ls -l /etc on 10.0.0.1" in capsys.readouterr().out


def test_sh_without_command(capsys, config_file):
    assert runner.main(["-c", str(config_file), "sh"]) == 1
    assert "Must specify the shell command" in capsys.readouterr().err


def test_cp_rejects_empty_src(capsys, config_file, fake_executor, copier):
    code = runner.main(["-c", str(config_file), "cp", "-s", "", "-d", "/tmp/x"])

    assert code == 1
    assert "Must specify src and dst" in capsys.readouterr().err
    assert copier.connects == []


def test_unwritable_record_path(capsys, tmp_path, fake_executor):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    inventory = tmp_path / "hosts.csv"
    inventory.write_text("10.0.0.1\n")
    path = tmp_path / "volley.yml"
    path.write_text(
        f"hosts_file: {inventory}\n"
        "auth_mode: password\n"
        f"record_path: {blocker / 'record'}\n"
    )

    assert runner.main(["-c", str(path), "sh", "true"]) == 1
    assert "Cannot record results" in capsys.readouterr().err
