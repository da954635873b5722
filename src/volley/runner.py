#!/usr/bin/env python3
"""Main entry point for volley."""

from __future__ import annotations

import argparse
import asyncio
import csv
import logging
import sys
from typing import AsyncIterator, Callable

from rich.console import Console
from rich.table import Table
from rich.text import Text

from .config import AUTH_MODES, Config, load_config, parse_mode
from .dashboard import Dashboard
from .errors import VolleyError
from .executor import Executor
from .inventory import HostRecord, HostSet, load_inventory
from .store import filter_records, load_records, save_records

# ANSI colors for the headless printer
YELLOW = "\033[33m"
GREEN = "\033[32m"
RED = "\033[91m"
RESET = "\033[0m"

SUCCEEDED_CHOICES = {"all": None, "true": True, "false": False}

Start = Callable[[Executor, HostSet], AsyncIterator[HostRecord]]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="volley",
        description="Run a shell command or copy files on many SSH hosts at once",
    )
    parser.add_argument("-c", "--config", help="Config file (default ~/volley.yml)")
    parser.add_argument(
        "-i", "--inventory", help="Host list to read from (default from config file)"
    )
    parser.add_argument(
        "-a",
        "--auth-mode",
        choices=AUTH_MODES,
        help="SSH authentication mode (default from config file)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    subparsers = parser.add_subparsers(dest="cmd", required=True)

    run_options = argparse.ArgumentParser(add_help=False)
    run_options.add_argument(
        "-t", "--timeout", type=float, help="Per-connection timeout in seconds"
    )
    run_options.add_argument(
        "--limit", type=int, help="Maximum number of hosts in flight (default: all)"
    )
    run_options.add_argument(
        "--dashboard", action="store_true", help="Run with the TUI dashboard"
    )

    sh = subparsers.add_parser(
        "sh", parents=[run_options], help="Execute a shell command on remote hosts"
    )
    sh.add_argument(
        "-d",
        "--dry-run",
        action="store_true",
        help="Print the command without executing it",
    )
    sh.add_argument(
        "command", nargs=argparse.REMAINDER, help="Shell command to execute, flags included"
    )
    sh.set_defaults(func=_cmd_sh)

    cp = subparsers.add_parser(
        "cp", parents=[run_options], help="Copy a file or directory to remote hosts"
    )
    cp.add_argument("-s", "--src", required=True, help="Source path on the local host")
    cp.add_argument("-d", "--dst", required=True, help="Destination path on remote hosts")
    cp.add_argument(
        "-m", "--mask", default="0755", help="Permission mask of copied paths (default 0755)"
    )
    cp.set_defaults(func=_cmd_cp)

    logs = subparsers.add_parser("logs", help="Print results of the last run")
    logs.add_argument(
        "-o", "--output", choices=("table", "csv"), default="table", help="Output format"
    )
    logs.add_argument(
        "-s", "--succeeded", choices=SUCCEEDED_CHOICES, default="all",
        help="Filter by the outcome of the last run",
    )
    logs.set_defaults(func=_cmd_logs)

    hosts = subparsers.add_parser(
        "hosts", help="Print the host list of the last run, optionally filtered"
    )
    hosts.add_argument(
        "-s", "--succeeded", choices=SUCCEEDED_CHOICES, default="all",
        help="Filter by the outcome of the last run",
    )
    hosts.set_defaults(func=_cmd_hosts)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Load configuration, CLI flags win over the file
    try:
        config = load_config(args.config).with_overrides(
            hosts_file=args.inventory,
            auth_mode=args.auth_mode,
            timeout=getattr(args, "timeout", None),
            limit=getattr(args, "limit", None),
        )
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except (ValueError, OSError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    try:
        return args.func(args, config)
    except VolleyError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def _load_hosts(config: Config) -> HostSet:
    if config.hosts_file is None:
        raise VolleyError("No inventory given, use -i or set hosts_file in the config file")
    return load_inventory(config.hosts_file)


def _cmd_sh(args: argparse.Namespace, config: Config) -> int:
    command = " ".join(args.command)
    if not command:
        print("Error: Must specify the shell command to execute", file=sys.stderr)
        return 1
    if args.dry_run:
        print(f"--------------------------------\n{command}")
        return 0

    hosts = _load_hosts(config)
    return _run(config, hosts, lambda ex, hs: ex.run_command(hs, command), args.dashboard)


def _cmd_cp(args: argparse.Namespace, config: Config) -> int:
    try:
        mode = parse_mode(args.mask)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    if not args.src or not args.dst:
        print("Error: Must specify src and dst", file=sys.stderr)
        return 1

    hosts = _load_hosts(config)
    return _run(
        config, hosts, lambda ex, hs: ex.run_copy(hs, args.src, args.dst, mode), args.dashboard
    )


def _run(config: Config, hosts: HostSet, start: Start, dashboard: bool) -> int:
    """Run on every host, print outcomes and record them."""
    executor = Executor(config)

    if dashboard:
        app = Dashboard(hosts, start=lambda: start(executor, hosts))
        app.run()
        if not app.finished:
            print("Run interrupted, results were not recorded", file=sys.stderr)
            return 1
    else:
        asyncio.run(_run_headless(start(executor, hosts)))

    try:
        save_records(hosts.hosts, config.record_path)
    except OSError as e:
        print(f"Error: Cannot record results to {config.record_path}: {e}", file=sys.stderr)
        return 1

    failed = [host.address for host in hosts if not host.succeeded]
    if failed:
        print(f"\nFailed hosts: {', '.join(failed)}", file=sys.stderr)
        return 1
    return 0


async def _run_headless(results: AsyncIterator[HostRecord]) -> None:
    async for host in results:
        print_host(host)


def print_host(host: HostRecord) -> None:
    """Print one finished host."""
    state = f"{GREEN}OK{RESET}" if host.succeeded else f"{RED}Failed{RESET}"
    print(f"{YELLOW}{host.address:<16}{RESET} {state:<16} {host.duration:.3f}s")
    print("================================")
    for text in (host.stdout, host.stderr, host.error):
        if text:
            print(text)
    print()


def _cmd_logs(args: argparse.Namespace, config: Config) -> int:
    records = filter_records(
        load_records(config.record_path), SUCCEEDED_CHOICES[args.succeeded]
    )
    columns = ("sn", "address", "succeeded", "stdout", "stderr", "error", "duration")

    if args.output == "csv":
        writer = csv.writer(sys.stdout)
        writer.writerow(columns)
        for sn, host in enumerate(records, start=1):
            writer.writerow(
                [sn, host.address, str(host.succeeded).lower(), host.stdout,
                 host.stderr, host.error, f"{host.duration:.3f}"]
            )
        return 0

    table = Table(*columns, show_lines=True)
    for sn, host in enumerate(records, start=1):
        table.add_row(
            str(sn),
            host.address,
            "[green]true[/]" if host.succeeded else "[red]false[/]",
            Text(host.stdout),
            Text(host.stderr),
            Text(host.error),
            f"{host.duration:.3f}s",
        )
    Console().print(table)
    return 0


def _cmd_hosts(args: argparse.Namespace, config: Config) -> int:
    records = filter_records(
        load_records(config.record_path), SUCCEEDED_CHOICES[args.succeeded]
    )
    for host in records:
        print(f"{host.address},{host.port},{host.user},{host.password}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
