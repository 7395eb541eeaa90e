#!/usr/bin/env python3
"""Main entry point for lanssh."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .addresses import AddressRange, InvalidRangeError, expand_address
from .config import PROBE_STRATEGIES, Config, default_config_path, load_config
from .connector import open_session, run_command
from .dispatcher import Dispatcher, DispatchSummary, HostStatus
from .formatter import format_results
from .prober import ProbeUnavailableError, select_prober
from .scanner import Scanner

INTERRUPTED = 130

# ANSI colors for different hosts
COLORS = [
    "\033[36m",  # Cyan
    "\033[33m",  # Yellow
    "\033[35m",  # Magenta
    "\033[32m",  # Green
    "\033[34m",  # Blue
    "\033[91m",  # Light Red
    "\033[96m",  # Light Cyan
    "\033[93m",  # Light Yellow
]
RESET = "\033[0m"


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", type=Path, help="Path to YAML configuration file")
    common.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    common.add_argument("--port", type=int, help="SSH port")

    scan_opts = argparse.ArgumentParser(add_help=False)
    scan_opts.add_argument("--prefix", help="Address prefix, e.g. 192.168.1.")
    scan_opts.add_argument("--start", type=int, help="First host suffix to scan")
    scan_opts.add_argument("--end", type=int, help="Last host suffix to scan")
    scan_opts.add_argument("--timeout", type=float, help="Per-host probe timeout in seconds")
    scan_opts.add_argument(
        "--concurrency", type=int, help="Simultaneous probes (1 scans sequentially)"
    )
    scan_opts.add_argument("--strategy", choices=PROBE_STRATEGIES, help="Probe strategy")

    ssh_opts = argparse.ArgumentParser(add_help=False)
    ssh_opts.add_argument("--user", help="Login user")
    ssh_opts.add_argument("--key", type=Path, help="Override SSH key path from config")
    ssh_opts.add_argument("--connect-timeout", type=float, help="Connect timeout in seconds")
    ssh_opts.add_argument(
        "--session-timeout", type=float, help="Limit for a whole non-interactive command"
    )

    parser = argparse.ArgumentParser(
        description="Find SSH hosts on the local network and run commands on them"
    )
    sub = parser.add_subparsers(dest="action", required=True)

    scan = sub.add_parser(
        "scan", parents=[common, scan_opts], help="List hosts answering on the SSH port"
    )
    modes = scan.add_mutually_exclusive_group()
    modes.add_argument(
        "-d", "--detailed", dest="display", action="store_const", const="detailed",
        help="Suffix, address and host name",
    )
    modes.add_argument(
        "-a", "--addresses", dest="display", action="store_const", const="address",
        help="Full addresses only",
    )
    modes.add_argument(
        "-s", "--suffixes", dest="display", action="store_const", const="suffix",
        help="Host suffixes only",
    )

    connect = sub.add_parser(
        "connect", parents=[common, ssh_opts], help="Open a session or run one command"
    )
    connect.add_argument("target", help="Address or host suffix")
    connect.add_argument("remote_command", nargs=argparse.REMAINDER, help="Command to run")
    connect.add_argument("--prefix", help="Address prefix for a bare suffix")

    run = sub.add_parser(
        "run", parents=[common, scan_opts, ssh_opts], help="Run a command on many hosts"
    )
    run.add_argument(
        "--hosts", help="Comma-separated addresses or suffixes (default: scan for hosts)"
    )
    run.add_argument("-p", "--parallel", action="store_true", default=None,
                     help="Run on several hosts at once")
    run.add_argument("--max-parallel", type=int, help="Hosts to run on at once")
    run.add_argument("--dashboard", action="store_true", help="Run with the TUI dashboard")
    run.add_argument("--no-logs", action="store_true", default=None,
                     help="Disable logging to files")
    run.add_argument("remote_command", nargs=argparse.REMAINDER, help="Command to run")

    return parser


def _resolve_config(args: argparse.Namespace) -> Config:
    if args.config:
        config = load_config(args.config)
    elif default_config_path().exists():
        config = load_config(default_config_path())
    else:
        config = Config()

    key = getattr(args, "key", None)
    return config.with_overrides(
        prefix=getattr(args, "prefix", None),
        start=getattr(args, "start", None),
        end=getattr(args, "end", None),
        port=args.port,
        probe_timeout=getattr(args, "timeout", None),
        scan_concurrency=getattr(args, "concurrency", None),
        probe_strategy=getattr(args, "strategy", None),
        user=getattr(args, "user", None),
        ssh_key=key.expanduser() if key else None,
        connect_timeout=getattr(args, "connect_timeout", None),
        session_timeout=getattr(args, "session_timeout", None),
        parallel=getattr(args, "parallel", None),
        max_parallel=getattr(args, "max_parallel", None),
        no_logs=getattr(args, "no_logs", None),
        display_mode=getattr(args, "display", None),
    )


def _command(words: list[str]) -> list[str]:
    if words and words[0] == "--":
        words = words[1:]
    return words


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    # Load configuration
    try:
        config = _resolve_config(args)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    if config.ssh_key and not config.ssh_key.exists():
        print(f"Error: SSH key not found: {config.ssh_key}", file=sys.stderr)
        return 1

    try:
        if args.action == "scan":
            return _run_scan(config)
        if args.action == "connect":
            return _run_connect(config, args.target, _command(args.remote_command))
        return _run_batch(config, args)
    except (InvalidRangeError, ProbeUnavailableError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


def _discover(config: Config) -> tuple[list[str], bool]:
    """Scan the configured range; returns (addresses, interrupted)."""
    address_range = AddressRange(config.prefix, config.start, config.end)
    scanner = Scanner(
        select_prober(config.probe_strategy, config.port), config.scan_concurrency
    )
    try:
        return asyncio.run(scanner.scan(address_range, config.probe_timeout)), False
    except KeyboardInterrupt:
        return scanner.discovered(), True


def _run_scan(config: Config) -> int:
    addresses, interrupted = _discover(config)
    for line in format_results(addresses, config.display_mode):
        print(line)
    if interrupted:
        print("Scan interrupted, results are partial", file=sys.stderr)
        return INTERRUPTED
    return 0


def _run_connect(config: Config, target: str, command: list[str]) -> int:
    address = expand_address(target, config.prefix)
    if not command:
        return asyncio.run(open_session(address, config))

    def on_output(line: str, is_stderr: bool) -> None:
        print(line, file=sys.stderr if is_stderr else sys.stdout)

    outcome = asyncio.run(run_command(address, config, command, on_output=on_output))
    if (outcome.transport_failed or outcome.timed_out) and outcome.stderr:
        print(f"Error: {outcome.stderr.splitlines()[-1]}", file=sys.stderr)
    return outcome.exit_status


def _run_batch(config: Config, args: argparse.Namespace) -> int:
    command = _command(args.remote_command)
    if not command:
        print("Error: no command given", file=sys.stderr)
        return 2

    if args.hosts:
        addresses = list(dict.fromkeys(
            expand_address(host, config.prefix)
            for host in args.hosts.split(",")
            if host.strip()
        ))
    else:
        addresses, interrupted = _discover(config)
        if interrupted:
            print("Scan interrupted", file=sys.stderr)
            return INTERRUPTED

    if not addresses:
        print("No hosts found", file=sys.stderr)
        return 0

    if args.dashboard:
        return _run_dashboard(config, addresses, command)
    return _run_headless(config, addresses, command)


def _run_dashboard(config: Config, addresses: list[str], command: list[str]) -> int:
    from .dashboard import Dashboard

    app = Dashboard(
        config, addresses, command, enable_logging=not config.no_logs, connector=run_command
    )
    app.run()
    return _report(app.summary, expected=len(addresses))


def _run_headless(config: Config, addresses: list[str], command: list[str]) -> int:
    """Run the dispatcher without the TUI dashboard."""
    host_colors = {
        address: COLORS[i % len(COLORS)] for i, address in enumerate(addresses)
    }

    def on_output(address: str, line: str) -> None:
        print(f"{host_colors.get(address, '')}[{address}]{RESET} {line}")

    def on_status(address: str, status: HostStatus) -> None:
        print(f"{host_colors.get(address, '')}[{address}]{RESET} Status: {status.value}")

    dispatcher = Dispatcher(
        config, on_output=on_output, on_status=on_status, connector=run_command
    )
    try:
        summary = asyncio.run(dispatcher.dispatch_all(addresses, command))
    except KeyboardInterrupt:
        _report(dispatcher.summary(), expected=len(addresses))
        return INTERRUPTED

    if dispatcher.log_dir:
        print(f"Logs written to {dispatcher.log_dir}")
    return _report(summary, expected=len(addresses))


def _report(summary: DispatchSummary, expected: int) -> int:
    print()
    for outcome in summary.outcomes:
        state = "ok" if outcome.succeeded else "FAILED"
        print(f"{outcome.address}: {state} (exit {outcome.exit_status})")
    print(f"{summary.total} hosts: {summary.succeeded} succeeded, {summary.failed} failed")
    if summary.total < expected:
        print(f"{expected - summary.total} hosts did not finish", file=sys.stderr)
    return 0 if summary.failed == 0 and summary.total == expected else 1


if __name__ == "__main__":
    sys.exit(main())
