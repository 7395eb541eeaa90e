"""SSH sessions and remote command execution for a single host."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shlex
import shutil
import signal
import sys
from dataclasses import dataclass
from typing import Callable, Iterator, Sequence

import asyncssh

from .addresses import expand_address
from .config import Config

logger = logging.getLogger(__name__)

SUCCESS = 0
SESSION_TIMEOUT = 124
CONNECTION_FAILED = 255

# Seconds a remote process gets to exit after SIGTERM before SIGKILL
KILL_GRACE = 2.0

# Type alias for output callback
LineCallback = Callable[[str, bool], None]  # (line, is_stderr) -> None


class ConnectionFailure(Exception):
    """Transport or authentication failure while talking to a host."""

    def __init__(self, address: str, reason: str):
        super().__init__(f"{address}: {reason}")
        self.address = address
        self.reason = reason


@dataclass(frozen=True)
class DispatchOutcome:
    """Result of running one command on one host."""

    address: str
    exit_status: int
    stdout: str = ""
    stderr: str = ""
    # True when the host was never reached or the channel closed without a status
    transport_error: bool = False

    @property
    def succeeded(self) -> bool:
        return self.exit_status == SUCCESS

    @property
    def transport_failed(self) -> bool:
        return self.transport_error

    @property
    def timed_out(self) -> bool:
        return self.exit_status == SESSION_TIMEOUT


def _connect_options(config: Config) -> dict:
    options = {
        "port": config.port,
        "username": config.user,
        "known_hosts": None,  # Hosts are discovered on the fly, nothing to verify against
        "connect_timeout": config.connect_timeout,
    }
    if config.ssh_key:
        options["client_keys"] = [str(config.ssh_key)]
    return options


async def _connect(address: str, config: Config) -> asyncssh.SSHClientConnection:
    logger.debug("Connecting to %s@%s:%d", config.user, address, config.port)
    try:
        return await asyncssh.connect(address, **_connect_options(config))
    except (asyncssh.Error, OSError, asyncio.TimeoutError) as e:
        logger.warning("Connection to %s failed: %s", address, e or type(e).__name__)
        raise ConnectionFailure(address, str(e) or type(e).__name__) from e


def _exit_status(returncode: int | None) -> int:
    if returncode is None:
        # Channel closed without reporting a status
        return CONNECTION_FAILED
    if returncode < 0:
        return 128 - returncode
    return returncode


async def _terminate(proc: asyncssh.SSHClientProcess) -> None:
    """Ask the remote process to stop, then kill it after the grace period."""
    with contextlib.suppress(asyncssh.Error, OSError):
        proc.terminate()
        try:
            await asyncio.wait_for(proc.wait_closed(), KILL_GRACE)
        except asyncio.TimeoutError:
            proc.kill()
        proc.close()


async def _execute(
    address: str,
    config: Config,
    command: str,
    stdout: list[str],
    stderr: list[str],
    on_output: LineCallback | None,
) -> int:
    async def read_stream(stream, lines: list[str], is_stderr: bool) -> None:
        while True:
            line = await stream.readline()
            if not line:
                break
            line = line.rstrip("\n\r")
            lines.append(line)
            if on_output:
                on_output(line, is_stderr)

    conn = await _connect(address, config)
    async with conn:
        try:
            async with conn.create_process(command, encoding="utf-8") as proc:
                try:
                    await asyncio.gather(
                        read_stream(proc.stdout, stdout, False),
                        read_stream(proc.stderr, stderr, True),
                    )
                    await proc.wait()
                except asyncio.CancelledError:
                    await _terminate(proc)
                    raise
                if proc.returncode is None:
                    raise ConnectionFailure(address, "channel closed without an exit status")
                return _exit_status(proc.returncode)
        except asyncssh.Error as e:
            raise ConnectionFailure(address, str(e)) from e


async def run_command(
    address: str,
    config: Config,
    command: str | Sequence[str],
    on_output: LineCallback | None = None,
) -> DispatchOutcome:
    """Run ``command`` on ``address``, bounded by the session timeout.

    Never raises for per-host failures: transport errors become
    CONNECTION_FAILED and an exceeded timeout becomes SESSION_TIMEOUT.
    """
    address = expand_address(address, config.prefix)
    if not isinstance(command, str):
        command = shlex.join(command)

    stdout: list[str] = []
    stderr: list[str] = []
    transport_error = False
    try:
        status = await asyncio.wait_for(
            _execute(address, config, command, stdout, stderr, on_output),
            config.session_timeout,
        )
    except ConnectionFailure as e:
        stderr.append(f"Connection failed: {e.reason}")
        status = CONNECTION_FAILED
        transport_error = True
    except asyncio.TimeoutError:
        logger.info(
            "Session on %s exceeded %.1fs, terminated", address, config.session_timeout
        )
        stderr.append(f"Session timed out after {config.session_timeout:g}s")
        status = SESSION_TIMEOUT

    return DispatchOutcome(
        address=address,
        exit_status=status,
        stdout="\n".join(stdout),
        stderr="\n".join(stderr),
        transport_error=transport_error,
    )


@contextlib.contextmanager
def _raw_terminal() -> Iterator[None]:
    if not sys.stdin.isatty():
        yield
        return

    import termios
    import tty

    fd = sys.stdin.fileno()
    saved = termios.tcgetattr(fd)
    try:
        tty.setraw(fd)
        yield
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)


def _terminal_size() -> tuple[int, int]:
    size = shutil.get_terminal_size()
    return size.columns, size.lines


@contextlib.contextmanager
def _forward_resizes(proc: asyncssh.SSHClientProcess) -> Iterator[None]:
    """Pass local window size changes on to the remote PTY."""
    sigwinch = getattr(signal, "SIGWINCH", None)
    loop = asyncio.get_running_loop()

    def resize() -> None:
        with contextlib.suppress(asyncssh.Error, OSError):
            proc.change_terminal_size(*_terminal_size())

    installed = False
    if sigwinch is not None:
        try:
            loop.add_signal_handler(sigwinch, resize)
            installed = True
        except (NotImplementedError, RuntimeError, ValueError):
            # Only the main thread of a Unix event loop can install handlers
            logger.debug("Window resizes will not be forwarded")
    try:
        yield
    finally:
        if installed:
            loop.remove_signal_handler(sigwinch)


async def open_session(address: str, config: Config) -> int:
    """Open an interactive shell on ``address`` wired to the local terminal.

    Only the connect phase is bounded; the session lasts as long as the user
    keeps it open. Local window resizes are forwarded to the remote PTY.
    """
    address = expand_address(address, config.prefix)
    try:
        conn = await _connect(address, config)
    except ConnectionFailure as e:
        print(f"Error: connection to {address} failed: {e.reason}", file=sys.stderr)
        return CONNECTION_FAILED

    async with conn:
        try:
            with _raw_terminal():
                async with conn.create_process(
                    term_type="xterm-256color",
                    term_size=_terminal_size(),
                    stdin=sys.stdin,
                    stdout=sys.stdout,
                    stderr=sys.stderr,
                ) as proc:
                    with _forward_resizes(proc):
                        await proc.wait()
        except asyncssh.Error as e:
            print(f"Error: session on {address} failed: {e}", file=sys.stderr)
            return CONNECTION_FAILED

    return _exit_status(proc.returncode)
