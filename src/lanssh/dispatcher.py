"""Batch execution of one command across many hosts."""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Sequence

from .config import Config
from .connector import (
    CONNECTION_FAILED,
    DispatchOutcome,
    run_command,
)

logger = logging.getLogger(__name__)


class HostStatus(Enum):
    """Status of a host's execution."""

    PENDING = "pending"
    CONNECTING = "connecting"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class HostState:
    """Runtime state for a host."""

    address: str
    status: HostStatus = HostStatus.PENDING
    output_lines: list[str] = field(default_factory=list)
    error_message: str = ""
    log_file: Path | None = None


@dataclass(frozen=True)
class DispatchSummary:
    """Aggregate result of a batch run; outcomes keep the input order."""

    total: int
    succeeded: int
    failed: int
    outcomes: tuple[DispatchOutcome, ...] = ()

    @classmethod
    def from_outcomes(cls, outcomes: Sequence[DispatchOutcome]) -> DispatchSummary:
        succeeded = sum(1 for outcome in outcomes if outcome.succeeded)
        return cls(
            total=len(outcomes),
            succeeded=succeeded,
            failed=len(outcomes) - succeeded,
            outcomes=tuple(outcomes),
        )


_PATH_SEPARATORS = re.compile(r"[\\/]")


def log_name(address: str) -> str:
    """Per-host log file name; separators in a host name must not nest directories."""
    return _PATH_SEPARATORS.sub("_", address) + ".log"


# Type alias for callbacks
OutputCallback = Callable[[str, str], None]  # (address, line) -> None
StatusCallback = Callable[[str, HostStatus], None]  # (address, status) -> None
Connector = Callable[..., Awaitable[DispatchOutcome]]


class Dispatcher:
    """Runs a command on every address of a discovery set."""

    def __init__(
        self,
        config: Config,
        on_output: OutputCallback | None = None,
        on_status: StatusCallback | None = None,
        enable_logging: bool = True,
        connector: Connector = run_command,
    ):
        self.config = config
        self.on_output = on_output
        self.on_status = on_status
        self.enable_logging = enable_logging and not config.no_logs
        self.connector = connector
        self.states: dict[str, HostState] = {}
        self.outcomes: dict[str, DispatchOutcome] = {}
        self._order: list[str] = []
        self._log_dir: Path | None = None

    @property
    def log_dir(self) -> Path | None:
        return self._log_dir

    def _setup_logging(self) -> None:
        """Set up log directory with timestamp."""
        if not self.enable_logging:
            return
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self._log_dir = self.config.log_dir / timestamp
        self._log_dir.mkdir(parents=True, exist_ok=True)

        # Copy the source config file to the log directory
        if self.config.source_path and self.config.source_path.exists():
            shutil.copy(self.config.source_path, self._log_dir / "config.yaml")

    def _emit_output(self, address: str, line: str) -> None:
        """Emit output line for a host."""
        state = self.states.get(address)
        if state:
            state.output_lines.append(line)
            if state.log_file:
                try:
                    with open(state.log_file, "a") as f:
                        f.write(line + "\n")
                except OSError as e:
                    logger.warning("Logging for %s disabled: %s", address, e)
                    state.log_file = None

        if self.on_output:
            self.on_output(address, line)

    def _emit_status(self, address: str, status: HostStatus) -> None:
        """Emit status change for a host."""
        if address in self.states:
            self.states[address].status = status
        if self.on_status:
            self.on_status(address, status)

    def summary(self) -> DispatchSummary:
        """Summarize the hosts that have completed so far, in input order."""
        return DispatchSummary.from_outcomes(
            [self.outcomes[a] for a in self._order if a in self.outcomes]
        )

    async def dispatch_all(
        self,
        addresses: Sequence[str],
        command: str | Sequence[str],
        parallel: bool | None = None,
        max_parallel: int | None = None,
    ) -> DispatchSummary:
        """Run ``command`` on every address and return the summary."""
        parallel = self.config.parallel if parallel is None else parallel
        max_parallel = max_parallel or self.config.max_parallel

        self._setup_logging()
        self._order = list(dict.fromkeys(addresses))
        self.outcomes.clear()
        self.states.clear()

        for address in self._order:
            log_file = None
            if self._log_dir:
                log_file = self._log_dir / log_name(address)
            self.states[address] = HostState(address=address, log_file=log_file)

        logger.info(
            "Dispatching to %d hosts (%s)",
            len(self._order),
            f"parallel, max {max_parallel}" if parallel else "sequential",
        )

        if parallel:
            semaphore = asyncio.Semaphore(max_parallel)

            async def bounded(address: str) -> None:
                async with semaphore:
                    await self._run_host(address, command)

            await asyncio.gather(*(bounded(a) for a in self._order))
        else:
            for address in self._order:
                await self._run_host(address, command)

        return self.summary()

    async def _run_host(self, address: str, command: str | Sequence[str]) -> None:
        """Run the command on one host; never raises for host failures."""
        state = self.states[address]
        try:
            outcome = await self._execute(state, command)
        except Exception as e:
            logger.exception("Dispatch to %s raised", address)
            outcome = DispatchOutcome(
                address=address,
                exit_status=CONNECTION_FAILED,
                stderr=f"{type(e).__name__}: {e}",
                transport_error=True,
            )

        self.outcomes[address] = outcome
        try:
            self._finish(state, outcome)
        except Exception:
            logger.exception("Reporting the result for %s failed", address)

    async def _execute(
        self, state: HostState, command: str | Sequence[str]
    ) -> DispatchOutcome:
        address = state.address
        self._emit_status(address, HostStatus.CONNECTING)
        self._emit_output(address, f"Connecting to {self.config.user}@{address}:{self.config.port}...")

        def on_line(line: str, is_stderr: bool) -> None:
            if state.status is HostStatus.CONNECTING:
                self._emit_status(address, HostStatus.RUNNING)
            self._emit_output(address, f"STDERR: {line}" if is_stderr else line)

        return await self.connector(address, self.config, command, on_output=on_line)

    def _finish(self, state: HostState, outcome: DispatchOutcome) -> None:
        address = state.address
        if outcome.succeeded:
            self._emit_output(address, "Command completed")
            self._emit_status(address, HostStatus.SUCCESS)
            return

        if outcome.transport_failed or outcome.timed_out:
            state.error_message = outcome.stderr.splitlines()[-1] if outcome.stderr else ""
            self._emit_output(address, f"ERROR: {state.error_message}")
        else:
            state.error_message = f"Command exited with status {outcome.exit_status}"
            self._emit_output(address, state.error_message)
        self._emit_status(address, HostStatus.FAILED)


async def dispatch_all(
    addresses: Sequence[str],
    command: str | Sequence[str],
    config: Config,
    parallel: bool | None = None,
    max_parallel: int | None = None,
    on_output: OutputCallback | None = None,
    connector: Connector = run_command,
) -> DispatchSummary:
    """Functional wrapper around :class:`Dispatcher` without per-host log files."""
    dispatcher = Dispatcher(
        config, on_output=on_output, enable_logging=False, connector=connector
    )
    return await dispatcher.dispatch_all(addresses, command, parallel, max_parallel)
