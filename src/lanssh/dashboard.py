"""Textual view of a batch dispatch, one panel per host."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Sequence

from textual.app import App, ComposeResult
from textual.message import Message
from textual.reactive import reactive
from textual.widgets import Footer, Header, Label, RichLog, Static
from textual.worker import Worker, WorkerState

from .config import Config
from .connector import run_command
from .dispatcher import Connector, Dispatcher, DispatchSummary, HostStatus

STATUS_ICONS = {
    HostStatus.PENDING: ("○", "dim"),
    HostStatus.CONNECTING: ("◌", "yellow"),
    HostStatus.RUNNING: ("●", "yellow"),
    HostStatus.SUCCESS: ("✔", "green"),
    HostStatus.FAILED: ("✘", "red"),
}

FINISHED = (HostStatus.SUCCESS, HostStatus.FAILED)

# Line prefixes the dispatcher emits, and how they are highlighted
LINE_STYLES = (
    ("STDERR:", "red"),
    ("ERROR:", "bold red"),
    ("Command exited", "bold red"),
    ("Command completed", "green"),
)

_ID_UNSAFE = re.compile(r"[^A-Za-z0-9_-]")


def widget_id(address: str) -> str:
    """Textual ids cannot contain dots, so ``10.0.0.2`` becomes ``10-0-0-2``."""
    return _ID_UNSAFE.sub("-", address)


class HostPanel(Static):
    """Live output of one host under a status header."""

    status: reactive[HostStatus] = reactive(HostStatus.PENDING)
    exit_status: reactive[int | None] = reactive(None)

    def __init__(self, address: str, login: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self.address = address
        self.login = login
        self.slug = widget_id(address)

    def compose(self) -> ComposeResult:
        yield Label(self.header_text(), id=f"header-{self.slug}")
        yield RichLog(id=f"log-{self.slug}", markup=True, wrap=True, auto_scroll=True)

    def header_text(self) -> str:
        icon, color = STATUS_ICONS[self.status]
        text = f"[{color}]{icon} [bold]{self.address}[/bold][/] [dim]{self.login}[/]"
        if self.exit_status is not None:
            text += f" [{color}]exit {self.exit_status}[/]"
        return text

    def _refresh_header(self) -> None:
        if self.is_mounted:
            self.query_one(f"#header-{self.slug}", Label).update(self.header_text())

    def watch_status(self, status: HostStatus) -> None:
        self._refresh_header()

    def watch_exit_status(self, exit_status: int | None) -> None:
        self._refresh_header()

    def append_output(self, line: str) -> None:
        log = self.query_one(f"#log-{self.slug}", RichLog)
        for prefix, style in LINE_STYLES:
            if line.startswith(prefix):
                log.write(f"[{style}]{line}[/]")
                return
        log.write(line)


class StatusBar(Static):
    """Batch progress, updated as hosts finish."""

    total: reactive[int] = reactive(0)
    completed: reactive[int] = reactive(0)
    failed: reactive[int] = reactive(0)
    running: reactive[bool] = reactive(True)

    def render(self) -> str:
        progress = f"{self.completed}/{self.total} hosts done, {self.failed} failed"
        state = "running" if self.running else "finished"
        return f"{progress} | {state} | q to quit"


@dataclass
class HostOutput(Message):
    """A line of output from a host, posted from the dispatch thread."""
    address: str
    line: str


@dataclass
class HostStatusChange(Message):
    """A host moved to a new status, posted from the dispatch thread."""
    address: str
    status: HostStatus


class Dashboard(App):
    """Live view of a batch dispatch, one panel per host."""

    CSS = """
    Screen {
        layout: grid;
        grid-size: 2;
        grid-gutter: 1;
    }

    HostPanel {
        border: round $primary;
        height: 100%;
        min-height: 8;
    }

    HostPanel Label {
        dock: top;
        padding: 0 1;
        background: $surface;
    }

    HostPanel RichLog {
        height: 1fr;
        padding: 0 1;
    }

    StatusBar {
        dock: bottom;
        height: 1;
        background: $surface;
        padding: 0 1;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("escape", "quit", "Quit"),
    ]

    def __init__(
        self,
        config: Config,
        addresses: Sequence[str],
        command: str | Sequence[str],
        enable_logging: bool = True,
        connector: Connector = run_command,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.config = config
        self.addresses = list(dict.fromkeys(addresses))
        self.remote_command = command
        self.dispatcher = Dispatcher(
            config,
            on_output=self._on_output,
            on_status=self._on_status,
            enable_logging=enable_logging,
            connector=connector,
        )
        self.panels: dict[str, HostPanel] = {}
        self._worker: Worker | None = None

    @property
    def summary(self) -> DispatchSummary:
        """Outcomes gathered so far; partial if the user quit early."""
        return self.dispatcher.summary()

    @property
    def status_bar(self) -> StatusBar:
        return self.query_one(StatusBar)

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        login = f"{self.config.user}@{{}}:{self.config.port}"
        for address in self.addresses:
            panel = HostPanel(address, login.format(address), id=f"panel-{widget_id(address)}")
            self.panels[address] = panel
            yield panel
        yield StatusBar()
        yield Footer()

    def on_mount(self) -> None:
        self.status_bar.total = len(self.addresses)
        self._worker = self.run_worker(self._dispatch(), exclusive=True, thread=True)

    async def _dispatch(self) -> None:
        await self.dispatcher.dispatch_all(self.addresses, self.remote_command)

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        if event.worker is not self._worker:
            return
        if event.state in (WorkerState.SUCCESS, WorkerState.ERROR, WorkerState.CANCELLED):
            self.status_bar.running = False

    # Dispatcher callbacks run on the worker thread
    def _on_output(self, address: str, line: str) -> None:
        self.post_message(HostOutput(address, line))

    def _on_status(self, address: str, status: HostStatus) -> None:
        self.post_message(HostStatusChange(address, status))

    def on_host_output(self, message: HostOutput) -> None:
        panel = self.panels.get(message.address)
        if panel is not None:
            panel.append_output(message.line)

    def on_host_status_change(self, message: HostStatusChange) -> None:
        panel = self.panels.get(message.address)
        if panel is None:
            return
        panel.status = message.status
        if message.status not in FINISHED:
            return

        outcome = self.dispatcher.outcomes.get(message.address)
        if outcome is not None:
            panel.exit_status = outcome.exit_status
        self.status_bar.completed += 1
        if message.status is HostStatus.FAILED:
            self.status_bar.failed += 1

    async def action_quit(self) -> None:
        if self._worker and self._worker.is_running:
            self._worker.cancel()
        self.exit()
