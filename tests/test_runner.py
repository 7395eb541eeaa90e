from __future__ import annotations

from pathlib import Path

import asyncssh
import pytest

from lanssh import runner
from lanssh.connector import DispatchOutcome
from lanssh.prober import Prober


class SetProber(Prober):
    name = "stub"

    def __init__(self, reachable=None):
        super().__init__()
        self.reachable = reachable

    async def probe(self, address: str, timeout: float) -> bool:
        return self.reachable is None or address in self.reachable


@pytest.fixture(autouse=True)
def no_user_config(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(runner, "default_config_path", lambda: tmp_path / "absent.yaml")


def _use_prober(monkeypatch, reachable=None) -> None:
    monkeypatch.setattr(runner, "select_prober", lambda strategy, port: SetProber(reachable))


def test_scan_address_only(monkeypatch, capsys) -> None:
    _use_prober(monkeypatch, {"10.0.0.2"})
    status = runner.main(["scan", "--prefix", "10.0.0.", "--start", "1", "--end", "3", "-a"])
    assert status == 0
    assert capsys.readouterr().out.splitlines() == ["10.0.0.2"]


def test_scan_suffix_only(monkeypatch, capsys) -> None:
    _use_prober(monkeypatch)
    status = runner.main(
        ["scan", "--prefix", "192.168.1.", "--start", "50", "--end", "52", "-s"]
    )
    assert status == 0
    assert capsys.readouterr().out.splitlines() == ["50", "51", "52"]


def test_scan_nothing_found_is_success(monkeypatch, capsys) -> None:
    _use_prober(monkeypatch, set())
    status = runner.main(["scan", "--prefix", "10.0.0.", "--start", "1", "--end", "9", "-a"])
    assert status == 0
    assert capsys.readouterr().out == ""


def test_scan_invalid_range(monkeypatch, capsys) -> None:
    _use_prober(monkeypatch)
    status = runner.main(["scan", "--start", "9", "--end", "3"])
    assert status == 2
    assert "Error:" in capsys.readouterr().err


def test_scan_display_mode_from_config(monkeypatch, capsys, tmp_path: Path) -> None:
    config_file = tmp_path / "lanssh.yaml"
    config_file.write_text("network:\n  prefix: '10.0.0.'\n  start: 9\n  end: 10\ndisplay: suffix\n")
    _use_prober(monkeypatch)
    assert runner.main(["scan", "--config", str(config_file)]) == 0
    assert capsys.readouterr().out.splitlines() == ["9", "10"]


def test_missing_config_file(capsys, tmp_path: Path) -> None:
    assert runner.main(["scan", "--config", str(tmp_path / "nope.yaml")]) == 1
    assert "Config file not found" in capsys.readouterr().err


def test_run_on_discovered_hosts(monkeypatch, capsys) -> None:
    _use_prober(monkeypatch, {"10.0.0.2", "10.0.0.5", "10.0.0.9"})
    calls: list[str] = []

    async def fake_run_command(address, config, command, on_output=None):
        calls.append(address)
        if address == "10.0.0.5":
            return DispatchOutcome(
                address, 255, stderr="Connection failed: refused", transport_error=True
            )
        return DispatchOutcome(address, 0)

    monkeypatch.setattr(runner, "run_command", fake_run_command)

    status = runner.main(
        ["run", "--prefix", "10.0.0.", "--start", "1", "--end", "10", "--no-logs", "--", "uptime"]
    )

    out = capsys.readouterr().out
    assert status == 1
    assert calls == ["10.0.0.2", "10.0.0.5", "10.0.0.9"]
    assert "10.0.0.5: FAILED (exit 255)" in out
    assert "3 hosts: 2 succeeded, 1 failed" in out


def test_run_explicit_hosts(monkeypatch, capsys) -> None:
    seen: list[tuple[str, list[str]]] = []

    async def fake_run_command(address, config, command, on_output=None):
        seen.append((address, command))
        return DispatchOutcome(address, 0)

    monkeypatch.setattr(runner, "run_command", fake_run_command)

    status = runner.main(
        ["run", "--prefix", "10.0.0.", "--hosts", "4,10.0.0.7", "--no-logs", "-p", "uname", "-a"]
    )

    assert status == 0
    assert seen == [("10.0.0.4", ["uname", "-a"]), ("10.0.0.7", ["uname", "-a"])]
    assert "2 hosts: 2 succeeded, 0 failed" in capsys.readouterr().out


def test_run_without_command(capsys) -> None:
    assert runner.main(["run", "--hosts", "4"]) == 2
    assert "no command" in capsys.readouterr().err


def test_connect_runs_single_command(monkeypatch, capsys) -> None:
    async def fake_run_command(address, config, command, on_output=None):
        on_output("hello", False)
        return DispatchOutcome(address, 3)

    monkeypatch.setattr(runner, "run_command", fake_run_command)
    assert runner.main(["connect", "--prefix", "10.0.0.", "8", "echo", "hello"]) == 3
    assert capsys.readouterr().out == "hello\n"


def test_connect_interactive(monkeypatch) -> None:
    opened: list[str] = []

    async def fake_open_session(address, config):
        opened.append(address)
        return 0

    monkeypatch.setattr(runner, "open_session", fake_open_session)
    assert runner.main(["connect", "--prefix", "10.0.0.", "8"]) == 0
    assert opened == ["10.0.0.8"]


def test_connect_failure_status(monkeypatch, capsys) -> None:
    async def fake_run_command(address, config, command, on_output=None):
        return DispatchOutcome(
            address, 255, stderr="Connection failed: No route to host", transport_error=True
        )

    monkeypatch.setattr(runner, "run_command", fake_run_command)
    assert runner.main(["connect", "10.0.0.8", "true"]) == 255
    assert "No route to host" in capsys.readouterr().err


class SilentShell:
    """Remote process that prints nothing and exits 255."""

    returncode = 255

    def __init__(self):
        self.stdout = self.stderr = self

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc) -> None:
        return None

    async def readline(self) -> str:
        return ""

    async def wait(self) -> None:
        return None


class SilentConnection:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc) -> None:
        return None

    def create_process(self, command, **kwargs) -> SilentShell:
        return SilentShell()


def test_connect_remote_exit_255_without_stderr(monkeypatch, capsys) -> None:
    async def fake_connect(host, **kwargs):
        return SilentConnection()

    monkeypatch.setattr(asyncssh, "connect", fake_connect)
    assert runner.main(["connect", "10.0.0.8", "exit", "255"]) == 255
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "Error" not in captured.err


def test_connect_transport_failure_without_stderr(monkeypatch, capsys) -> None:
    async def fake_run_command(address, config, command, on_output=None):
        return DispatchOutcome(address, 255, transport_error=True)

    monkeypatch.setattr(runner, "run_command", fake_run_command)
    assert runner.main(["connect", "10.0.0.8", "true"]) == 255


def test_missing_ssh_key(capsys, tmp_path: Path) -> None:
    status = runner.main(["connect", "--key", str(tmp_path / "id_missing"), "10.0.0.8"])
    assert status == 1
    assert "SSH key not found" in capsys.readouterr().err
