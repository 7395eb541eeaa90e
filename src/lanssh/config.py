"""Configuration loader for lanssh."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

DISPLAY_MODES = ("detailed", "address", "suffix")
PROBE_STRATEGIES = ("auto", "banner", "port")


@dataclass(frozen=True)
class Config:
    """Immutable settings snapshot for one invocation."""

    # Network
    prefix: str = "192.168.1."
    start: int = 1
    end: int = 254
    port: int = 22

    # Scan
    probe_timeout: float = 1.0
    scan_concurrency: int = 20
    probe_strategy: str = "auto"

    # SSH
    user: str = "root"
    ssh_key: Path | None = None
    connect_timeout: float = 5.0
    session_timeout: float = 60.0

    # Dispatch
    parallel: bool = False
    max_parallel: int = 10

    display_mode: str = "detailed"
    log_dir: Path = field(default_factory=lambda: Path("logs"))
    no_logs: bool = False
    source_path: Path | None = None  # Path to the original config file

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise ValueError(f"port must be between 1 and 65535, got {self.port}")
        for name in ("probe_timeout", "connect_timeout", "session_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        for name in ("scan_concurrency", "max_parallel"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1")
        if self.display_mode not in DISPLAY_MODES:
            raise ValueError(
                f"display must be one of {', '.join(DISPLAY_MODES)}, got {self.display_mode!r}"
            )
        if self.probe_strategy not in PROBE_STRATEGIES:
            raise ValueError(
                f"scan.strategy must be one of {', '.join(PROBE_STRATEGIES)}, "
                f"got {self.probe_strategy!r}"
            )
        if not self.user:
            raise ValueError("ssh.user must not be empty")

    def with_overrides(self, **overrides: Any) -> Config:
        """Return a new snapshot with every non-None override applied."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown config fields: {', '.join(sorted(unknown))}")
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def default_config_path() -> Path:
    return Path("~/.config/lanssh/config.yaml").expanduser()


def load_config(config_path: str | Path) -> Config:
    """Load and validate configuration from a YAML file."""
    config_path = Path(config_path).expanduser().resolve()

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ValueError("Configuration must be a mapping")

    return _parse_config(raw, source_path=config_path)


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"'{name}' section must be a mapping")
    return section


def _parse_config(raw: dict[str, Any], source_path: Path | None = None) -> Config:
    """Parse raw YAML data into a Config object."""
    values: dict[str, Any] = {}
    values.update(_parse_network(_section(raw, "network")))
    values.update(_parse_scan(_section(raw, "scan")))
    values.update(_parse_ssh(_section(raw, "ssh")))
    values.update(_parse_dispatch(_section(raw, "dispatch")))

    if "display" in raw:
        values["display_mode"] = str(raw["display"])
    if "log_dir" in raw:
        values["log_dir"] = Path(raw["log_dir"]).expanduser().resolve()
    if "no_logs" in raw:
        values["no_logs"] = _bool(raw["no_logs"], "no_logs")

    return Config(source_path=source_path, **values)


def _parse_network(section: dict[str, Any]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    if "prefix" in section:
        values["prefix"] = str(section["prefix"])
    for key in ("start", "end", "port"):
        if key in section:
            values[key] = _int(section[key], f"network.{key}")
    return values


def _parse_scan(section: dict[str, Any]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    if "timeout" in section:
        values["probe_timeout"] = _float(section["timeout"], "scan.timeout")
    if "concurrency" in section:
        values["scan_concurrency"] = _int(section["concurrency"], "scan.concurrency")
    if "strategy" in section:
        values["probe_strategy"] = str(section["strategy"])
    return values


def _parse_ssh(section: dict[str, Any]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    if "user" in section:
        values["user"] = str(section["user"])
    if section.get("ssh_key"):
        values["ssh_key"] = Path(section["ssh_key"]).expanduser()
    for key in ("connect_timeout", "session_timeout"):
        if key in section:
            values[key] = _float(section[key], f"ssh.{key}")
    return values


def _parse_dispatch(section: dict[str, Any]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    if "parallel" in section:
        values["parallel"] = _bool(section["parallel"], "dispatch.parallel")
    if "max_parallel" in section:
        values["max_parallel"] = _int(section["max_parallel"], "dispatch.max_parallel")
    return values


def _int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{key}' must be an integer, got {value!r}")
    return value


def _float(value: Any, key: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{key}' must be a number, got {value!r}")
    return float(value)


def _bool(value: Any, key: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"'{key}' must be true or false, got {value!r}")
    return value
