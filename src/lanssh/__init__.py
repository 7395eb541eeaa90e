"""lanssh: Find SSH hosts on the local network and run commands on them."""

from .addresses import AddressRange, InvalidRangeError, expand_address, generate, sort_key
from .config import Config, load_config
from .connector import (
    CONNECTION_FAILED,
    SESSION_TIMEOUT,
    ConnectionFailure,
    DispatchOutcome,
    open_session,
    run_command,
)
from .dispatcher import Dispatcher, DispatchSummary, HostState, HostStatus, dispatch_all
from .formatter import DisplayMode, format_results
from .prober import BannerProber, PortProber, Prober, ProbeUnavailableError, select_prober
from .scanner import ProbeResult, Scanner, scan

__all__ = [
    "AddressRange",
    "InvalidRangeError",
    "expand_address",
    "generate",
    "sort_key",
    "Config",
    "load_config",
    "CONNECTION_FAILED",
    "SESSION_TIMEOUT",
    "ConnectionFailure",
    "DispatchOutcome",
    "open_session",
    "run_command",
    "Dispatcher",
    "DispatchSummary",
    "HostState",
    "HostStatus",
    "dispatch_all",
    "DisplayMode",
    "format_results",
    "BannerProber",
    "PortProber",
    "Prober",
    "ProbeUnavailableError",
    "select_prober",
    "ProbeResult",
    "Scanner",
    "scan",
]
