"""Rendering of discovery sets for display."""

from __future__ import annotations

import socket
import threading
import time
from enum import Enum
from typing import Callable, Iterable

from .addresses import sort_key, suffix_of

Resolver = Callable[[str], str]

# Seconds all reverse lookups of one listing may take together
LOOKUP_TIMEOUT = 2.0


class DisplayMode(Enum):
    """How discovered hosts are printed."""

    DETAILED = "detailed"
    ADDRESS_ONLY = "address"
    SUFFIX_ONLY = "suffix"


def reverse_lookup(address: str) -> str:
    """Resolve ``address`` to a host name via the system resolver."""
    return socket.gethostbyaddr(address)[0]


def _safe_name(resolver: Resolver, address: str) -> str:
    try:
        return resolver(address) or ""
    except (OSError, UnicodeError):
        return ""


def lookup_names(
    addresses: Iterable[str], resolver: Resolver, timeout: float = LOOKUP_TIMEOUT
) -> dict[str, str]:
    """Resolve every address at once; lookups still pending at the deadline stay blank.

    Lookup threads are daemons and are abandoned at the deadline.
    """
    names: dict[str, str] = {}

    def lookup(address: str) -> None:
        names[address] = _safe_name(resolver, address)

    addresses = list(addresses)
    threads = [threading.Thread(target=lookup, args=(a,), daemon=True) for a in addresses]
    for thread in threads:
        thread.start()
    deadline = time.monotonic() + timeout
    for thread in threads:
        thread.join(max(0.0, deadline - time.monotonic()))
    return {address: names.get(address, "") for address in addresses}


def format_results(
    addresses: Iterable[str],
    mode: DisplayMode | str = DisplayMode.DETAILED,
    resolver: Resolver | None = None,
    timeout: float = LOOKUP_TIMEOUT,
) -> list[str]:
    """Return one display line per address, ordered by numeric suffix."""
    mode = DisplayMode(mode)
    ordered = sorted(addresses, key=sort_key)

    if mode is DisplayMode.ADDRESS_ONLY:
        return ordered

    if mode is DisplayMode.SUFFIX_ONLY:
        return [str(suffix_of(address) if suffix_of(address) is not None else address)
                for address in ordered]

    names = lookup_names(ordered, resolver or reverse_lookup, timeout)
    lines = []
    for address in ordered:
        suffix = suffix_of(address)
        name = names[address]
        lines.append(f"{'' if suffix is None else suffix:>3}  {address:<15}  {name}".rstrip())
    return lines
