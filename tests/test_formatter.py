from __future__ import annotations

import socket
import time

import pytest

from lanssh.formatter import DisplayMode, format_results, lookup_names

ADDRESSES = ["192.168.1.9", "192.168.1.10", "192.168.1.2"]


def test_suffix_only_sorts_numerically() -> None:
    assert format_results(ADDRESSES, DisplayMode.SUFFIX_ONLY) == ["2", "9", "10"]


def test_address_only_sorts_numerically() -> None:
    assert format_results(ADDRESSES, "address") == [
        "192.168.1.2",
        "192.168.1.9",
        "192.168.1.10",
    ]


def test_detailed_uses_resolver() -> None:
    names = {"192.168.1.2": "router.lan", "192.168.1.10": "nas.lan"}

    def resolver(address: str) -> str:
        if address not in names:
            raise socket.herror(1, "Unknown host")
        return names[address]

    lines = format_results(ADDRESSES, DisplayMode.DETAILED, resolver=resolver)
    assert len(lines) == 3
    assert lines[0].split() == ["2", "192.168.1.2", "router.lan"]
    # A failed lookup leaves only that entry without a name
    assert lines[1].split() == ["9", "192.168.1.9"]
    assert lines[2].split() == ["10", "192.168.1.10", "nas.lan"]


def test_detailed_default_resolver_failure(monkeypatch) -> None:
    def fail(address):
        raise socket.gaierror(-2, "Name or service not known")

    monkeypatch.setattr(socket, "gethostbyaddr", fail)
    assert format_results(["10.0.0.5"], "detailed") == ["  5  10.0.0.5"]


def test_empty_input() -> None:
    for mode in DisplayMode:
        assert format_results([], mode) == []


def test_unknown_mode() -> None:
    with pytest.raises(ValueError):
        format_results(ADDRESSES, "verbose")


def test_slow_lookup_is_left_blank() -> None:
    def resolver(address: str) -> str:
        if address == "192.168.1.9":
            time.sleep(5)
        return f"host{address.rsplit('.', 1)[1]}.lan"

    started = time.monotonic()
    lines = format_results(ADDRESSES, DisplayMode.DETAILED, resolver=resolver, timeout=0.3)
    assert time.monotonic() - started < 2

    assert lines[0].split() == ["2", "192.168.1.2", "host2.lan"]
    assert lines[1].split() == ["9", "192.168.1.9"]
    assert lines[2].split() == ["10", "192.168.1.10", "host10.lan"]


def test_lookups_run_concurrently() -> None:
    def resolver(address: str) -> str:
        time.sleep(0.2)
        return "box.lan"

    addresses = [f"10.0.0.{n}" for n in range(1, 21)]
    started = time.monotonic()
    names = lookup_names(addresses, resolver, timeout=3.0)
    # Serial lookups would need 4 seconds
    assert time.monotonic() - started < 2
    assert names == {address: "box.lan" for address in addresses}
