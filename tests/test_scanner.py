from __future__ import annotations

import asyncio

import pytest

from lanssh.addresses import AddressRange, suffix_of
from lanssh.prober import Prober, ProbeUnavailableError
from lanssh.scanner import Scanner, scan


class StubProber(Prober):
    """Answers from a fixed set, optionally with per-address delays."""

    name = "stub"

    def __init__(self, reachable=None, delay=None):
        super().__init__()
        self.reachable = reachable
        self.delay = delay or (lambda address: 0)
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def probe(self, address: str, timeout: float) -> bool:
        self.calls.append(address)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay(address))
        finally:
            self.in_flight -= 1
        return self.reachable is None or address in self.reachable


def test_reverse_completion_order_is_sorted() -> None:
    address_range = AddressRange("10.0.0.", 1, 12)
    # Higher suffixes finish first
    prober = StubProber(delay=lambda a: (13 - suffix_of(a)) * 0.01)
    found = asyncio.run(scan(address_range, prober, timeout=1.0, concurrency=20))
    assert found == list(address_range)


def test_result_is_subset_of_range() -> None:
    address_range = AddressRange("10.0.0.", 1, 20)
    reachable = {"10.0.0.10", "10.0.0.9", "10.0.0.2", "10.0.0.99"}
    found = asyncio.run(scan(address_range, StubProber(reachable), timeout=1.0))
    assert found == ["10.0.0.2", "10.0.0.9", "10.0.0.10"]
    assert set(found) <= set(address_range)


def test_nothing_reachable_is_empty() -> None:
    address_range = AddressRange("10.0.0.", 1, 30)
    assert asyncio.run(scan(address_range, StubProber(set()), timeout=1.0)) == []


@pytest.mark.parametrize("cap", [2, 5, 20])
def test_concurrency_cap(cap: int) -> None:
    address_range = AddressRange("10.0.0.", 0, 59)
    prober = StubProber(delay=lambda a: 0.01)
    asyncio.run(scan(address_range, prober, timeout=1.0, concurrency=cap))
    assert len(prober.calls) == 60
    assert prober.max_in_flight == cap


def test_sequential_probes_in_ascending_order() -> None:
    address_range = AddressRange("10.0.0.", 7, 12)
    prober = StubProber(delay=lambda a: 0.001)
    asyncio.run(scan(address_range, prober, timeout=1.0, concurrency=1))
    assert prober.calls == list(address_range)
    assert prober.max_in_flight == 1


def test_probe_exceeding_timeout_counts_as_unreachable() -> None:
    address_range = AddressRange("10.0.0.", 1, 3)
    prober = StubProber(delay=lambda a: 5 if a == "10.0.0.2" else 0)
    found = asyncio.run(scan(address_range, prober, timeout=0.1))
    assert found == ["10.0.0.1", "10.0.0.3"]


def test_unavailable_probe_aborts_scan() -> None:
    class Broken(StubProber):
        def check(self) -> None:
            raise ProbeUnavailableError("no sockets")

    prober = Broken()
    with pytest.raises(ProbeUnavailableError):
        asyncio.run(scan(AddressRange("10.0.0.", 1, 3), prober, timeout=1.0))
    assert prober.calls == []


def test_partial_results_survive_cancellation() -> None:
    address_range = AddressRange("10.0.0.", 1, 10)
    prober = StubProber(delay=lambda a: 0 if suffix_of(a) <= 3 else 10)
    scanner = Scanner(prober, concurrency=10)

    async def runner() -> None:
        task = asyncio.ensure_future(scanner.scan(address_range, timeout=30.0))
        await asyncio.sleep(0.1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(runner())
    assert scanner.discovered() == ["10.0.0.1", "10.0.0.2", "10.0.0.3"]
    assert prober.in_flight == 0
