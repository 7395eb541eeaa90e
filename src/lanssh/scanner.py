"""Concurrent discovery of reachable hosts over an address range."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from .addresses import AddressRange, sort_key
from .prober import Prober

logger = logging.getLogger(__name__)

DEFAULT_SCAN_CONCURRENCY = 20


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of probing a single address."""

    address: str
    reachable: bool


class Scanner:
    """Runs a prober over every address of a range with bounded concurrency.

    Reachable addresses are merged into ``found`` by the coroutine driving
    the scan, so ``discovered()`` is usable even after the scan was cancelled.
    """

    def __init__(self, prober: Prober, concurrency: int = DEFAULT_SCAN_CONCURRENCY):
        self.prober = prober
        self.concurrency = concurrency
        self.found: set[str] = set()

    def discovered(self) -> list[str]:
        """Reachable addresses so far, sorted by numeric suffix."""
        return sorted(self.found, key=sort_key)

    async def scan(self, address_range: AddressRange, timeout: float) -> list[str]:
        self.prober.check()
        self.found.clear()
        logger.info(
            "Scanning %s%d-%d (%d hosts, concurrency %d, %s probe)",
            address_range.prefix,
            address_range.start,
            address_range.end,
            len(address_range),
            self.concurrency,
            self.prober.name,
        )

        if self.concurrency <= 1:
            for address in address_range:
                self._record(await self._probe(address, timeout))
        else:
            await self._scan_concurrently(address_range, timeout)

        discovered = self.discovered()
        logger.info("Found %d reachable hosts", len(discovered))
        return discovered

    async def _scan_concurrently(
        self, address_range: AddressRange, timeout: float
    ) -> None:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(address: str) -> ProbeResult:
            async with semaphore:
                return await self._probe(address, timeout)

        tasks = [asyncio.ensure_future(bounded(address)) for address in address_range]
        try:
            for next_done in asyncio.as_completed(tasks):
                self._record(await next_done)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _probe(self, address: str, timeout: float) -> ProbeResult:
        try:
            reachable = await asyncio.wait_for(
                self.prober.probe(address, timeout), timeout
            )
        except asyncio.TimeoutError:
            reachable = False
        logger.debug("%s %s", address, "reachable" if reachable else "no response")
        return ProbeResult(address, reachable)

    def _record(self, result: ProbeResult) -> None:
        if result.reachable:
            self.found.add(result.address)


async def scan(
    address_range: AddressRange,
    prober: Prober,
    timeout: float,
    concurrency: int = DEFAULT_SCAN_CONCURRENCY,
) -> list[str]:
    """Scan ``address_range`` and return the sorted discovery set."""
    return await Scanner(prober, concurrency).scan(address_range, timeout)
