"""Single-host reachability probes."""

from __future__ import annotations

import asyncio
import logging
import socket

logger = logging.getLogger(__name__)

SSH_PORT = 22
BANNER_PREFIX = b"SSH-"
# RFC 4253 caps the identification line at 255 bytes
MAX_BANNER_LINE = 255


class ProbeUnavailableError(RuntimeError):
    """Raised when no probing mechanism can be used on this machine."""


class Prober:
    """Base probe: answers whether ``address`` accepts connections on ``port``."""

    name = "base"

    def __init__(self, port: int = SSH_PORT):
        self.port = port

    def check(self) -> None:
        """Make sure TCP sockets can be created at all."""
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as e:
            raise ProbeUnavailableError(f"Cannot create TCP sockets: {e}") from e
        sock.close()

    async def probe(self, address: str, timeout: float) -> bool:
        try:
            return await asyncio.wait_for(self._attempt(address), timeout)
        except (asyncio.TimeoutError, OSError) as e:
            logger.debug("%s:%d not reachable: %r", address, self.port, e)
            return False

    async def _attempt(self, address: str) -> bool:
        raise NotImplementedError


class PortProber(Prober):
    """Reports a host as reachable when a TCP connect succeeds."""

    name = "port"

    async def _attempt(self, address: str) -> bool:
        _, writer = await asyncio.open_connection(address, self.port)
        await _close(writer)
        return True


class BannerProber(Prober):
    """Reports a host as reachable only when it greets with an SSH banner."""

    name = "banner"

    async def _attempt(self, address: str) -> bool:
        reader, writer = await asyncio.open_connection(address, self.port)
        try:
            # Servers may send other lines before the identification string
            while True:
                line = await reader.readline()
                if not line:
                    return False
                if line.startswith(BANNER_PREFIX):
                    logger.debug(
                        "%s:%d banner %s",
                        address,
                        self.port,
                        line[:MAX_BANNER_LINE].decode(errors="ignore").strip(),
                    )
                    return True
        except ValueError:
            # StreamReader limit exceeded: not an SSH server
            return False
        finally:
            await _close(writer)


async def _close(writer: asyncio.StreamWriter) -> None:
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass


PROBERS: dict[str, type[Prober]] = {
    BannerProber.name: BannerProber,
    PortProber.name: PortProber,
}


def select_prober(strategy: str = "auto", port: int = SSH_PORT) -> Prober:
    """Return a prober for ``strategy``; ``auto`` prefers the banner probe."""
    if strategy == "auto":
        strategy = BannerProber.name
    try:
        prober_cls = PROBERS[strategy]
    except KeyError:
        raise ProbeUnavailableError(
            f"Unknown probe strategy {strategy!r} "
            f"(expected auto, {', '.join(PROBERS)})"
        ) from None
    return prober_cls(port)
