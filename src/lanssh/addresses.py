"""Candidate address generation for lanssh scans."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator

MIN_SUFFIX = 0
MAX_SUFFIX = 255
SEPARATORS = (".", ":")

_SUFFIX = re.compile(r"(\d+)$")


class InvalidRangeError(ValueError):
    """Raised when scan bounds or a prefix cannot describe a valid range."""


@dataclass(frozen=True)
class AddressRange:
    """A shared prefix plus an inclusive numeric suffix range."""

    prefix: str
    start: int
    end: int

    def __post_init__(self) -> None:
        if not self.prefix or not self.prefix.endswith(SEPARATORS):
            raise InvalidRangeError(
                f"Prefix must end in one of {', '.join(SEPARATORS)}: {self.prefix!r}"
            )
        for name, value in (("start", self.start), ("end", self.end)):
            if not MIN_SUFFIX <= value <= MAX_SUFFIX:
                raise InvalidRangeError(
                    f"{name} must be between {MIN_SUFFIX} and {MAX_SUFFIX}, got {value}"
                )
        if self.start > self.end:
            raise InvalidRangeError(
                f"start ({self.start}) must not be greater than end ({self.end})"
            )

    def __iter__(self) -> Iterator[str]:
        for n in range(self.start, self.end + 1):
            yield f"{self.prefix}{n}"

    def __len__(self) -> int:
        return self.end - self.start + 1

    def __contains__(self, address: object) -> bool:
        if not isinstance(address, str) or not address.startswith(self.prefix):
            return False
        rest = address[len(self.prefix):]
        return rest.isdigit() and self.start <= int(rest) <= self.end


def generate(prefix: str, start: int, end: int) -> list[str]:
    """Return every candidate address of the range in ascending order."""
    return list(AddressRange(prefix, start, end))


def suffix_of(address: str) -> int | None:
    """Return the numeric trailing component of an address, if it has one."""
    match = _SUFFIX.search(address)
    if match is None:
        return None
    return int(match.group(1))


def sort_key(address: str) -> tuple[int, str]:
    """Sort key ordering addresses by the numeric value of their suffix."""
    suffix = suffix_of(address)
    return (-1 if suffix is None else suffix, address)


def expand_address(target: str, prefix: str) -> str:
    """Expand a bare numeric suffix like ``42`` into ``prefix + "42"``."""
    target = target.strip()
    if not target.isdigit():
        return target
    value = int(target)
    if not MIN_SUFFIX <= value <= MAX_SUFFIX:
        raise InvalidRangeError(
            f"Host suffix must be between {MIN_SUFFIX} and {MAX_SUFFIX}, got {value}"
        )
    return f"{prefix}{value}"
