"""Process-wide serialization of read-compute-write sequences.

Allocating the first free unit of an interface namespace reads the
existing units, computes a number and creates it later in the same
operation. Without serialization two concurrent creates pick the same
number, so the whole sequence runs while holding the coordinator.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Iterable, Optional

from .errors import AllocationError

logger = logging.getLogger(__name__)

# Practical upper bound of the free-slot scan
MAX_SLOT_NUMBER = 1073741823


def first_free_number(existing: Iterable[int], start: int = 0, limit: int = MAX_SLOT_NUMBER) -> int:
    """Lowest integer >= start that is not in existing."""
    taken = set(existing)
    number = start
    while number in taken:
        number += 1
    if number > limit:
        raise AllocationError(f"no free number available up to {limit}")
    return number


def parse_terse_units(output: str, namespace: str) -> list[int]:
    """Unit numbers listed by `show interfaces <namespace> terse`."""
    prefix = namespace + "."
    units = []
    for line in output.splitlines():
        if not line.startswith(prefix):
            continue
        name = line.split()[0]
        unit = name[len(prefix):]
        if unit.isdigit():
            units.append(int(unit))
    return units


class AllocationCoordinator:
    """Injected process-wide mutex around free-slot allocation.

    Usage:
        async with coordinator.hold():
            unit = await coordinator.allocate(session, "st0")
            ... stage and commit lines using unit ...
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._reserved: dict[str, set[int]] = {}

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def hold(self):
        async with self._lock:
            try:
                yield self
            finally:
                self._reserved.clear()

    def reserve(self, namespace: str, existing: Iterable[int]) -> int:
        """Pick the first free number, excluding ones handed out in this hold."""
        if not self._lock.locked():
            raise AllocationError("free slot allocation must run while holding the coordinator")
        reserved = self._reserved.setdefault(namespace, set())
        number = first_free_number(set(existing) | reserved)
        reserved.add(number)
        return number

    async def allocate(self, session, namespace: str) -> str:
        """Allocate the next free logical unit `<namespace>.<n>`."""
        if not self._lock.locked():
            raise AllocationError("free slot allocation must run while holding the coordinator")
        output = await session.command(f"show interfaces {namespace} terse")
        number = self.reserve(namespace, parse_terse_units(output, namespace))
        unit = f"{namespace}.{number}"
        logger.info(f"Allocated {unit} on {session.device_id}")
        return unit


_coordinator: Optional[AllocationCoordinator] = None


def get_coordinator() -> AllocationCoordinator:
    """Get the process-wide AllocationCoordinator engines share by default."""
    global _coordinator
    if _coordinator is None:
        _coordinator = AllocationCoordinator()
    return _coordinator
