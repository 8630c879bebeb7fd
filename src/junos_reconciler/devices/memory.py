"""In-memory Junos configuration store.

Models the pieces of a Junos device the engine relies on: a committed
(running) configuration, a lockable candidate, `show configuration ... |
display set [relative]` queries and `show interfaces <name> terse`.
Used for offline planning and tests; failures can be injected to exercise
every error path of the engine.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from .base import (
    CommitOutcome,
    ConfigBackend,
    DeviceError,
    LockContentionError,
    RPCError,
    SystemInformation,
)

logger = logging.getLogger(__name__)

START_MARKER = "<configuration-output>"
END_MARKER = "</configuration-output>"

_SHOW_CONFIG_RE = re.compile(r"^show configuration (?P<path>.+?) \| display set(?P<relative> relative)?$")
_SHOW_TERSE_RE = re.compile(r"^show interfaces (?P<name>\S+) terse$")


def _matches(line: str, path: str) -> bool:
    """True when a `set ...` line belongs to the subtree at path."""
    head = "set " + path
    return line == head or line.startswith(head + " ")


@dataclass
class MemoryDevice:
    """Shared state of one simulated device.

    Several MemoryBackend sessions may point at the same device; the
    candidate lock is shared between them.
    """
    name: str = "memory"
    running: list[str] = field(default_factory=list)
    system_information: SystemInformation = field(
        default_factory=lambda: SystemInformation(
            hardware_model="vsrx", os_name="junos", os_version="23.4R1", product_model="vsrx"
        )
    )
    frame_output: bool = False
    # Failure injection
    fail_lock: bool = False
    fail_connect: bool = False
    fail_commit: Optional[str] = None
    commit_warnings: list[str] = field(default_factory=list)
    clear_warnings: list[str] = field(default_factory=list)
    reject_lines: list[str] = field(default_factory=list)
    drop_on_commit: list[str] = field(default_factory=list)
    inject_on_commit: list[str] = field(default_factory=list)
    # Observed behaviour
    lock_owner: Optional[int] = None
    candidate: Optional[list[str]] = None
    calls: list[str] = field(default_factory=list)
    loaded: list[list[str]] = field(default_factory=list)
    commits: list[dict] = field(default_factory=list)

    def count(self, call: str) -> int:
        return self.calls.count(call)

    def show(self, path: str, relative: bool = False) -> list[str]:
        lines = [line for line in self.running if _matches(line, path)]
        if relative:
            # the root statement itself shows as a bare `set`
            head = "set " + path
            lines = ["set" + line[len(head):] for line in lines]
        return lines


class MemoryBackend(ConfigBackend):
    """One session against a MemoryDevice."""

    _next_session = 0

    def __init__(self, device: MemoryDevice, device_id: Optional[str] = None):
        super().__init__(device_id or device.name)
        self.device = device
        MemoryBackend._next_session += 1
        self._session_id = MemoryBackend._next_session

    async def connect(self) -> None:
        self.device.calls.append("connect")
        if self.device.fail_connect:
            raise ConnectionRefusedError(f"connection to {self.device_id} refused")
        self.system_information = self.device.system_information
        self._connected = True

    async def close(self) -> None:
        self.device.calls.append("close")
        if self.device.lock_owner == self._session_id:
            # Junos drops the candidate lock with the session
            self.device.lock_owner = None
            self.device.candidate = None
        self._connected = False

    def _ensure_connected(self) -> None:
        if not self._connected:
            raise DeviceError(f"session to {self.device_id} is not open")

    def _frame(self, lines: list[str]) -> str:
        if not lines:
            return ""
        text = "\n".join(lines) + "\n"
        if self.device.frame_output:
            return f"\n{START_MARKER}\n{text}{END_MARKER}\n"
        return text

    async def command(self, text: str) -> str:
        self._ensure_connected()
        self.device.calls.append("command")
        match = _SHOW_CONFIG_RE.match(text)
        if match:
            path = match.group("path")
            return self._frame(self.device.show(path, relative=bool(match.group("relative"))))
        match = _SHOW_TERSE_RE.match(text)
        if match:
            return self._interfaces_terse(match.group("name"))
        raise DeviceError(f"syntax error: {text}")

    def _interfaces_terse(self, name: str) -> str:
        units = []
        for line in self.device.running:
            found = re.match(rf"^set interfaces {re.escape(name)}(?: unit |\.)(\d+)(?: |$)", line)
            if found and f"{name}.{found.group(1)}" not in units:
                units.append(f"{name}.{found.group(1)}")
        if not units and not any(_matches(line, f"interfaces {name}") for line in self.device.running):
            return ""
        rows = ["Interface               Admin Link Proto    Local                 Remote", f"{name:24s}up    up"]
        rows.extend(f"{unit:24s}up    up   inet" for unit in units)
        return "\n".join(rows) + "\n"

    async def config_lock(self) -> None:
        self._ensure_connected()
        self.device.calls.append("lock")
        if self.device.fail_lock or self.device.lock_owner is not None:
            raise LockContentionError("configuration database locked by another user")
        self.device.lock_owner = self._session_id
        self.device.candidate = list(self.device.running)

    def _require_lock(self) -> list[str]:
        if self.device.lock_owner != self._session_id or self.device.candidate is None:
            raise RPCError("candidate configuration is not locked by this session")
        return self.device.candidate

    async def config_set(self, lines: list[str]) -> None:
        self._ensure_connected()
        self.device.calls.append("set")
        self.device.loaded.append(list(lines))
        candidate = self._require_lock()
        staged = list(candidate)
        for line in lines:
            for pattern in self.device.reject_lines:
                if pattern in line:
                    raise RPCError(f"syntax error: {line}")
            if line.startswith("set "):
                if line not in staged:
                    staged.append(line)
            elif line.startswith("delete "):
                path = line[len("delete "):]
                remaining = [s for s in staged if not _matches(s, path)]
                if len(remaining) == len(staged):
                    logger.warning(f"statement not found: {line}")
                staged = remaining
            else:
                raise RPCError(f"unknown command: {line}")
        self.device.candidate = staged

    async def config_clear(self) -> list[str]:
        self.device.calls.append("clear")
        if self.device.lock_owner == self._session_id:
            self.device.lock_owner = None
        self.device.candidate = None
        return list(self.device.clear_warnings)

    async def commit_conf(self, description: str, confirmed: Optional[int] = None) -> CommitOutcome:
        self._ensure_connected()
        self.device.calls.append("commit")
        candidate = self._require_lock()
        if self.device.fail_commit:
            raise RPCError(self.device.fail_commit, warnings=list(self.device.commit_warnings))
        staged = [
            line for line in candidate
            if not any(pattern in line for pattern in self.device.drop_on_commit)
        ]
        staged.extend(line for line in self.device.inject_on_commit if line not in staged)
        self.device.running = staged
        self.device.candidate = list(staged)
        self.device.commits.append({"description": description, "confirmed": confirmed})
        return CommitOutcome(warnings=list(self.device.commit_warnings))

    async def commit_check(self) -> CommitOutcome:
        self.device.calls.append("commit_check")
        return CommitOutcome()
