"""Set-file backend: appends configuration lines to a local file.

Used by the fake create/update/delete modes, where lines are recorded for
a later bulk load instead of being applied through a locked session.
"""
import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

from .base import CommitOutcome, ConfigBackend, DeviceError

logger = logging.getLogger(__name__)


class SetFileBackend(ConfigBackend):
    """Session without NETCONF: only config_set is meaningful."""

    def __init__(self, path: str, file_permission: int = 0o644, device_id: str = "setfile"):
        super().__init__(device_id)
        self.path = Path(path)
        self.file_permission = file_permission

    async def connect(self) -> None:
        self._connected = True

    async def close(self) -> None:
        self._connected = False

    def _append(self, lines: list[str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, self.file_permission)
        with os.fdopen(fd, "a", encoding="utf-8") as f:
            for line in lines:
                f.write(line + "\n")

    async def config_set(self, lines: list[str]) -> None:
        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, self._append, lines)
        except OSError as e:
            raise DeviceError(f"appending lines to {self.path}: {e}") from e
        logger.debug(f"Appended {len(lines)} lines to {self.path}")

    async def command(self, text: str) -> str:
        raise DeviceError(f"command {text!r} not available on a session without netconf")

    async def config_lock(self) -> None:
        raise DeviceError("lock not available on a session without netconf")

    async def config_clear(self) -> list[str]:
        return []

    async def commit_conf(self, description: str, confirmed: Optional[int] = None) -> CommitOutcome:
        raise DeviceError("commit not available on a session without netconf")

    async def commit_check(self) -> CommitOutcome:
        raise DeviceError("commit not available on a session without netconf")
