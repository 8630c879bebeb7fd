"""Config session: lock / edit / commit / clear lifecycle.

A ConfigSession is the single point of mutation of a device's candidate
configuration. It is owned by one orchestrator invocation and walks the
state machine

    CLOSED -> OPEN -> LOCKED -> EDITED -> {COMMITTED, ROLLED_BACK} -> CLOSED

Transport failures coming from the backend are mapped to the engine's
categorized errors here.
"""
import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from ..config.settings import ClientSettings
from ..devices import create_backend
from ..devices.base import ConfigBackend, DeviceError, LockContentionError, RPCError, SystemInformation
from ..devices.setfile import SetFileBackend
from ..utils.logging_config import attach_debug_log, timed
from .errors import (
    CommandError,
    CommitError,
    ConfigSetError,
    LockError,
    SessionStartError,
    SessionStateError,
)

logger = logging.getLogger(__name__)

# Transport failures the session converts into engine errors
TRANSPORT_ERRORS = (DeviceError, OSError, EOFError)


class SessionState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    LOCKED = "locked"
    EDITED = "edited"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class ConfigSession:
    """One exclusive editing transaction against a device.

    A private session (set file, no NETCONF) skips lock and commit: lines
    are staged directly.
    """

    def __init__(self, backend: ConfigBackend, settings: ClientSettings, private: bool = False):
        self.backend = backend
        self.settings = settings
        self.private = private
        self.state = SessionState.CLOSED
        self.lock_held = False

    @property
    def device_id(self) -> str:
        return self.backend.device_id

    @property
    def system_information(self) -> SystemInformation:
        return self.backend.system_information

    def _require(self, *states: SessionState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise SessionStateError(f"session is {self.state.value}, expected one of: {allowed}")

    async def _sleep_short(self) -> None:
        if self.settings.cmd_sleep_short > 0:
            await asyncio.sleep(self.settings.cmd_sleep_short / 1000)

    async def open(self) -> "ConfigSession":
        self._require(SessionState.CLOSED)
        try:
            await self.backend.connect()
        except TRANSPORT_ERRORS as e:
            raise SessionStartError(f"connecting to {self.device_id}: {e}") from e
        self.state = SessionState.OPEN
        return self

    @timed("command")
    async def command(self, text: str) -> str:
        """Run a read query; allowed in any open state."""
        if self.state == SessionState.CLOSED:
            raise SessionStateError("session is closed")
        try:
            return await self.backend.command(text)
        except TRANSPORT_ERRORS as e:
            raise CommandError(f"executing command {text!r}: {e}") from e

    @timed("lock")
    async def lock(self) -> None:
        """Acquire the candidate lock; a single attempt, never retried."""
        self._require(SessionState.OPEN)
        if self.private:
            raise SessionStateError("private session has no candidate lock")
        try:
            await self.backend.config_lock()
        except LockContentionError as e:
            raise LockError(f"candidate configuration of {self.device_id} is locked: {e}") from e
        except TRANSPORT_ERRORS as e:
            raise LockError(f"locking candidate configuration of {self.device_id}: {e}") from e
        self.lock_held = True
        self.state = SessionState.LOCKED
        await self._sleep_short()

    @timed("config_set")
    async def config_set(self, lines: list[str]) -> None:
        """Stage a batch of set/delete lines (all-or-nothing for the caller)."""
        if self.private:
            self._require(SessionState.OPEN, SessionState.EDITED)
        else:
            self._require(SessionState.LOCKED, SessionState.EDITED)
        if not lines:
            return
        logger.debug(f"Staging {len(lines)} lines on {self.device_id}")
        try:
            await self.backend.config_set(lines)
        except TRANSPORT_ERRORS as e:
            raise ConfigSetError(str(e)) from e
        self.state = SessionState.EDITED
        await self._sleep_short()

    @timed("commit")
    async def commit(self, description: str) -> list[str]:
        """Commit the candidate configuration.

        Returns warnings; hard errors raise CommitError. A failed commit
        leaves the candidate as is, the caller still has to clear it.
        """
        self._require(SessionState.LOCKED, SessionState.EDITED)
        warnings: list[str] = []
        confirmed = self.settings.commit_confirmed
        try:
            outcome = await self.backend.commit_conf(description, confirmed=confirmed)
            warnings.extend(outcome.warnings)
            if confirmed:
                wait = self.settings.commit_confirmed_wait
                logger.info(
                    f"Commit confirmed {confirmed}m on {self.device_id}, confirming in {wait:.0f}s"
                )
                await asyncio.sleep(wait)
                outcome = await self.backend.commit_check()
                warnings.extend(outcome.warnings)
        except RPCError as e:
            raise CommitError(str(e), warnings=warnings + e.warnings) from e
        except TRANSPORT_ERRORS as e:
            raise CommitError(f"commit on {self.device_id}: {e}", warnings=warnings) from e
        self.state = SessionState.COMMITTED
        await self._sleep_short()
        return warnings

    @timed("config_clear")
    async def config_clear(self) -> list[str]:
        """Discard uncommitted edits and release the lock.

        Failures become warnings so they never mask the original error.
        """
        if not self.lock_held:
            return []
        try:
            warnings = list(await self.backend.config_clear())
        except TRANSPORT_ERRORS as e:
            warnings = [f"clearing candidate configuration of {self.device_id}: {e}"]
        self.lock_held = False
        if self.state != SessionState.COMMITTED:
            self.state = SessionState.ROLLED_BACK
        return warnings

    async def close(self) -> None:
        if self.state == SessionState.CLOSED:
            return
        try:
            await self.backend.close()
        except TRANSPORT_ERRORS as e:
            logger.warning(f"Error closing session to {self.device_id}: {e}")
        finally:
            self.state = SessionState.CLOSED
            self.lock_held = False
            if self.settings.ssh_sleep_closed > 0:
                await asyncio.sleep(self.settings.ssh_sleep_closed)

    async def __aenter__(self):
        if self.state == SessionState.CLOSED:
            await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False


BackendFactory = Callable[[ClientSettings], ConfigBackend]


def netconf_backend(settings: ClientSettings) -> ConfigBackend:
    return create_backend(settings.device_id, settings.backend_options())


class Client:
    """Entry point to one device: builds sessions from its settings.

    Usage:
        client = Client(ClientSettings.from_env())
        async with await client.start_new_session() as session:
            dump = await session.command("show configuration applications | display set")
    """

    def __init__(self, settings: ClientSettings, backend_factory: Optional[BackendFactory] = None):
        settings.validate()
        self.settings = settings
        self._backend_factory = backend_factory or netconf_backend
        if settings.log_path:
            attach_debug_log(settings.log_path)

    @property
    def device_id(self) -> str:
        return self.settings.device_id

    @property
    def fake_create_setfile(self) -> bool:
        return bool(self.settings.fake_create_with_setfile)

    @property
    def fake_update_also(self) -> bool:
        return self.fake_create_setfile and self.settings.fake_update_also

    @property
    def fake_delete_also(self) -> bool:
        return self.fake_create_setfile and self.settings.fake_delete_also

    async def start_new_session(self) -> ConfigSession:
        """Open a NETCONF-backed session (state OPEN)."""
        session = ConfigSession(self._backend_factory(self.settings), self.settings)
        await session.open()
        return session

    async def new_setfile_session(self) -> ConfigSession:
        """Open a private session writing lines to the fake set file."""
        if not self.settings.fake_create_with_setfile:
            raise SessionStartError("no set file configured for a session without netconf")
        backend = SetFileBackend(
            self.settings.fake_create_with_setfile,
            file_permission=self.settings.file_permission,
            device_id=self.device_id,
        )
        session = ConfigSession(backend, self.settings, private=True)
        await session.open()
        return session
