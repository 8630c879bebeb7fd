"""NETCONF over SSH backend for Junos devices.

Built on PyEZ: `jnpr.junos.Device` carries the session and
`jnpr.junos.utils.config.Config` drives the candidate configuration.
PyEZ is blocking, so every call runs in the default executor and the event
loop is never stalled by a slow device.
"""
import asyncio
import logging
from typing import Any, Callable, Optional

import paramiko
from jnpr.junos import Device
from jnpr.junos.exception import (
    CommitError,
    ConfigLoadError,
    ConnectError,
    ConnectRefusedError,
    ConnectTimeoutError,
    LockError,
    RpcError,
    UnlockError,
)
from jnpr.junos.utils.config import Config

from .base import (
    CommitOutcome,
    ConfigBackend,
    DeviceError,
    LockContentionError,
    RPCError,
    SystemInformation,
)
from ..utils.connection import RETRYABLE_EXCEPTIONS, with_retry
from ..utils.logging_config import timed

logger = logging.getLogger(__name__)

ERROR_SEVERITY = "error"

# Failures worth another attempt while the session is being established
CONNECT_RETRY_ERRORS = (ConnectRefusedError, ConnectTimeoutError) + RETRYABLE_EXCEPTIONS


def split_rpc_errors(err: RpcError) -> tuple[list[str], list[str]]:
    """Split the <rpc-error> entries of a PyEZ error into (errors, warnings)."""
    errors: list[str] = []
    warnings: list[str] = []
    for info in getattr(err, "errs", None) or []:
        if not isinstance(info, dict):
            continue
        text = (info.get("message") or "").strip()
        if info.get("bad_element"):
            text += f" (statement: {info['bad_element']})"
        if (info.get("severity") or ERROR_SEVERITY) == ERROR_SEVERITY:
            errors.append(text)
        else:
            warnings.append(text)
    if not errors and not warnings:
        errors.append(str(err))
    return errors, warnings


def rpc_messages(err: RpcError) -> list[str]:
    errors, warnings = split_rpc_errors(err)
    return errors + warnings


def commit_outcome(err: RpcError, commit_type: str) -> CommitOutcome:
    """A commit that only produced warnings still went through."""
    errors, warnings = split_rpc_errors(err)
    if errors:
        raise RPCError(f"{commit_type}: " + "\n".join(errors), warnings=warnings)
    return CommitOutcome(warnings=warnings)


def command_output(reply: Any) -> str:
    """Text of a `<command format="text">` reply."""
    if reply is True:
        return ""
    if reply.tag == "configuration-information":
        return reply.findtext("configuration-output") or ""
    if reply.tag == "output":
        return reply.text or ""
    output = reply.find(".//output")
    if output is not None:
        return output.text or ""
    raise DeviceError("no output available - please check the syntax of your command")


def system_information(facts: dict) -> SystemInformation:
    """Map PyEZ facts onto the fields the compatibility gate uses."""
    cluster = facts.get("srx_cluster")
    return SystemInformation(
        hardware_model=str(facts.get("model") or "").lower(),
        os_name="junos",
        os_version=str(facts.get("version") or ""),
        product_model=str(facts.get("model") or ""),
        product_name=str(facts.get("personality") or ""),
        host_name=str(facts.get("hostname") or ""),
        cluster_node=bool(cluster) if cluster is not None else None,
    )


class NetconfBackend(ConfigBackend):
    """Junos NETCONF session over SSH."""

    def __init__(
        self,
        device_id: str,
        host: str,
        port: int = 830,
        username: str = "netconf",
        password: str = "",
        sshkeyfile: Optional[str] = None,
        keypass: Optional[str] = None,
        timeout: int = 30,
        retries: int = 1,
    ):
        super().__init__(device_id)
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sshkeyfile = sshkeyfile
        self.keypass = keypass
        self.timeout = timeout
        self.retries = max(retries, 1)
        self._dev: Optional[Device] = None
        self._cu: Optional[Config] = None

    def device_options(self) -> dict[str, Any]:
        """Keyword arguments of the PyEZ Device."""
        options: dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "user": self.username,
            "conn_open_timeout": self.timeout,
        }
        if self.sshkeyfile:
            options["ssh_private_key_file"] = self.sshkeyfile
            # PyEZ unlocks the key with the password argument
            if self.keypass:
                options["passwd"] = self.keypass
        if self.password and "passwd" not in options:
            options["passwd"] = self.password
        return options

    # --- blocking calls (executor side) ---

    def _open(self) -> None:
        dev = Device(**self.device_options())
        dev.open()
        try:
            facts = dict(dev.facts)
        except (RpcError, ConnectError):
            dev.close()
            raise
        dev.timeout = self.timeout
        self._dev = dev
        self._cu = Config(dev)
        self.system_information = system_information(facts)

    async def _call(self, func: Callable, *args: Any) -> Any:
        if self._dev is None:
            raise DeviceError(f"netconf session to {self.device_id} is not open")
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, func, *args)
        except RpcError as e:
            raise DeviceError("\n".join(rpc_messages(e))) from e
        except (ConnectError, paramiko.SSHException) as e:
            raise DeviceError(f"netconf session to {self.device_id}: {e}") from e

    # --- ConfigBackend ---

    @timed("netconf_connect")
    async def connect(self) -> None:
        logger.info(f"Connecting to Junos {self.device_id} at {self.host}:{self.port}")
        loop = asyncio.get_event_loop()

        @with_retry(max_attempts=self.retries, min_wait=1, max_wait=10, exceptions=CONNECT_RETRY_ERRORS)
        async def _connect():
            await loop.run_in_executor(None, self._open)

        try:
            await _connect()
        except (ConnectError, RpcError, paramiko.SSHException) as e:
            raise DeviceError(f"netconf to {self.host}:{self.port}: {e}") from e
        self._connected = True
        logger.info(
            f"Connected to {self.device_id} "
            f"(model={self.system_information.hardware_model}, os={self.system_information.os_version})"
        )

    async def close(self) -> None:
        if self._dev is None:
            self._connected = False
            return
        dev = self._dev
        try:
            await self._call(dev.close)
        finally:
            self._dev = None
            self._cu = None
            self._connected = False
            logger.info(f"Disconnected from {self.device_id}")

    def _command_sync(self, text: str) -> str:
        return command_output(self._dev.rpc.cli(command=text, format="text"))

    @timed("netconf_command")
    async def command(self, text: str) -> str:
        logger.debug(f"netconf command [{self.device_id}]: {text}")
        return await self._call(self._command_sync, text)

    def _lock_sync(self) -> None:
        try:
            self._cu.lock()
        except LockError as e:
            raise LockContentionError(
                "candidate configuration lock failed: " + "\n".join(rpc_messages(e))
            ) from e

    @timed("netconf_lock")
    async def config_lock(self) -> None:
        await self._call(self._lock_sync)

    def _load_sync(self, lines: list[str]) -> list[str]:
        try:
            self._cu.load("\n".join(lines), format="set")
        except ConfigLoadError as e:
            errors, warnings = split_rpc_errors(e)
            if errors:
                raise RPCError("\n".join(errors), warnings=warnings) from e
            return warnings
        return []

    @timed("netconf_load")
    async def config_set(self, lines: list[str]) -> None:
        logger.debug(f"netconf load [{self.device_id}]: {len(lines)} set lines")
        for warning in await self._call(self._load_sync, lines):
            logger.warning(f"load-configuration warning on {self.device_id}: {warning}")

    def _clear_sync(self) -> list[str]:
        warnings: list[str] = []
        try:
            self._cu.rollback(0)
        except RpcError as e:
            warnings.extend(rpc_messages(e))
        try:
            self._cu.unlock()
        except UnlockError as e:
            warnings.extend(f"config unlock: {text}" for text in rpc_messages(e))
        return warnings

    @timed("netconf_clear")
    async def config_clear(self) -> list[str]:
        return await self._call(self._clear_sync)

    def _commit_sync(self, description: str, confirmed: Optional[int]) -> CommitOutcome:
        options: dict[str, Any] = {"comment": description}
        commit_type = "commit-configuration"
        if confirmed:
            options["confirm"] = confirmed
            commit_type = f"commit-configuration(confirmed {confirmed})"
        try:
            self._cu.commit(**options)
        except CommitError as e:
            return commit_outcome(e, commit_type)
        return CommitOutcome()

    @timed("netconf_commit")
    async def commit_conf(self, description: str, confirmed: Optional[int] = None) -> CommitOutcome:
        return await self._call(self._commit_sync, description, confirmed)

    def _commit_check_sync(self) -> CommitOutcome:
        try:
            self._cu.commit_check()
        except CommitError as e:
            return commit_outcome(e, "commit-configuration(check)")
        return CommitOutcome()

    @timed("netconf_commit_check")
    async def commit_check(self) -> CommitOutcome:
        return await self._call(self._commit_check_sync)
