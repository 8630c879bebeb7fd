"""Base transport abstraction for Junos configuration backends."""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)


class DeviceError(Exception):
    """Transport or RPC failure reported by a backend."""


class LockContentionError(DeviceError):
    """The candidate configuration is locked by another actor."""


class RPCError(DeviceError):
    """The device answered an RPC with errors."""

    def __init__(self, message: str, warnings: Optional[list[str]] = None):
        super().__init__(message)
        self.warnings = list(warnings or [])


@dataclass
class SystemInformation:
    """Facts gathered from the device when a session opens."""
    hardware_model: str = ""
    os_name: str = ""
    os_version: str = ""
    product_model: str = ""
    product_name: str = ""
    host_name: str = ""
    cluster_node: Optional[bool] = None

    def is_security_platform(self) -> bool:
        model = self.hardware_model.lower()
        return model.startswith("srx") or model.startswith("vsrx") or model.startswith("j")

    def is_cluster_capable(self) -> bool:
        model = self.hardware_model.lower()
        return model.startswith("srx") or model.startswith("vsrx")

    def not_compatible_msg(self) -> str:
        return f" not compatible with Junos device {self.hardware_model}"


@dataclass
class CommitOutcome:
    """Warnings returned by a successful commit."""
    warnings: list[str] = field(default_factory=list)


class ConfigBackend(ABC):
    """Abstract base class for configuration transports.

    The engine never speaks the wire protocol; it only drives this
    interface through a ConfigSession.
    """

    def __init__(self, device_id: str):
        self.device_id = device_id
        self._connected = False
        self.system_information = SystemInformation()

    @property
    def is_connected(self) -> bool:
        return self._connected

    # Connection management
    @abstractmethod
    async def connect(self) -> None:
        """Establish the session and gather system information."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying session."""
        pass

    # Read queries
    @abstractmethod
    async def command(self, text: str) -> str:
        """Run a show command and return its text output."""
        pass

    # Candidate configuration
    @abstractmethod
    async def config_lock(self) -> None:
        """Lock the candidate configuration.

        Raises:
            LockContentionError: another actor holds the lock
        """
        pass

    @abstractmethod
    async def config_set(self, lines: list[str]) -> None:
        """Load set/delete lines into the candidate configuration.

        Raises:
            RPCError: the device rejected at least one line
        """
        pass

    @abstractmethod
    async def config_clear(self) -> list[str]:
        """Discard the candidate configuration and release the lock.

        Returns:
            Warnings produced while clearing/unlocking
        """
        pass

    @abstractmethod
    async def commit_conf(self, description: str, confirmed: Optional[int] = None) -> CommitOutcome:
        """Commit the candidate configuration.

        Args:
            description: Commit log message
            confirmed: Rollback timeout in minutes for `commit confirmed`

        Raises:
            RPCError: commit failed (carries any warnings seen so far)
        """
        pass

    @abstractmethod
    async def commit_check(self) -> CommitOutcome:
        """Confirm a pending `commit confirmed`."""
        pass

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False
