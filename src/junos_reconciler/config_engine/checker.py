"""Existence and platform-compatibility checks."""
from enum import Enum
from typing import Callable

from ..devices.base import SystemInformation
from .lines import EMPTY_OUTPUT, show_config_command
from .schema import ExistsResult


class DeviceRole(str, Enum):
    """Capability a resource needs from the device."""
    ANY = "any"
    SECURITY = "security"
    CHASSIS_CLUSTER = "chassis_cluster"


def compatible_with_device_role(info: SystemInformation, role: DeviceRole) -> bool:
    if role == DeviceRole.SECURITY:
        return info.is_security_platform()
    if role == DeviceRole.CHASSIS_CLUSTER:
        return info.is_cluster_capable()
    return True


class ExistenceChecker:
    """Read-only presence query for one resource type.

    The device answers an empty string for a missing subtree; any other
    answer, even whitespace only, means the subtree exists.
    """

    def __init__(self, path_for: Callable[[str], str]):
        self.path_for = path_for

    async def exists(self, session, identifier: str) -> ExistsResult:
        dump = await session.command(show_config_command(self.path_for(identifier)))
        return ExistsResult(exists=dump != EMPTY_OUTPUT, dump=dump)
