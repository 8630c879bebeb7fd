"""Configuration backends for Junos devices."""
from .base import (
    ConfigBackend,
    CommitOutcome,
    DeviceError,
    LockContentionError,
    RPCError,
    SystemInformation,
)
from .memory import MemoryBackend, MemoryDevice
from .netconf import NetconfBackend
from .setfile import SetFileBackend

__all__ = [
    "ConfigBackend",
    "CommitOutcome",
    "DeviceError",
    "LockContentionError",
    "RPCError",
    "SystemInformation",
    "MemoryBackend",
    "MemoryDevice",
    "NetconfBackend",
    "SetFileBackend",
]

# Backend type registry
BACKEND_TYPES = {
    "netconf": NetconfBackend,
}


def create_backend(device_id: str, config: dict) -> ConfigBackend:
    """Factory function to create backend instances."""
    backend_type = config.get("type", "netconf").lower()
    if backend_type not in BACKEND_TYPES:
        raise ValueError(f"Unknown backend type: {backend_type}")

    options = {k: v for k, v in config.items() if k != "type"}
    return BACKEND_TYPES[backend_type](device_id, **options)
