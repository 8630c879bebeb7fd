"""Client settings and device inventory."""
from .settings import ClientSettings
from .inventory import DeviceInventory

__all__ = ["ClientSettings", "DeviceInventory"]
