"""Device inventory management from YAML configuration."""
import logging
from pathlib import Path
from typing import Optional

import yaml

from .settings import ClientSettings

logger = logging.getLogger(__name__)


class DeviceInventory:
    """Manages the Junos device inventory loaded from YAML config.

    ```yaml
    defaults:
      username: netconf
      password_env: JUNOS_PASSWORD
      cmd_sleep_short: 100

    devices:
      srx-edge:
        host: 192.0.2.1
        commit_confirmed: 5
      vsrx-lab:
        host: 192.0.2.10
        fake_create_with_setfile: /tmp/vsrx-lab.set
    ```
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or self._find_config()
        self._config: dict = {}
        self._settings: dict[str, ClientSettings] = {}
        self._load_config()

    def _find_config(self) -> str:
        """Find the devices.yaml config file."""
        search_paths = [
            Path.cwd() / "configs" / "devices.yaml",
            Path.cwd() / "devices.yaml",
            Path.home() / ".config" / "junos-reconciler" / "devices.yaml",
            Path("/etc/junos-reconciler/devices.yaml"),
        ]

        for path in search_paths:
            if path.exists():
                return str(path)

        raise FileNotFoundError(
            "Could not find devices.yaml. Create one in ./configs/devices.yaml"
        )

    def _load_config(self) -> None:
        """Load the YAML configuration."""
        with open(self.config_path) as f:
            self._config = yaml.safe_load(f) or {}

        defaults = self._config.get("defaults", {}) or {}
        for device_id, device_config in self._config.get("devices", {}).items():
            if device_config is None:
                device_config = self._config["devices"][device_id] = {}
            for key, value in defaults.items():
                if key not in device_config:
                    device_config[key] = value
            if "host" not in device_config:
                logger.warning(f"Device '{device_id}' has no host configured")

    def get_device_ids(self) -> list[str]:
        """Get all device IDs."""
        return list(self._config.get("devices", {}).keys())

    def get_device_config(self, device_id: str) -> dict:
        """Get raw config for a device."""
        devices = self._config.get("devices", {})
        if device_id not in devices:
            raise KeyError(f"Unknown device: {device_id}")
        return devices[device_id]

    def get_settings(self, device_id: str) -> ClientSettings:
        """Get (and cache) validated client settings for a device."""
        if device_id not in self._settings:
            config = dict(self.get_device_config(device_id))
            config.setdefault("device_id", device_id)
            settings = ClientSettings.from_dict(config)
            settings.validate()
            if settings.extra:
                logger.warning(
                    f"Ignoring unknown settings for {device_id}: {sorted(settings.extra)}"
                )
            self._settings[device_id] = settings
        return self._settings[device_id]
