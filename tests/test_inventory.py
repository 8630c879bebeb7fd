"""Tests for device inventory management."""
from pathlib import Path

import pytest

from junos_reconciler.config.inventory import DeviceInventory


class TestDeviceInventory:
    """Tests for DeviceInventory class."""

    @pytest.fixture
    def temp_config(self, tmp_path):
        """Create a temporary config file for testing."""
        config_content = """
defaults:
  username: netconf
  password_env: "TEST_PASSWORD"
  cmd_sleep_short: 50

devices:
  srx-edge:
    host: 192.0.2.1
    commit_confirmed: 5

  vsrx-lab:
    host: 192.0.2.10
    username: lab
    fake_create_with_setfile: /tmp/vsrx-lab.set
    file_permission: "0600"
    site: lab-1

  broken:
    host: 192.0.2.20
    fake_delete_also: true

  empty:
"""
        path = tmp_path / "devices.yaml"
        path.write_text(config_content)
        return str(path)

    def test_load_config(self, temp_config):
        """Inventory loads config file correctly."""
        inv = DeviceInventory(temp_config)
        assert inv.get_device_ids() == ["srx-edge", "vsrx-lab", "broken", "empty"]

    def test_defaults_merged(self, temp_config):
        """Defaults apply unless the device overrides them."""
        inv = DeviceInventory(temp_config)
        assert inv.get_device_config("srx-edge")["username"] == "netconf"
        assert inv.get_device_config("vsrx-lab")["username"] == "lab"
        assert inv.get_device_config("empty")["cmd_sleep_short"] == 50

    def test_get_device_unknown(self, temp_config):
        """Unknown device raises KeyError."""
        inv = DeviceInventory(temp_config)
        with pytest.raises(KeyError) as exc_info:
            inv.get_device_config("nonexistent")
        assert "Unknown device" in str(exc_info.value)

    def test_get_settings(self, temp_config, monkeypatch):
        """Settings are built from the merged entry."""
        monkeypatch.setenv("TEST_PASSWORD", "secret")
        inv = DeviceInventory(temp_config)
        settings = inv.get_settings("srx-edge")
        assert settings.device_id == "srx-edge"
        assert settings.host == "192.0.2.1"
        assert settings.commit_confirmed == 5
        assert settings.cmd_sleep_short == 50
        assert settings.get_password() == "secret"

    def test_get_settings_cached(self, temp_config):
        """Settings instances are cached."""
        inv = DeviceInventory(temp_config)
        assert inv.get_settings("srx-edge") is inv.get_settings("srx-edge")

    def test_octal_permission_and_extra(self, temp_config):
        """Permissions are read as octal strings; unknown keys are kept aside."""
        settings = DeviceInventory(temp_config).get_settings("vsrx-lab")
        assert settings.file_permission == 0o600
        assert settings.extra == {"site": "lab-1"}

    def test_invalid_settings(self, temp_config):
        """Inconsistent entries are rejected when requested."""
        inv = DeviceInventory(temp_config)
        with pytest.raises(ValueError):
            inv.get_settings("broken")

    def test_missing_file(self, tmp_path, monkeypatch):
        """Without any devices.yaml on the search path, loading fails."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        if Path("/etc/junos-reconciler/devices.yaml").exists():
            pytest.skip("system-wide inventory present")
        with pytest.raises(FileNotFoundError):
            DeviceInventory()
