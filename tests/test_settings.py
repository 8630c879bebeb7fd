"""Tests for client settings."""
import pytest

from junos_reconciler.config import ClientSettings


class TestFromEnv:
    """Tests for ClientSettings.from_env."""

    def test_defaults(self):
        """An empty environment yields the documented defaults."""
        settings = ClientSettings.from_env({})
        assert settings.port == 830
        assert settings.username == "netconf"
        assert settings.cmd_sleep_short == 100
        assert settings.ssh_timeout_to_establish == 30
        assert settings.ssh_retry_to_establish == 1
        assert settings.commit_confirmed is None
        assert settings.commit_confirmed_wait_percent == 90
        assert settings.fake_create_with_setfile is None
        assert settings.file_permission == 0o644

    def test_values(self):
        settings = ClientSettings.from_env({
            "JUNOS_HOST": "192.0.2.1",
            "JUNOS_PORT": "2222",
            "JUNOS_USERNAME": "admin",
            "JUNOS_COMMIT_CONFIRMED": "5",
            "JUNOS_FAKECREATE_SETFILE": "/tmp/fake.set",
            "JUNOS_FAKEUPDATE_ALSO": "true",
            "JUNOS_FAKEDELETE_ALSO": "1",
            "JUNOS_FILE_PERMISSION": "0600",
            "JUNOS_LOG_PATH": "/tmp/netconf.log",
        })
        assert settings.host == "192.0.2.1"
        assert settings.device_id == "192.0.2.1"
        assert settings.port == 2222
        assert settings.username == "admin"
        assert settings.commit_confirmed == 5
        assert settings.fake_update_also is True
        assert settings.fake_delete_also is True
        assert settings.file_permission == 0o600
        assert settings.log_path == "/tmp/netconf.log"
        settings.validate()

    def test_bad_integer(self):
        with pytest.raises(ValueError) as exc_info:
            ClientSettings.from_env({"JUNOS_PORT": "ssh"})
        assert "JUNOS_PORT" in str(exc_info.value)

    def test_bad_permission(self):
        with pytest.raises(ValueError):
            ClientSettings.from_env({"JUNOS_FILE_PERMISSION": "rw-r--r--"})


class TestValidate:
    """Tests for ClientSettings.validate."""

    def test_fake_flags_need_setfile(self):
        with pytest.raises(ValueError):
            ClientSettings(host="h", fake_delete_also=True).validate()

    def test_commit_confirmed_range(self):
        with pytest.raises(ValueError):
            ClientSettings(host="h", commit_confirmed=0).validate()

    def test_wait_percent_range(self):
        with pytest.raises(ValueError):
            ClientSettings(host="h", commit_confirmed_wait_percent=100).validate()

    def test_confirm_wait(self):
        """The confirm wait is a percentage of the rollback timeout."""
        assert ClientSettings(host="h", commit_confirmed=5).commit_confirmed_wait == 270.0
        assert ClientSettings(host="h").commit_confirmed_wait == 0.0


class TestCredentials:
    """Tests for credential handling."""

    def test_password_from_env(self, monkeypatch):
        monkeypatch.setenv("LAB_PASSWORD", "s3cret")
        settings = ClientSettings(host="h", password_env="LAB_PASSWORD")
        assert settings.get_password() == "s3cret"
        assert settings.backend_options()["password"] == "s3cret"

    def test_explicit_password_wins(self, monkeypatch):
        monkeypatch.setenv("JUNOS_PASSWORD", "from-env")
        assert ClientSettings(host="h", password="explicit").get_password() == "explicit"

    def test_backend_options(self):
        options = ClientSettings(host="192.0.2.1", ssh_retry_to_establish=3).backend_options()
        assert options["type"] == "netconf"
        assert options["host"] == "192.0.2.1"
        assert options["retries"] == 3
