"""Client settings, from explicit values or JUNOS_* environment variables."""
import os
from dataclasses import dataclass, field, fields
from typing import Any, Optional


DEFAULT_PORT = 830
DEFAULT_USERNAME = "netconf"
DEFAULT_SLEEP_SHORT = 100          # milliseconds
DEFAULT_SSH_TIMEOUT = 30           # seconds
DEFAULT_COMMIT_CONFIRMED_WAIT = 90  # percent of the confirmed timeout
DEFAULT_FILE_PERMISSION = 0o644


def _env_int(environ: dict, name: str, default: Optional[int]) -> Optional[int]:
    raw = environ.get(name, "")
    if raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"bad value {raw!r} for {name}: not an integer") from e


def _env_bool(environ: dict, name: str) -> bool:
    return environ.get(name, "").strip().lower() in ("1", "t", "true", "yes")


@dataclass
class ClientSettings:
    """Settings of one Junos client."""
    host: str = ""
    port: int = DEFAULT_PORT
    username: str = DEFAULT_USERNAME
    password: Optional[str] = None
    password_env: str = "JUNOS_PASSWORD"
    sshkeyfile: Optional[str] = None
    keypass: Optional[str] = None
    cmd_sleep_short: int = DEFAULT_SLEEP_SHORT
    ssh_sleep_closed: int = 0
    ssh_timeout_to_establish: int = DEFAULT_SSH_TIMEOUT
    ssh_retry_to_establish: int = 1
    commit_confirmed: Optional[int] = None
    commit_confirmed_wait_percent: int = DEFAULT_COMMIT_CONFIRMED_WAIT
    fake_create_with_setfile: Optional[str] = None
    fake_update_also: bool = False
    fake_delete_also: bool = False
    file_permission: int = DEFAULT_FILE_PERMISSION
    log_path: Optional[str] = None
    device_id: str = ""
    extra: dict = field(default_factory=dict)

    def __post_init__(self):
        if not self.device_id:
            self.device_id = self.host or "junos"

    def get_password(self) -> str:
        """Get password from settings or environment variable."""
        if self.password:
            return self.password
        return os.environ.get(self.password_env, "")

    @property
    def commit_confirmed_wait(self) -> float:
        """Seconds to wait before confirming a `commit confirmed`."""
        if not self.commit_confirmed:
            return 0.0
        return self.commit_confirmed * 60 * self.commit_confirmed_wait_percent / 100

    def validate(self) -> None:
        """Reject inconsistent settings."""
        if (self.fake_update_also or self.fake_delete_also) and not self.fake_create_with_setfile:
            raise ValueError(
                "fake_update_also and fake_delete_also need fake_create_with_setfile"
            )
        if self.commit_confirmed is not None and not 1 <= self.commit_confirmed <= 65535:
            raise ValueError(
                f"commit_confirmed must be in range (1..65535), got {self.commit_confirmed}"
            )
        if not 1 <= self.commit_confirmed_wait_percent <= 99:
            raise ValueError(
                "commit_confirmed_wait_percent must be in range (1..99), "
                f"got {self.commit_confirmed_wait_percent}"
            )
        if self.ssh_retry_to_establish < 1:
            raise ValueError("ssh_retry_to_establish must be at least 1")

    def backend_options(self) -> dict[str, Any]:
        """Keyword arguments for the NETCONF backend."""
        return {
            "type": "netconf",
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "password": self.get_password(),
            "sshkeyfile": self.sshkeyfile,
            "keypass": self.keypass,
            "timeout": self.ssh_timeout_to_establish,
            "retries": self.ssh_retry_to_establish,
        }

    @classmethod
    def from_dict(cls, config: dict) -> "ClientSettings":
        """Build settings from an inventory entry; unknown keys go to `extra`."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in config.items() if k in known}
        extra = {k: v for k, v in config.items() if k not in known}
        if isinstance(values.get("file_permission"), str):
            values["file_permission"] = int(values["file_permission"], 8)
        settings = cls(**values)
        settings.extra.update(extra)
        return settings

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "ClientSettings":
        """Build settings from JUNOS_* environment variables."""
        env = dict(os.environ if environ is None else environ)
        permission = env.get("JUNOS_FILE_PERMISSION", "")
        try:
            file_permission = int(permission, 8) if permission else DEFAULT_FILE_PERMISSION
        except ValueError as e:
            raise ValueError(f"bad value {permission!r} for JUNOS_FILE_PERMISSION") from e

        return cls(
            host=env.get("JUNOS_HOST", ""),
            port=_env_int(env, "JUNOS_PORT", DEFAULT_PORT),
            username=env.get("JUNOS_USERNAME", "") or DEFAULT_USERNAME,
            password=env.get("JUNOS_PASSWORD") or None,
            sshkeyfile=env.get("JUNOS_KEYFILE") or None,
            keypass=env.get("JUNOS_KEYPASS") or None,
            cmd_sleep_short=_env_int(env, "JUNOS_SLEEP_SHORT", DEFAULT_SLEEP_SHORT),
            ssh_sleep_closed=_env_int(env, "JUNOS_SLEEP_SSH_CLOSED", 0),
            ssh_timeout_to_establish=_env_int(env, "JUNOS_SSH_TIMEOUT_TO_ESTABLISH", DEFAULT_SSH_TIMEOUT),
            ssh_retry_to_establish=_env_int(env, "JUNOS_SSH_RETRY_TO_ESTABLISH", 1),
            commit_confirmed=_env_int(env, "JUNOS_COMMIT_CONFIRMED", None),
            commit_confirmed_wait_percent=_env_int(
                env, "JUNOS_COMMIT_CONFIRMED_WAIT_PERCENT", DEFAULT_COMMIT_CONFIRMED_WAIT
            ),
            fake_create_with_setfile=env.get("JUNOS_FAKECREATE_SETFILE") or None,
            fake_update_also=_env_bool(env, "JUNOS_FAKEUPDATE_ALSO"),
            fake_delete_also=_env_bool(env, "JUNOS_FAKEDELETE_ALSO"),
            file_permission=file_permission,
            log_path=env.get("JUNOS_LOG_PATH") or None,
        )
