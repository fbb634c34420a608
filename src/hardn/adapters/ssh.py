"""sshd configuration file management."""

import posixpath
from typing import List, Optional

import structlog

from hardn.adapters.user import append_authorized_key, default_home
from hardn.exceptions import (
    CommandExecutionError,
    MutationError,
    ProbeError,
    ValidationError,
)
from hardn.models import SSHConfig
from hardn.ports import BackupHook, CommanderPort, FileSystemPort
from hardn.types import OSType

logger = structlog.get_logger(__name__)

ALPINE_SSHD_CONFIG = "/etc/ssh/sshd_config"
DROP_IN_SSHD_CONFIG = "/etc/ssh/sshd_config.d/hardn.conf"
DEFAULT_KEY_PATH = ".ssh/authorized_keys"


def render_sshd_config(config: SSHConfig) -> str:
    """Render the managed sshd configuration. Directive order is stable."""
    lines: List[str] = [
        "# SSH configuration managed by Hardn",
        "",
        "Protocol 2",
        "StrictModes yes",
        "",
        f"Port {config.port}",
    ]
    lines.extend(f"ListenAddress {addr}" for addr in config.listen_addresses)
    lines.append("")

    methods = ",".join(config.auth_methods) if config.auth_methods else "publickey"
    lines.append(f"AuthenticationMethods {methods}")
    lines.append("PubkeyAuthentication yes")
    lines.append("")

    lines.append(f"PermitRootLogin {'yes' if config.permit_root_login else 'no'}")
    if config.allowed_users:
        lines.append(f"AllowUsers {' '.join(config.allowed_users)}")
    lines.append("")

    lines.append("PasswordAuthentication no")
    lines.append("PermitEmptyPasswords no")
    lines.append("")

    key_paths = config.key_paths or [DEFAULT_KEY_PATH]
    lines.extend(f"AuthorizedKeysFile {path}" for path in key_paths)
    return "\n".join(lines) + "\n"


def parse_sshd_config(content: str) -> SSHConfig:
    """Parse the directives written by ``render_sshd_config``."""
    values = {
        "port": 22,
        "listen_addresses": [],
        "permit_root_login": False,
        "allowed_users": [],
        "key_paths": [],
        "auth_methods": [],
    }
    for raw in content.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split(None, 1)
        if len(parts) != 2:
            continue
        keyword, value = parts[0].lower(), parts[1].strip()
        if keyword == "port" and value.isdigit():
            values["port"] = int(value)
        elif keyword == "listenaddress":
            values["listen_addresses"].append(value)
        elif keyword == "permitrootlogin":
            values["permit_root_login"] = value.lower() == "yes"
        elif keyword == "allowusers":
            values["allowed_users"].extend(value.split())
        elif keyword == "authorizedkeysfile":
            values["key_paths"].extend(value.split())
        elif keyword == "authenticationmethods":
            values["auth_methods"] = [m for m in value.split(",") if m]
    return SSHConfig(**values)


class FileSSHAdapter:
    """Writes the sshd policy and restarts the daemon."""

    def __init__(
        self,
        fs: FileSystemPort,
        commander: CommanderPort,
        os_type: OSType,
        backup: Optional[BackupHook] = None,
    ) -> None:
        self.fs = fs
        self.commander = commander
        self.os_type = os_type
        self.backup = backup

    @property
    def default_config_path(self) -> str:
        if self.os_type == OSType.ALPINE:
            return ALPINE_SSHD_CONFIG
        return DROP_IN_SSHD_CONFIG

    def _restart_command(self) -> List[str]:
        if self.os_type == OSType.ALPINE:
            return ["rc-service", "sshd", "restart"]
        return ["systemctl", "restart", "ssh"]

    def save_ssh_config(self, config: SSHConfig) -> None:
        """Write the config file and restart sshd.

        Raises:
            MutationError: If the write or the restart fails
            ValidationError: If sshd -t rejects the written file
        """
        path = config.config_file_path or self.default_config_path
        content = render_sshd_config(config)

        try:
            self.fs.mkdir_all(posixpath.dirname(path), 0o755)
        except OSError as e:
            raise MutationError(
                f"failed to create directory for SSH config: {e}"
            ) from e

        previous: Optional[bytes] = None
        if self.fs.exists(path):
            try:
                previous = self.fs.read_file(path)
            except OSError as e:
                raise ProbeError(f"failed to read SSH config {path}: {e}") from e
            if self.backup is not None:
                self.backup.backup_file(path)

        try:
            self.fs.write_file(path, content, 0o644)
        except OSError as e:
            raise MutationError(f"failed to write SSH config file: {e}") from e

        logger.info("ssh_config_written", path=path, port=config.port)
        self._validate(path, previous)
        self.restart_ssh_service()

    def _validate(self, path: str, previous: Optional[bytes]) -> None:
        """Run ``sshd -t``; put the previous file back if it rejects the config."""
        result = self.commander.execute(["sshd", "-t"], check=False)
        if result.success:
            return
        if result.return_code == 127:
            logger.warning("sshd_validation_skipped", reason="sshd not found")
            return

        try:
            if previous is None:
                self.fs.remove(path)
            else:
                self.fs.write_file(path, previous, 0o644)
        except OSError as e:
            logger.warning("ssh_config_revert_failed", path=path, error=str(e))
        raise ValidationError(
            f"sshd rejected the new configuration: {result.stdout.strip()}"
        )

    def restart_ssh_service(self) -> None:
        try:
            self.commander.execute(self._restart_command())
        except CommandExecutionError as e:
            raise MutationError(f"failed to restart SSH service: {e}") from e
        logger.info("ssh_service_restarted")

    def get_ssh_config(self, path: str = "") -> SSHConfig:
        """Read the managed config; a missing file yields the defaults.

        Args:
            path: File to read instead of the OS default, as accepted by
                ``save_ssh_config`` through ``config_file_path``

        Raises:
            ProbeError: If the file exists but cannot be read
        """
        target = path or self.default_config_path
        if not self.fs.exists(target):
            return SSHConfig(port=22, config_file_path=path)
        try:
            content = self.fs.read_text(target)
        except OSError as e:
            raise ProbeError(f"failed to read SSH config {target}: {e}") from e
        config = parse_sshd_config(content)
        config.config_file_path = path
        return config

    def disable_root_access(self) -> None:
        config = self.get_ssh_config()
        config.permit_root_login = False
        config.allowed_users = [u for u in config.allowed_users if u != "root"]
        self.save_ssh_config(config)

    def add_authorized_key(self, username: str, public_key: str) -> None:
        append_authorized_key(
            self.fs,
            self.commander,
            username,
            default_home(username),
            public_key,
            self.backup,
        )
