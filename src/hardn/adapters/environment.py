"""Sudo environment preservation for the config-path variable."""

import os
import posixpath
from typing import Mapping, Optional

import structlog

from hardn.adapters.sudoers import SUDOERS_DIR, install_sudoers_file
from hardn.exceptions import ProbeError, SystemRequirementError, ValidationError
from hardn.models import EnvironmentConfig
from hardn.ports import BackupHook, CommanderPort, FileSystemPort

logger = structlog.get_logger(__name__)

CONFIG_ENV_VAR = "HARDN_CONFIG"
ENV_KEEP_TOKEN = f'env_keep += "{CONFIG_ENV_VAR}"'


def env_keep_line(username: str) -> str:
    return f"Defaults:{username} {ENV_KEEP_TOKEN}\n"


class FileEnvironmentAdapter:
    """Keeps ``HARDN_CONFIG`` across sudo with a per-user drop-in."""

    def __init__(
        self,
        fs: FileSystemPort,
        commander: CommanderPort,
        environ: Optional[Mapping[str, str]] = None,
        backup: Optional[BackupHook] = None,
    ) -> None:
        self.fs = fs
        self.commander = commander
        self.environ = os.environ if environ is None else environ
        self.backup = backup

    def setup_sudo_preservation(self, username: str) -> None:
        """Add an env_keep default for ``username`` unless already present.

        Raises:
            ValidationError: If the username is empty or visudo rejects the file
            SystemRequirementError: If /etc/sudoers.d does not exist
            MutationError: If the drop-in cannot be written
        """
        if not username:
            raise ValidationError("username cannot be empty")
        if not self.fs.is_dir(SUDOERS_DIR):
            raise SystemRequirementError(
                "sudoers.d directory does not exist; "
                "this system may not support sudo drop-in configurations"
            )

        path = posixpath.join(SUDOERS_DIR, username)
        content = ""
        if self.fs.exists(path):
            try:
                existing = self.fs.read_text(path)
            except OSError as e:
                raise ProbeError(
                    f"failed to read existing sudoers file {path}: {e}"
                ) from e
            if ENV_KEEP_TOKEN in existing:
                logger.info("sudo_preservation_present", user=username)
                return
            if existing.strip():
                content = existing.strip() + "\n"

        content += env_keep_line(username)
        install_sudoers_file(self.fs, self.commander, path, content, self.backup)
        logger.info("sudo_preservation_configured", user=username, path=path)

    def is_sudo_preservation_enabled(self, username: str) -> bool:
        """Raises ValidationError for an empty username."""
        if not username:
            raise ValidationError("username cannot be empty")
        path = posixpath.join(SUDOERS_DIR, username)
        if not self.fs.exists(path):
            return False
        try:
            return ENV_KEEP_TOKEN in self.fs.read_text(path)
        except OSError as e:
            raise ProbeError(f"failed to read sudoers file {path}: {e}") from e

    def get_environment_config(self) -> EnvironmentConfig:
        username = self.environ.get("SUDO_USER") or self.environ.get("USER", "")
        config = EnvironmentConfig(
            config_path=self.environ.get(CONFIG_ENV_VAR, ""),
            username=username,
        )
        if username:
            try:
                config.preserve_sudo = self.is_sudo_preservation_enabled(username)
            except ProbeError as e:
                logger.debug("sudo_preservation_unknown", user=username, error=str(e))
        return config
