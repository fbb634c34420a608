"""AppArmor, Lynis and automatic security updates."""

import posixpath
from typing import List, Optional

import structlog

from hardn.exceptions import CommandExecutionError, MutationError
from hardn.models import OSInfo
from hardn.ports import BackupHook, CommanderPort, FileSystemPort

logger = structlog.get_logger(__name__)

APPARMOR_PROFILES_DIR = "/etc/apparmor.d"
ALPINE_PERIODIC_DIR = "/etc/periodic/daily"
ALPINE_UPGRADE_SCRIPT = f"{ALPINE_PERIODIC_DIR}/apk-upgrade"
ALPINE_UPGRADE_CONTENT = "#!/bin/sh\napk update && apk upgrade --available\n"
UNATTENDED_SELECTIONS = (
    "unattended-upgrades unattended-upgrades/enable_auto_updates boolean true\n"
    "unattended-upgrades unattended-upgrades/origins_pattern string "
    "origin=Debian,codename=${distro_codename},label=Debian-Security\n"
)


class OSSecurityFeatureAdapter:
    """Installs and enables the optional hardening features."""

    def __init__(
        self,
        fs: FileSystemPort,
        commander: CommanderPort,
        os_info: OSInfo,
        backup: Optional[BackupHook] = None,
    ) -> None:
        self.fs = fs
        self.commander = commander
        self.os_info = os_info
        self.backup = backup

    def _run(self, args: List[str], context: str) -> None:
        try:
            self.commander.execute(args)
        except CommandExecutionError as e:
            raise MutationError(f"{context}: {e}") from e

    def _run_warn(self, args: List[str], event: str) -> None:
        result = self.commander.execute(args, check=False)
        if not result.success:
            logger.warning(event, command=" ".join(args), output=result.stdout.strip())

    def _profiles(self) -> List[str]:
        if not self.fs.is_dir(APPARMOR_PROFILES_DIR):
            return []
        try:
            names = self.fs.list_dir(APPARMOR_PROFILES_DIR)
        except OSError as e:
            logger.warning("apparmor_profiles_unreadable", error=str(e))
            return []
        paths = [posixpath.join(APPARMOR_PROFILES_DIR, name) for name in names]
        return [p for p in paths if not self.fs.is_dir(p)]

    def setup_apparmor(self) -> None:
        """Install AppArmor and put every profile in enforce mode.

        Raises:
            MutationError: If the package cannot be installed
        """
        if self.os_info.is_alpine:
            self._run(
                ["apk", "add", "apparmor"], "failed to install AppArmor on Alpine"
            )
            self._run_warn(
                ["rc-update", "add", "apparmor", "default"], "apparmor_boot_failed"
            )
            self._run_warn(["rc-service", "apparmor", "start"], "apparmor_start_failed")
            enforce = "aa_enforce"
        else:
            self._run(
                ["apt-get", "install", "-y", "apparmor"],
                "failed to install AppArmor on Debian/Ubuntu",
            )
            enforce = "aa-enforce"

        for profile in self._profiles():
            self._run_warn([enforce, profile], "apparmor_enforce_failed")

        logger.info("apparmor_enabled")

    def setup_lynis(self) -> None:
        """Install Lynis and run a system audit.

        Raises:
            MutationError: If installation or the audit fails
        """
        if self.os_info.is_alpine:
            self._run(["apk", "add", "lynis"], "failed to install Lynis on Alpine")
        else:
            self._run(
                ["apt-get", "install", "-y", "lynis"],
                "failed to install Lynis on Debian/Ubuntu",
            )
        self._run(["lynis", "audit", "system"], "failed to run Lynis audit")
        logger.info("lynis_audit_completed")

    def setup_unattended_upgrades(self) -> None:
        """Enable automatic security updates.

        Alpine gets a daily periodic script run by crond; Debian and Ubuntu
        get the unattended-upgrades package.

        Raises:
            MutationError: If a required step fails
        """
        if self.os_info.is_alpine:
            self._setup_alpine_periodic()
        else:
            self._run(
                ["apt-get", "install", "-y", "unattended-upgrades"],
                "failed to install unattended-upgrades package",
            )
            result = self.commander.execute(
                ["debconf-set-selections"], input=UNATTENDED_SELECTIONS, check=False
            )
            if not result.success:
                logger.warning(
                    "unattended_preferences_failed", output=result.stdout.strip()
                )
            self._run(
                ["dpkg-reconfigure", "-f", "noninteractive", "unattended-upgrades"],
                "failed to reconfigure unattended-upgrades",
            )
            self._run_warn(
                ["systemctl", "enable", "unattended-upgrades"],
                "unattended_enable_failed",
            )
        logger.info("unattended_upgrades_configured", os=self.os_info.os_type.value)

    def _setup_alpine_periodic(self) -> None:
        try:
            self.fs.mkdir_all(ALPINE_PERIODIC_DIR, 0o755)
        except OSError as e:
            raise MutationError(
                f"failed to create periodic directory for Alpine updates: {e}"
            ) from e
        if self.backup is not None:
            self.backup.backup_file(ALPINE_UPGRADE_SCRIPT)
        try:
            self.fs.write_file(ALPINE_UPGRADE_SCRIPT, ALPINE_UPGRADE_CONTENT, 0o755)
        except OSError as e:
            raise MutationError(f"failed to write Alpine upgrade script: {e}") from e
        self._run_warn(["rc-update", "add", "crond", "default"], "crond_boot_failed")
        self._run_warn(["rc-service", "crond", "start"], "crond_start_failed")
