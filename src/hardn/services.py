"""Domain services: invariants and request translation per concern.

Services hold no state besides their port and the detected ``OSInfo``.
"""

from datetime import datetime, timedelta
from typing import List, Optional

import structlog

from hardn.exceptions import ValidationError
from hardn.models import (
    BackupConfig,
    BackupFile,
    DNSConfig,
    EnvironmentConfig,
    FirewallConfig,
    FirewallProfile,
    FirewallRule,
    HostInfo,
    LogEntry,
    LogsConfig,
    OSInfo,
    PackageInstallRequest,
    PackageSources,
    SSHConfig,
    User,
    build_model,
)
from hardn.ports import (
    BackupPort,
    DNSPort,
    EnvironmentPort,
    FirewallPort,
    HostInfoPort,
    LogsPort,
    PackagePort,
    SecurityFeaturePort,
    SSHPort,
    UserPort,
)
from hardn.types import FirewallStatus
from hardn.utils.validation import Validator

logger = structlog.get_logger(__name__)


class UserService:
    def __init__(self, repository: UserPort, os_info: OSInfo) -> None:
        self.repository = repository
        self.os_info = os_info

    def create_user(self, user: User) -> None:
        """Create or augment an account after validating its name and keys.

        Raises:
            ValidationError: If the username or a key is malformed
        """
        Validator.validate_username(user.username)
        for key in user.ssh_keys:
            Validator.validate_public_key(key)
        self.repository.create_user(user)

    def get_user(self, username: str) -> User:
        return self.repository.get_user(username)

    def add_ssh_key(self, username: str, public_key: str) -> None:
        Validator.validate_username(username)
        Validator.validate_public_key(public_key)
        self.repository.add_ssh_key(username, public_key)

    def configure_sudo(self, username: str, no_password: bool) -> None:
        Validator.validate_username(username)
        self.repository.configure_sudo(username, no_password)

    def get_extended_user_info(self, username: str) -> User:
        return self.repository.get_extended_user_info(username)

    def get_non_system_users(self) -> List[User]:
        return self.repository.get_non_system_users()

    def get_non_system_groups(self) -> List[str]:
        return self.repository.get_non_system_groups()


class SSHService:
    def __init__(self, repository: SSHPort, os_info: OSInfo) -> None:
        self.repository = repository
        self.os_info = os_info

    def configure_ssh(self, config: SSHConfig) -> None:
        """Validate and apply an sshd policy.

        Raises:
            ValidationError: If the port or an allowed user is invalid
        """
        Validator.validate_port(config.port)
        for username in config.allowed_users:
            Validator.validate_username(username)
        self.repository.save_ssh_config(config)

    def get_current_config(self, path: str = "") -> SSHConfig:
        return self.repository.get_ssh_config(path)

    def disable_root_access(self) -> None:
        self.repository.disable_root_access()

    def add_authorized_key(self, username: str, public_key: str) -> None:
        Validator.validate_public_key(public_key)
        self.repository.add_authorized_key(username, public_key)


class FirewallService:
    def __init__(self, repository: FirewallPort, os_info: OSInfo) -> None:
        self.repository = repository
        self.os_info = os_info

    @staticmethod
    def _validate_rule(rule: FirewallRule) -> None:
        if rule.port:
            Validator.validate_port(rule.port)
        Validator.validate_source_ip(rule.source_ip)

    def configure_firewall(self, config: FirewallConfig) -> None:
        for rule in config.rules:
            self._validate_rule(rule)
        self.repository.save_firewall_config(config)

    def add_rule(self, rule: FirewallRule) -> None:
        self._validate_rule(rule)
        self.repository.add_rule(rule)

    def remove_rule(self, rule: FirewallRule) -> None:
        self.repository.remove_rule(rule)

    def add_profile(self, profile: FirewallProfile) -> None:
        if not profile.name:
            raise ValidationError("firewall profile name cannot be empty")
        self.repository.add_profile(profile)

    def get_current_config(self) -> FirewallConfig:
        return self.repository.get_firewall_config()

    def enable_firewall(self) -> None:
        self.repository.enable_firewall()

    def disable_firewall(self) -> None:
        self.repository.disable_firewall()

    def get_firewall_status(self) -> FirewallStatus:
        return self.repository.get_firewall_status()


class DNSService:
    def __init__(self, repository: DNSPort, os_info: OSInfo) -> None:
        self.repository = repository
        self.os_info = os_info

    def configure_dns(self, config: DNSConfig) -> None:
        """Raises ValidationError unless every nameserver is an IP address."""
        Validator.validate_nameservers(config.nameservers)
        self.repository.save_dns_config(config)

    def get_current_config(self) -> DNSConfig:
        return self.repository.get_dns_config()


class PackageService:
    def __init__(
        self,
        repository: PackagePort,
        os_info: OSInfo,
        sources: Optional[PackageSources] = None,
    ) -> None:
        self.repository = repository
        self.os_info = os_info
        self.sources = sources or repository.get_package_sources()

    def install_packages(self, request: PackageInstallRequest) -> None:
        self.repository.install_packages(request)

    def update_package_sources(self) -> None:
        self.repository.update_package_sources(self.sources)

    def update_proxmox_sources(self) -> None:
        if not self.os_info.is_proxmox:
            logger.info("proxmox_sources_skipped", reason="not a proxmox host")
            return
        self.repository.update_proxmox_sources(self.sources)

    def is_package_installed(self, package: str) -> bool:
        return self.repository.is_package_installed(package)


class BackupService:
    def __init__(self, repository: BackupPort, os_info: OSInfo) -> None:
        self.repository = repository
        self.os_info = os_info

    def backup_file(self, path: str) -> Optional[BackupFile]:
        return self.repository.backup_file(path)

    def list_backups(self, path: str) -> List[BackupFile]:
        return self.repository.list_backups(path)

    def restore_backup(self, backup_path: str, original_path: str) -> None:
        self.repository.restore_backup(backup_path, original_path)

    def cleanup_old_backups(
        self, days_to_keep: int, now: Optional[datetime] = None
    ) -> List[str]:
        """Remove day directories older than ``days_to_keep`` days.

        Args:
            days_to_keep: Age in days of the oldest directory kept
            now: Reference time, today by default

        Returns:
            The removed directories

        Raises:
            ValidationError: If days_to_keep is negative
        """
        if days_to_keep < 0:
            raise ValidationError(f"days to keep cannot be negative: {days_to_keep}")
        cutoff = (now or datetime.now()) - timedelta(days=days_to_keep)
        return self.repository.cleanup_old_backups(cutoff)

    def verify_backup_directory(self) -> None:
        self.repository.verify_backup_directory()

    def get_backup_config(self) -> BackupConfig:
        return self.repository.get_backup_config()

    def enable_backups(self, enabled: bool) -> None:
        config = self.repository.get_backup_config()
        config.enabled = enabled
        self.repository.set_backup_config(config)

    def set_backup_directory(self, directory: str) -> None:
        config = self.repository.get_backup_config()
        self.repository.set_backup_config(
            build_model(BackupConfig, enabled=config.enabled, backup_dir=directory)
        )


class EnvironmentService:
    def __init__(self, repository: EnvironmentPort, os_info: OSInfo) -> None:
        self.repository = repository
        self.os_info = os_info

    def setup_sudo_preservation(self, username: Optional[str] = None) -> None:
        """Preserve HARDN_CONFIG across sudo for ``username``.

        Defaults to the invoking operator; with no operator known there is
        nothing to do.
        """
        if username is None:
            username = self.repository.get_environment_config().username
        if not username:
            logger.info("sudo_preservation_skipped", reason="no operator username")
            return
        Validator.validate_username(username)
        self.repository.setup_sudo_preservation(username)

    def is_sudo_preservation_enabled(self, username: Optional[str] = None) -> bool:
        if username is None:
            username = self.repository.get_environment_config().username
        if not username:
            return False
        return self.repository.is_sudo_preservation_enabled(username)

    def get_environment_config(self) -> EnvironmentConfig:
        return self.repository.get_environment_config()


class LogsService:
    def __init__(self, repository: LogsPort) -> None:
        self.repository = repository

    def get_logs(self) -> List[LogEntry]:
        return self.repository.get_log_entries()

    def get_log_config(self) -> LogsConfig:
        return self.repository.get_log_config()

    def read_log(self) -> str:
        return self.repository.read_log()


class HostInfoService:
    def __init__(self, repository: HostInfoPort, os_info: OSInfo) -> None:
        self.repository = repository
        self.os_info = os_info

    def get_host_info(self) -> HostInfo:
        return self.repository.get_host_info()


class SecurityFeatureService:
    def __init__(self, repository: SecurityFeaturePort, os_info: OSInfo) -> None:
        self.repository = repository
        self.os_info = os_info

    def setup_apparmor(self) -> None:
        self.repository.setup_apparmor()

    def setup_lynis(self) -> None:
        self.repository.setup_lynis()

    def setup_unattended_upgrades(self) -> None:
        self.repository.setup_unattended_upgrades()
