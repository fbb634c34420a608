"""Distribution-agnostic interfaces the core depends on.

Each protocol is implemented by one adapter in ``hardn.adapters``; the
factory selects the adapter once from ``OSInfo``.
"""

from datetime import datetime
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

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
    PackageInstallRequest,
    PackageSources,
    SSHConfig,
    User,
)
from hardn.types import CommandResult, FileStat, FirewallStatus
from hardn.utils.file import Data


class FileSystemPort(Protocol):
    def read_file(self, path: str) -> bytes: ...

    def read_text(self, path: str) -> str: ...

    def write_file(self, path: str, data: Data, mode: int = 0o644) -> None: ...

    def write_temp_file(self, prefix: str, data: Data, mode: int = 0o600) -> str: ...

    def mkdir_all(self, path: str, mode: int = 0o755) -> None: ...

    def stat(self, path: str) -> FileStat: ...

    def exists(self, path: str) -> bool: ...

    def is_dir(self, path: str) -> bool: ...

    def list_dir(self, path: str) -> List[str]: ...

    def remove(self, path: str) -> None: ...

    def remove_all(self, path: str) -> None: ...


class CommanderPort(Protocol):
    def execute(
        self,
        args: Sequence[str],
        input: Optional[str] = None,
        check: bool = True,
    ) -> CommandResult: ...

    def check_command_available(self, command: str) -> bool: ...


class NetworkPort(Protocol):
    def get_interfaces(self) -> Dict[str, List[str]]: ...

    def get_ip_addresses(self) -> List[str]: ...

    def check_subnet(self, subnet: str) -> bool: ...


class BackupHook(Protocol):
    """Called by adapters before they overwrite a configuration file."""

    def backup_file(self, path: str) -> Optional[BackupFile]: ...


class UserPort(Protocol):
    def user_exists(self, username: str) -> bool: ...

    def create_user(self, user: User) -> None: ...

    def add_ssh_key(self, username: str, public_key: str) -> None: ...

    def configure_sudo(self, username: str, no_password: bool) -> None: ...

    def get_user(self, username: str) -> User: ...

    def get_extended_user_info(self, username: str) -> User: ...

    def get_non_system_users(self) -> List[User]: ...

    def get_non_system_groups(self) -> List[str]: ...


class UserLoginPort(Protocol):
    def get_last_login(self, username: str) -> Tuple[Optional[datetime], str]: ...


class SSHPort(Protocol):
    def save_ssh_config(self, config: SSHConfig) -> None: ...

    def get_ssh_config(self, path: str = "") -> SSHConfig: ...

    def disable_root_access(self) -> None: ...

    def add_authorized_key(self, username: str, public_key: str) -> None: ...


class FirewallPort(Protocol):
    def save_firewall_config(self, config: FirewallConfig) -> None: ...

    def get_firewall_config(self) -> FirewallConfig: ...

    def add_rule(self, rule: FirewallRule) -> None: ...

    def remove_rule(self, rule: FirewallRule) -> None: ...

    def add_profile(self, profile: FirewallProfile) -> None: ...

    def enable_firewall(self) -> None: ...

    def disable_firewall(self) -> None: ...

    def is_installed(self) -> bool: ...

    def get_firewall_status(self) -> FirewallStatus: ...


class DNSPort(Protocol):
    def save_dns_config(self, config: DNSConfig) -> None: ...

    def get_dns_config(self) -> DNSConfig: ...


class PackagePort(Protocol):
    def install_packages(self, request: PackageInstallRequest) -> None: ...

    def update_package_sources(self, sources: PackageSources) -> None: ...

    def update_proxmox_sources(self, sources: PackageSources) -> None: ...

    def is_package_installed(self, package: str) -> bool: ...

    def get_package_sources(self) -> PackageSources: ...


class BackupPort(Protocol):
    def backup_file(self, path: str) -> Optional[BackupFile]: ...

    def list_backups(self, path: str) -> List[BackupFile]: ...

    def restore_backup(self, backup_path: str, original_path: str) -> None: ...

    def cleanup_old_backups(self, before: datetime) -> List[str]: ...

    def verify_backup_directory(self) -> None: ...

    def get_backup_config(self) -> BackupConfig: ...

    def set_backup_config(self, config: BackupConfig) -> None: ...


class EnvironmentPort(Protocol):
    def setup_sudo_preservation(self, username: str) -> None: ...

    def is_sudo_preservation_enabled(self, username: str) -> bool: ...

    def get_environment_config(self) -> EnvironmentConfig: ...


class LogsPort(Protocol):
    def get_log_entries(self) -> List[LogEntry]: ...

    def get_log_config(self) -> LogsConfig: ...

    def read_log(self) -> str: ...


class HostInfoPort(Protocol):
    def get_host_info(self) -> HostInfo: ...


class SecurityFeaturePort(Protocol):
    def setup_apparmor(self) -> None: ...

    def setup_lynis(self) -> None: ...

    def setup_unattended_upgrades(self) -> None: ...
