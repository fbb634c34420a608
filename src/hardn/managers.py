"""Application managers: user-level intents turned into service calls."""

import os
import sys
from typing import IO, TYPE_CHECKING, List, Mapping, Optional, Tuple

import structlog

from hardn.adapters.host_info import format_bytes, format_uptime
from hardn.models import (
    BackupConfig,
    BackupFile,
    DNSConfig,
    EnvironmentConfig,
    FirewallConfig,
    FirewallProfile,
    FirewallRule,
    HardeningConfig,
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
from hardn.ports import NetworkPort
from hardn.services import (
    BackupService,
    DNSService,
    EnvironmentService,
    FirewallService,
    HostInfoService,
    LogsService,
    PackageService,
    SSHService,
    UserService,
)
from hardn.types import FirewallAction, FirewallStatus, PackageType

if TYPE_CHECKING:
    from hardn.hardener import SecurityManager

logger = structlog.get_logger(__name__)

SECURE_NAMESERVERS = ["1.1.1.1", "1.0.0.1"]
DEFAULT_DOMAIN = "lan"


class UserManager:
    def __init__(self, service: UserService) -> None:
        self.service = service

    def create_user(
        self,
        username: str,
        has_sudo: bool,
        sudo_no_password: bool,
        ssh_keys: List[str],
    ) -> None:
        user = build_model(
            User,
            username=username,
            has_sudo=has_sudo,
            sudo_no_password=sudo_no_password,
            ssh_keys=list(ssh_keys),
        )
        self.service.create_user(user)

    def add_ssh_key(self, username: str, public_key: str) -> None:
        self.service.add_ssh_key(username, public_key)

    def configure_sudo(self, username: str, no_password: bool) -> None:
        self.service.configure_sudo(username, no_password)

    def get_extended_user_info(self, username: str) -> User:
        return self.service.get_extended_user_info(username)

    def get_non_system_users(self) -> List[User]:
        return self.service.get_non_system_users()

    def get_non_system_groups(self) -> List[str]:
        return self.service.get_non_system_groups()


class SSHManager:
    def __init__(self, service: SSHService) -> None:
        self.service = service

    def configure_ssh(
        self,
        port: int,
        listen_addresses: List[str],
        permit_root_login: bool,
        allowed_users: List[str],
        key_paths: List[str],
        config_file_path: str = "",
    ) -> None:
        """Apply a key-only sshd policy."""
        config = build_model(
            SSHConfig,
            port=port,
            listen_addresses=list(listen_addresses),
            permit_root_login=permit_root_login,
            allowed_users=list(allowed_users),
            key_paths=list(key_paths),
            auth_methods=["publickey"],
            config_file_path=config_file_path,
        )
        self.service.configure_ssh(config)

    def secure_ssh(self, port: int, allowed_users: List[str]) -> None:
        """Key-only access on all addresses with root login refused."""
        self.configure_ssh(
            port, ["0.0.0.0"], False, allowed_users, [".ssh/authorized_keys"]
        )

    def get_current_config(self, path: str = "") -> SSHConfig:
        return self.service.get_current_config(path)

    def disable_root_access(self) -> None:
        self.service.disable_root_access()

    def add_ssh_key(self, username: str, public_key: str) -> None:
        self.service.add_authorized_key(username, public_key)


def tcp_allow_rule(port: int, description: str) -> FirewallRule:
    return build_model(
        FirewallRule, action=FirewallAction.ALLOW, port=port, description=description
    )


def secure_firewall_config(
    ssh_port: int,
    allowed_ports: List[int],
    profiles: Optional[List[FirewallProfile]] = None,
) -> FirewallConfig:
    """Deny incoming, allow outgoing, open the SSH port and ``allowed_ports``."""
    rules = [tcp_allow_rule(ssh_port, "SSH access")]
    rules.extend(tcp_allow_rule(port, "Custom allowed port") for port in allowed_ports)
    return FirewallConfig(
        enabled=True,
        default_incoming=FirewallAction.DENY,
        default_outgoing=FirewallAction.ALLOW,
        rules=rules,
        application_profiles=list(profiles or []),
    )


class FirewallManager:
    def __init__(self, service: FirewallService) -> None:
        self.service = service

    def configure_firewall(
        self,
        default_incoming: str,
        default_outgoing: str,
        rules: List[FirewallRule],
        profiles: List[FirewallProfile],
    ) -> None:
        config = build_model(
            FirewallConfig,
            enabled=True,
            default_incoming=default_incoming,
            default_outgoing=default_outgoing,
            rules=list(rules),
            application_profiles=list(profiles),
        )
        self.service.configure_firewall(config)

    def configure_secure_firewall(
        self,
        ssh_port: int,
        allowed_ports: List[int],
        profiles: Optional[List[FirewallProfile]] = None,
    ) -> None:
        self.service.configure_firewall(
            secure_firewall_config(ssh_port, allowed_ports, profiles)
        )

    def add_ssh_rule(self, port: int) -> None:
        self.service.add_rule(tcp_allow_rule(port, "SSH access"))

    def add_profile(self, profile: FirewallProfile) -> None:
        self.service.add_profile(profile)

    def enable_firewall(self) -> None:
        self.service.enable_firewall()

    def disable_firewall(self) -> None:
        self.service.disable_firewall()

    def get_firewall_status(self) -> FirewallStatus:
        return self.service.get_firewall_status()

    def get_current_config(self) -> FirewallConfig:
        return self.service.get_current_config()


class DNSManager:
    def __init__(self, service: DNSService) -> None:
        self.service = service

    def configure_dns(self, nameservers: List[str], domain: str) -> None:
        config = DNSConfig(
            nameservers=list(nameservers),
            domain=domain,
            search=[domain] if domain else [],
        )
        self.service.configure_dns(config)

    def configure_secure_dns(self) -> None:
        self.configure_dns(SECURE_NAMESERVERS, DEFAULT_DOMAIN)

    def get_current_config(self) -> DNSConfig:
        return self.service.get_current_config()


class PackageManager:
    """Chooses package lists per OS and network and installs them."""

    def __init__(
        self,
        service: PackageService,
        sources: PackageSources,
        network: Optional[NetworkPort] = None,
        dmz_subnet: str = "",
        use_uv: bool = False,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.service = service
        self.sources = sources
        self.network = network
        self.dmz_subnet = dmz_subnet
        self.use_uv = use_uv
        self.environ = os.environ if environ is None else environ

    @property
    def os_info(self) -> OSInfo:
        return self.service.os_info

    def install_linux_packages(
        self, packages: List[str], package_type: PackageType
    ) -> None:
        self.service.install_packages(
            PackageInstallRequest(packages=list(packages), package_type=package_type)
        )

    def install_python_packages(
        self, system_packages: List[str], pip_packages: List[str], use_uv: bool
    ) -> None:
        self.service.install_packages(
            PackageInstallRequest(
                packages=list(system_packages),
                pip_packages=list(pip_packages),
                package_type=PackageType.PYTHON,
                use_uv=use_uv,
                is_python=True,
            )
        )

    def packages_for(self, package_type: PackageType) -> List[str]:
        """The configured list for this OS and package type."""
        s = self.sources
        if package_type == PackageType.PYTHON:
            return self.python_system_packages()
        if self.os_info.is_alpine:
            lists = {
                PackageType.CORE: s.alpine_core_packages,
                PackageType.DMZ: s.alpine_dmz_packages,
                PackageType.LAB: s.alpine_lab_packages,
            }
        else:
            lists = {
                PackageType.CORE: s.debian_core_packages,
                PackageType.DMZ: s.debian_dmz_packages,
                PackageType.LAB: s.debian_lab_packages,
            }
        return list(lists[package_type])

    def python_system_packages(self) -> List[str]:
        """Alpine python list, or the Debian list plus non-WSL extras outside WSL."""
        if self.os_info.is_alpine:
            return list(self.sources.alpine_python_packages)
        packages = list(self.sources.debian_python_packages)
        if not self.environ.get("WSL"):
            packages.extend(self.sources.non_wsl_python_packages)
        return packages

    def is_dmz(self) -> bool:
        if self.network is None or not self.dmz_subnet:
            return False
        return self.network.check_subnet(self.dmz_subnet)

    def install_core_packages(self) -> None:
        packages = self.packages_for(PackageType.CORE)
        if packages:
            self.install_linux_packages(packages, PackageType.CORE)

    def install_all_linux_packages(self) -> None:
        """Core and DMZ packages, plus lab packages when not on the DMZ subnet."""
        selected = [PackageType.CORE, PackageType.DMZ]
        if not self.is_dmz():
            selected.append(PackageType.LAB)
        else:
            logger.info("dmz_subnet_detected", subnet=self.dmz_subnet)
        for package_type in selected:
            packages = self.packages_for(package_type)
            if packages:
                self.install_linux_packages(packages, package_type)

    def install_all_python_packages(self) -> None:
        self.install_python_packages(
            self.python_system_packages(),
            self.sources.python_pip_packages,
            self.use_uv,
        )

    def update_package_sources(self) -> None:
        self.service.update_package_sources()

    def update_proxmox_sources(self) -> None:
        self.service.update_proxmox_sources()


class BackupManager:
    def __init__(self, service: BackupService) -> None:
        self.service = service

    def backup_file(self, path: str) -> Optional[BackupFile]:
        return self.service.backup_file(path)

    def list_backups(self, path: str) -> List[BackupFile]:
        return self.service.list_backups(path)

    def restore_backup(self, backup_path: str, original_path: str) -> None:
        self.service.restore_backup(backup_path, original_path)

    def get_backup_config(self) -> BackupConfig:
        return self.service.get_backup_config()

    def toggle_backups(self) -> bool:
        """Flip backups on or off; returns the new state."""
        enabled = not self.service.get_backup_config().enabled
        self.service.enable_backups(enabled)
        return enabled

    def set_backup_directory(self, directory: str) -> None:
        self.service.set_backup_directory(os.path.expanduser(directory))

    def verify_backup_directory(self) -> None:
        self.service.verify_backup_directory()

    def cleanup_old_backups(self, days: int) -> List[str]:
        return self.service.cleanup_old_backups(days)

    def get_backup_status(self) -> Tuple[bool, str]:
        config = self.service.get_backup_config()
        return config.enabled, config.backup_dir


class EnvironmentManager:
    def __init__(self, service: EnvironmentService) -> None:
        self.service = service

    def setup_sudo_preservation(self, username: Optional[str] = None) -> None:
        self.service.setup_sudo_preservation(username)

    def is_sudo_preservation_enabled(self, username: Optional[str] = None) -> bool:
        return self.service.is_sudo_preservation_enabled(username)

    def get_environment_config(self) -> EnvironmentConfig:
        return self.service.get_environment_config()

    def get_config_path(self) -> str:
        return self.service.get_environment_config().config_path


class LogsManager:
    def __init__(self, service: LogsService) -> None:
        self.service = service

    def get_logs(self) -> List[LogEntry]:
        return self.service.get_logs()

    def get_log_config(self) -> LogsConfig:
        return self.service.get_log_config()

    def print_logs(self, stream: Optional[IO[str]] = None) -> None:
        out = stream or sys.stdout
        path = self.service.get_log_config().log_file_path
        content = self.service.read_log()
        out.write(f"\n# Contents of {path}:\n\n{content}\n")


class HostInfoManager:
    def __init__(self, service: HostInfoService) -> None:
        self.service = service

    def get_host_info(self) -> HostInfo:
        return self.service.get_host_info()

    @staticmethod
    def format_uptime(seconds: float) -> str:
        return format_uptime(seconds)

    @staticmethod
    def format_bytes(size: int) -> str:
        return format_bytes(size)


class MenuManager:
    """Single entry point aggregating every manager for the interactive UI."""

    def __init__(
        self,
        user_manager: UserManager,
        ssh_manager: SSHManager,
        firewall_manager: FirewallManager,
        dns_manager: DNSManager,
        package_manager: PackageManager,
        backup_manager: BackupManager,
        security_manager: "SecurityManager",
        environment_manager: EnvironmentManager,
        logs_manager: LogsManager,
        host_info_manager: HostInfoManager,
    ) -> None:
        self.users = user_manager
        self.ssh = ssh_manager
        self.firewall = firewall_manager
        self.dns = dns_manager
        self.packages = package_manager
        self.backups = backup_manager
        self.security = security_manager
        self.environment = environment_manager
        self.logs = logs_manager
        self.host_info = host_info_manager

    def create_user(
        self,
        username: str,
        has_sudo: bool,
        sudo_no_password: bool,
        ssh_keys: List[str],
    ) -> None:
        self.users.create_user(username, has_sudo, sudo_no_password, ssh_keys)

    def add_ssh_key(self, username: str, public_key: str) -> None:
        self.ssh.add_ssh_key(username, public_key)

    def disable_root_ssh(self) -> None:
        self.ssh.disable_root_access()

    def harden_system(self, config: HardeningConfig) -> None:
        self.security.harden_system(config)

    def configure_dns(self, nameservers: List[str], domain: str) -> None:
        self.dns.configure_dns(nameservers, domain)

    def configure_secure_firewall(
        self,
        ssh_port: int,
        allowed_ports: List[int],
        profiles: Optional[List[FirewallProfile]] = None,
    ) -> None:
        self.firewall.configure_secure_firewall(ssh_port, allowed_ports, profiles)

    def install_linux_packages(
        self, packages: List[str], package_type: PackageType
    ) -> None:
        self.packages.install_linux_packages(packages, package_type)

    def install_python_packages(
        self, system_packages: List[str], pip_packages: List[str], use_uv: bool
    ) -> None:
        self.packages.install_python_packages(system_packages, pip_packages, use_uv)

    def update_package_sources(self) -> None:
        self.packages.update_package_sources()

    def update_proxmox_sources(self) -> None:
        self.packages.update_proxmox_sources()

    def get_firewall_status(self) -> FirewallStatus:
        return self.firewall.get_firewall_status()

    def get_backup_status(self) -> Tuple[bool, str]:
        return self.backups.get_backup_status()

    def toggle_backups(self) -> bool:
        return self.backups.toggle_backups()

    def set_backup_directory(self, directory: str) -> None:
        self.backups.set_backup_directory(directory)

    def verify_backup_directory(self) -> None:
        self.backups.verify_backup_directory()

    def setup_sudo_preservation(self, username: Optional[str] = None) -> None:
        self.environment.setup_sudo_preservation(username)

    def is_sudo_preservation_enabled(self, username: Optional[str] = None) -> bool:
        return self.environment.is_sudo_preservation_enabled(username)

    def get_environment_config(self) -> EnvironmentConfig:
        return self.environment.get_environment_config()

    def print_logs(self, stream: Optional[IO[str]] = None) -> None:
        self.logs.print_logs(stream)

    def get_log_config(self) -> LogsConfig:
        return self.logs.get_log_config()

    def get_host_info(self) -> HostInfo:
        return self.host_info.get_host_info()

    def format_uptime(self, seconds: float) -> str:
        return self.host_info.format_uptime(seconds)

    def format_bytes(self, size: int) -> str:
        return self.host_info.format_bytes(size)
