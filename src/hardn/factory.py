"""Wiring of adapters, services and managers for one run."""

import os
from typing import Mapping, Optional

from hardn.adapters import (
    FallbackLoginAdapter,
    FileBackupAdapter,
    FileDNSAdapter,
    FileEnvironmentAdapter,
    FileLogsAdapter,
    FileSSHAdapter,
    OSHostInfoAdapter,
    OSPackageAdapter,
    OSSecurityFeatureAdapter,
    OSUserAdapter,
    UFWFirewallAdapter,
)
from hardn.config import HardnConfig, to_package_sources
from hardn.hardener import SecurityManager
from hardn.managers import (
    BackupManager,
    DNSManager,
    EnvironmentManager,
    FirewallManager,
    HostInfoManager,
    LogsManager,
    MenuManager,
    PackageManager,
    SSHManager,
    UserManager,
)
from hardn.models import BackupConfig, OSInfo
from hardn.ports import BackupHook
from hardn.posture import PostureEvaluator
from hardn.services import (
    BackupService,
    DNSService,
    EnvironmentService,
    FirewallService,
    HostInfoService,
    LogsService,
    PackageService,
    SecurityFeatureService,
    SSHService,
    UserService,
)
from hardn.utils import Provider


class ServiceFactory:
    """Builds every manager from one provider, OS and configuration.

    Adapters that overwrite files share a single backup adapter; it is only
    passed as their backup hook when backups are enabled.
    """

    def __init__(
        self,
        provider: Provider,
        os_info: OSInfo,
        config: Optional[HardnConfig] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.provider = provider
        self.os_info = os_info
        self.config = config or HardnConfig()
        self.environ = os.environ if environ is None else environ
        self._backup_adapter: Optional[FileBackupAdapter] = None

    @property
    def backup_adapter(self) -> FileBackupAdapter:
        if self._backup_adapter is None:
            self._backup_adapter = FileBackupAdapter(
                self.provider.fs,
                BackupConfig(
                    enabled=self.config.enable_backups,
                    backup_dir=self.config.backup_path,
                ),
            )
        return self._backup_adapter

    @property
    def backup_hook(self) -> Optional[BackupHook]:
        if not self.config.enable_backups:
            return None
        return self.backup_adapter

    def create_user_manager(self) -> UserManager:
        adapter = OSUserAdapter(
            self.provider.fs,
            self.provider.commander,
            self.os_info.os_type,
            login=FallbackLoginAdapter(self.provider.commander),
            key_path_pattern=self.config.ssh_key_path,
            backup=self.backup_hook,
        )
        return UserManager(UserService(adapter, self.os_info))

    def create_ssh_manager(self) -> SSHManager:
        adapter = FileSSHAdapter(
            self.provider.fs,
            self.provider.commander,
            self.os_info.os_type,
            backup=self.backup_hook,
        )
        return SSHManager(SSHService(adapter, self.os_info))

    def create_firewall_manager(self) -> FirewallManager:
        adapter = UFWFirewallAdapter(
            self.provider.fs, self.provider.commander, backup=self.backup_hook
        )
        return FirewallManager(FirewallService(adapter, self.os_info))

    def create_dns_manager(self) -> DNSManager:
        adapter = FileDNSAdapter(
            self.provider.fs,
            self.provider.commander,
            self.os_info.os_type,
            backup=self.backup_hook,
        )
        return DNSManager(DNSService(adapter, self.os_info))

    def create_package_manager(self) -> PackageManager:
        sources = to_package_sources(self.config)
        adapter = OSPackageAdapter(
            self.provider.fs,
            self.provider.commander,
            self.os_info,
            sources=sources,
            backup=self.backup_hook,
        )
        return PackageManager(
            PackageService(adapter, self.os_info, sources),
            sources,
            network=self.provider.network,
            dmz_subnet=self.config.dmz_subnet,
            use_uv=self.config.use_uv_package_manager,
            environ=self.environ,
        )

    def create_backup_manager(self) -> BackupManager:
        return BackupManager(BackupService(self.backup_adapter, self.os_info))

    def create_environment_manager(self) -> EnvironmentManager:
        adapter = FileEnvironmentAdapter(
            self.provider.fs,
            self.provider.commander,
            environ=self.environ,
            backup=self.backup_hook,
        )
        return EnvironmentManager(EnvironmentService(adapter, self.os_info))

    def create_logs_manager(self) -> LogsManager:
        adapter = FileLogsAdapter(self.provider.fs, self.config.log_file)
        return LogsManager(LogsService(adapter))

    def create_host_info_manager(self) -> HostInfoManager:
        users = OSUserAdapter(
            self.provider.fs,
            self.provider.commander,
            self.os_info.os_type,
            login=FallbackLoginAdapter(self.provider.commander),
            key_path_pattern=self.config.ssh_key_path,
        )
        adapter = OSHostInfoAdapter(
            self.provider.fs,
            self.provider.commander,
            self.provider.network,
            users=users,
        )
        return HostInfoManager(HostInfoService(adapter, self.os_info))

    def create_security_feature_service(self) -> SecurityFeatureService:
        adapter = OSSecurityFeatureAdapter(
            self.provider.fs,
            self.provider.commander,
            self.os_info,
            backup=self.backup_hook,
        )
        return SecurityFeatureService(adapter, self.os_info)

    def create_security_manager(self) -> SecurityManager:
        return SecurityManager(
            self.create_user_manager(),
            self.create_ssh_manager(),
            self.create_firewall_manager(),
            self.create_dns_manager(),
            features=self.create_security_feature_service(),
        )

    def create_menu_manager(self) -> MenuManager:
        return MenuManager(
            self.create_user_manager(),
            self.create_ssh_manager(),
            self.create_firewall_manager(),
            self.create_dns_manager(),
            self.create_package_manager(),
            self.create_backup_manager(),
            self.create_security_manager(),
            self.create_environment_manager(),
            self.create_logs_manager(),
            self.create_host_info_manager(),
        )

    def create_posture_evaluator(
        self, provider: Optional[Provider] = None
    ) -> PostureEvaluator:
        """Posture probes; pass a non-dry-run provider so probes see the host."""
        p = provider or self.provider
        return PostureEvaluator(p.fs, p.commander, self.os_info)
