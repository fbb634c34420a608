"""Domain models passed between managers, services and adapters."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from hardn.exceptions import ValidationError
from hardn.types import (
    FirewallAction,
    FirewallProtocol,
    OSType,
    PackageType,
    RiskLevel,
)

M = TypeVar("M", bound=BaseModel)


class OSInfo(BaseModel):
    """Detected operating system."""

    os_type: OSType = Field(description="Distribution family")
    version: str = Field(default="", description="VERSION_ID from os-release")
    codename: str = Field(default="", description="Release codename")
    is_proxmox: bool = Field(default=False, description="Host runs Proxmox VE")

    @model_validator(mode="after")
    def alpine_codename(self) -> "OSInfo":
        """Alpine has no codenames; the version stands in for one."""
        if self.os_type == OSType.ALPINE:
            self.codename = self.version
        return self

    @property
    def is_alpine(self) -> bool:
        return self.os_type == OSType.ALPINE


class User(BaseModel):
    """Linux user account."""

    username: str
    has_sudo: bool = False
    sudo_no_password: bool = False
    ssh_keys: List[str] = Field(default_factory=list)
    uid: Optional[int] = None
    gid: Optional[int] = None
    home_directory: str = ""
    last_login: Optional[datetime] = None
    last_login_ip: str = ""

    @field_validator("username")
    @classmethod
    def username_not_empty(cls, v: str) -> str:
        """Reject empty usernames."""
        if not v or not v.strip():
            raise ValueError("username cannot be empty")
        return v.strip()


class SSHConfig(BaseModel):
    """Secure-shell daemon policy."""

    port: int = Field(default=22, ge=1, le=65535, description="Listening port")
    listen_addresses: List[str] = Field(default_factory=list)
    permit_root_login: bool = False
    allowed_users: List[str] = Field(default_factory=list)
    key_paths: List[str] = Field(default_factory=list)
    auth_methods: List[str] = Field(default_factory=list)
    config_file_path: str = Field(
        default="", description="Override for the sshd config file location"
    )

    @property
    def password_auth_disabled(self) -> bool:
        return not self.auth_methods or self.auth_methods == ["publickey"]


class FirewallRule(BaseModel):
    """Single firewall rule."""

    action: FirewallAction = FirewallAction.ALLOW
    protocol: FirewallProtocol = FirewallProtocol.TCP
    port: int = 0
    source_ip: str = Field(default="", description="Empty means any source")
    description: str = ""

    @model_validator(mode="after")
    def port_required(self) -> "FirewallRule":
        """tcp and udp rules need a port."""
        tcp_or_udp = self.protocol in (FirewallProtocol.TCP, FirewallProtocol.UDP)
        if tcp_or_udp and self.port <= 0:
            raise ValueError(f"port must be > 0 for {self.protocol.value} rules")
        return self


class FirewallProfile(BaseModel):
    """Named group of ports installed as a ufw application."""

    name: str
    title: str = ""
    description: str = ""
    ports: List[str] = Field(default_factory=list)


class FirewallConfig(BaseModel):
    """Complete firewall policy."""

    enabled: bool = False
    default_incoming: FirewallAction = FirewallAction.DENY
    default_outgoing: FirewallAction = FirewallAction.ALLOW
    rules: List[FirewallRule] = Field(default_factory=list)
    application_profiles: List[FirewallProfile] = Field(default_factory=list)

    @field_validator("application_profiles")
    @classmethod
    def unique_profile_names(cls, v: List[FirewallProfile]) -> List[FirewallProfile]:
        """Profile names must be unique."""
        names = [p.name for p in v]
        if len(names) != len(set(names)):
            raise ValueError("firewall profile names must be unique")
        return v


class DNSConfig(BaseModel):
    """Resolver configuration."""

    nameservers: List[str] = Field(default_factory=list)
    domain: str = ""
    search: List[str] = Field(default_factory=list)

    @property
    def is_configured(self) -> bool:
        return len(self.nameservers) > 0


class PackageInstallRequest(BaseModel):
    """Request to install a set of packages."""

    packages: List[str] = Field(default_factory=list)
    pip_packages: List[str] = Field(default_factory=list)
    package_type: PackageType = PackageType.CORE
    use_uv: bool = False
    is_python: bool = False

    @model_validator(mode="after")
    def pip_only_for_python(self) -> "PackageInstallRequest":
        if not self.is_python and self.pip_packages:
            raise ValueError("pip packages require a python install request")
        return self


class PackageSources(BaseModel):
    """Repository definitions and package lists from the configuration."""

    debian_repos: List[str] = Field(default_factory=list)
    proxmox_src_repos: List[str] = Field(default_factory=list)
    proxmox_ceph_repo: List[str] = Field(default_factory=list)
    proxmox_enterprise_repo: List[str] = Field(default_factory=list)
    alpine_testing_repo: bool = False

    debian_core_packages: List[str] = Field(default_factory=list)
    debian_dmz_packages: List[str] = Field(default_factory=list)
    debian_lab_packages: List[str] = Field(default_factory=list)
    alpine_core_packages: List[str] = Field(default_factory=list)
    alpine_dmz_packages: List[str] = Field(default_factory=list)
    alpine_lab_packages: List[str] = Field(default_factory=list)

    debian_python_packages: List[str] = Field(default_factory=list)
    non_wsl_python_packages: List[str] = Field(default_factory=list)
    python_pip_packages: List[str] = Field(default_factory=list)
    alpine_python_packages: List[str] = Field(default_factory=list)


class BackupConfig(BaseModel):
    """Backup settings."""

    enabled: bool = True
    backup_dir: str = "/var/backups/hardn"

    @field_validator("backup_dir")
    @classmethod
    def absolute_dir(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError(f"backup directory must be absolute: {v}")
        return v


class BackupFile(BaseModel):
    """A backup copy on disk."""

    original_path: str
    backup_path: str
    created: datetime
    size: int = 0


class HardeningConfig(BaseModel):
    """Composite request for a full hardening run."""

    create_user: bool = False
    username: str = ""
    sudo_no_password: bool = False
    ssh_keys: List[str] = Field(default_factory=list)
    ssh_port: int = Field(default=22, ge=1, le=65535)
    ssh_listen_addresses: List[str] = Field(default_factory=lambda: ["0.0.0.0"])
    ssh_allowed_users: List[str] = Field(default_factory=list)
    ssh_key_paths: List[str] = Field(default_factory=list)
    enable_firewall: bool = False
    allowed_ports: List[int] = Field(default_factory=list)
    firewall_profiles: List[FirewallProfile] = Field(default_factory=list)
    configure_dns: bool = False
    nameservers: List[str] = Field(default_factory=list)
    enable_app_armor: bool = False
    enable_lynis: bool = False
    enable_unattended_upgrades: bool = False


class EnvironmentConfig(BaseModel):
    """State of the sudo environment preservation."""

    config_path: str = ""
    preserve_sudo: bool = False
    username: str = ""


class SecurityStatus(BaseModel):
    """Security posture probed from the live system."""

    root_login_enabled: bool = True
    firewall_enabled: bool = False
    firewall_configured: bool = False
    secure_users: bool = False
    app_armor_enabled: bool = False
    unattended_upgrades: bool = False
    sudo_configured: bool = False
    ssh_port_non_default: bool = False
    password_auth_disabled: bool = False

    def score(self) -> int:
        """Count satisfied indicators; an enabled root login counts against."""
        return sum(
            [
                not self.root_login_enabled,
                self.firewall_enabled,
                self.firewall_configured,
                self.secure_users,
                self.app_armor_enabled,
                self.unattended_upgrades,
                self.sudo_configured,
                self.ssh_port_non_default,
                self.password_auth_disabled,
            ]
        )


class SecurityReport(BaseModel):
    """Graded security posture."""

    status: SecurityStatus
    score: int
    risk_level: RiskLevel
    description: str


class HostInfo(BaseModel):
    """Host summary shown by the host-info view."""

    ip_addresses: List[str] = Field(default_factory=list)
    dns_servers: List[str] = Field(default_factory=list)
    hostname: str = ""
    domain: str = ""
    users: List[User] = Field(default_factory=list)
    groups: List[str] = Field(default_factory=list)
    os_name: str = ""
    os_version: str = ""
    uptime_seconds: float = 0.0
    kernel: str = ""
    cpu_model: str = ""
    memory_total: int = 0
    memory_free: int = 0
    disks: Dict[str, Dict[str, int]] = Field(
        default_factory=dict, description="Mount point to total/free bytes"
    )


class LogEntry(BaseModel):
    """Parsed log line."""

    time: str
    level: str
    message: str


class LogsConfig(BaseModel):
    log_file_path: str = "/var/log/hardn.log"


def build_model(model: Type[M], **values: Any) -> M:
    """Construct a model, reporting invalid values as a hardn ValidationError."""
    try:
        return model(**values)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'value'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(f"invalid {model.__name__}: {problems}") from e
