"""Configuration management for hardn.

The YAML file uses camelCase keys (``sshPort``); the settings model uses
snake_case fields. Precedence, highest first: file values, ``HARDN_*``
environment variables, defaults.
"""

import os
import re
from pathlib import Path
from typing import Annotated, Any, Dict, List, Mapping, Optional

import structlog
import yaml
from pydantic import Field, ValidationError as PydanticValidationError
from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from hardn.adapters.environment import CONFIG_ENV_VAR
from hardn.adapters.user import resolve_key_path
from hardn.exceptions import ConfigurationError
from hardn.models import FirewallProfile, HardeningConfig, PackageSources
from hardn.ports import CommanderPort
from hardn.types import FirewallAction

logger = structlog.get_logger(__name__)

SYSTEM_CONFIG_PATH = "/etc/hardn/hardn.yml"

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def camel_to_snake(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def snake_to_camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _split_list(v: object) -> object:
    if isinstance(v, str):
        return [item.strip() for item in v.split(",") if item.strip()]
    return v


class HardnConfig(BaseSettings):
    """All options recognised in hardn.yml."""

    # Identity and logging
    username: str = ""
    log_file: str = Field(default="/var/log/hardn.log")
    dry_run: bool = False

    # Backups
    enable_backups: bool = True
    backup_path: str = Field(default="/var/backups/hardn")

    # Network
    dmz_subnet: str = Field(
        default="", description="First three octets, e.g. 192.168.4"
    )
    nameservers: Annotated[List[str], NoDecode] = Field(default_factory=list)

    # Secure shell
    ssh_port: int = Field(default=22, ge=1, le=65535)
    permit_root_login: bool = False
    ssh_allowed_users: Annotated[List[str], NoDecode] = Field(default_factory=list)
    ssh_listen_address: str = "0.0.0.0"
    ssh_key_path: str = Field(default=".ssh_%u", description="%u is the username")
    ssh_config_file: str = "/etc/ssh/sshd_config.d/manage.conf"

    # User
    sudo_no_password: bool = True
    ssh_keys: List[str] = Field(default_factory=list)

    # Packages
    linux_core_packages: List[str] = Field(default_factory=list)
    linux_dmz_packages: List[str] = Field(default_factory=list)
    linux_lab_packages: List[str] = Field(default_factory=list)
    python_packages: List[str] = Field(default_factory=list)
    non_wsl_python_packages: List[str] = Field(default_factory=list)
    python_pip_packages: List[str] = Field(default_factory=list)
    alpine_core_packages: List[str] = Field(default_factory=list)
    alpine_dmz_packages: List[str] = Field(default_factory=list)
    alpine_lab_packages: List[str] = Field(default_factory=list)
    alpine_python_packages: List[str] = Field(default_factory=list)

    # Repositories
    debian_repos: List[str] = Field(default_factory=list)
    proxmox_src_repos: List[str] = Field(default_factory=list)
    proxmox_ceph_repo: List[str] = Field(default_factory=list)
    proxmox_enterprise_repo: List[str] = Field(default_factory=list)
    proxmox_package_patterns: List[str] = Field(default_factory=list)
    alpine_testing_repo: bool = False

    # Firewall
    ufw_app_profiles: List[FirewallProfile] = Field(default_factory=list)
    ufw_default_incoming_policy: FirewallAction = FirewallAction.DENY
    ufw_default_outgoing_policy: FirewallAction = FirewallAction.ALLOW
    ufw_allowed_ports: List[int] = Field(default_factory=list)

    # Feature toggles
    use_uv_package_manager: bool = False
    enable_app_armor: bool = False
    enable_lynis: bool = False
    enable_unattended_upgrades: bool = False
    enable_ufw_ssh_policy: bool = False
    configure_dns: bool = False
    disable_root: bool = False

    # Locale
    lang: str = ""
    language: str = ""
    lc_all: str = ""
    tz: str = ""
    python_unbuffered: str = "1"

    model_config = SettingsConfigDict(
        env_prefix="HARDN_",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("ssh_allowed_users", "nameservers", mode="before")
    @classmethod
    def parse_csv(cls, v: object) -> object:
        """Accept comma-separated strings as well as lists."""
        return _split_list(v)

    @field_validator("python_unbuffered", mode="before")
    @classmethod
    def stringify(cls, v: object) -> object:
        if isinstance(v, (int, bool)):
            return str(int(v))
        return v


def config_search_path(
    explicit: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    home: Optional[str] = None,
) -> List[str]:
    """Candidate config files in priority order.

    An explicit path or ``HARDN_CONFIG`` is the only candidate when given.
    """
    environ = os.environ if environ is None else environ
    if explicit:
        return [explicit]
    env_path = environ.get(CONFIG_ENV_VAR, "")
    if env_path:
        return [env_path]

    paths = [SYSTEM_CONFIG_PATH]
    home = home if home is not None else environ.get("HOME") or str(Path.home())
    if home:
        paths.append(os.path.join(home, ".config", "hardn", "hardn.yml"))
        paths.append(os.path.join(home, ".hardn.yml"))
    paths.append("./hardn.yml")
    return paths


def find_config_file(
    explicit: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    home: Optional[str] = None,
) -> Optional[str]:
    """Return the first existing config file, or None.

    Raises:
        ConfigurationError: If an explicit or HARDN_CONFIG path does not exist
    """
    environ = os.environ if environ is None else environ
    candidates = config_search_path(explicit, environ, home)

    if explicit or environ.get(CONFIG_ENV_VAR):
        path = candidates[0]
        if not os.path.isfile(path):
            source = "command line" if explicit else f"{CONFIG_ENV_VAR} variable"
            raise ConfigurationError(
                f"configuration file specified by {source} not found: {path}"
            )
        return path

    for path in candidates:
        if os.path.isfile(path):
            return path
    return None


def parse_config(data: Dict[str, Any]) -> HardnConfig:
    """Build a HardnConfig from a camelCase mapping; unknown keys are ignored.

    Raises:
        ConfigurationError: If a value has the wrong type
    """
    known = HardnConfig.model_fields
    values = {}
    for key, value in data.items():
        name = camel_to_snake(str(key))
        if name in known and value is not None:
            values[name] = value
    try:
        return HardnConfig(**values)
    except PydanticValidationError as e:
        raise ConfigurationError(f"invalid configuration: {e}") from e


def load_config(
    path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    home: Optional[str] = None,
) -> HardnConfig:
    """Load the configuration following the search precedence.

    Args:
        path: Explicit config path from the command line
        environ: Environment used for HARDN_CONFIG and HOME lookups
        home: Home directory override

    Returns:
        Loaded configuration, or defaults when no file exists

    Raises:
        ConfigurationError: If the chosen file is missing or invalid
    """
    config_path = find_config_file(path, environ, home)
    if config_path is None:
        logger.info("config_defaults", reason="no configuration file found")
        return parse_config({})

    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(
            f"failed to read config file {config_path}: {e}"
        ) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"failed to parse YAML in config file {config_path}: {e}"
        ) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"config file {config_path} is not a mapping")

    logger.info("config_loaded", path=config_path)
    return parse_config(data)


def config_to_yaml(config: HardnConfig) -> str:
    data = {
        snake_to_camel(name): value
        for name, value in config.model_dump(mode="json").items()
    }
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)


def save_config(config: HardnConfig, path: str) -> None:
    """Write ``config`` as YAML, creating the parent directory (0755).

    Raises:
        ConfigurationError: If the file cannot be written
    """
    try:
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, mode=0o755, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(config_to_yaml(config))
    except OSError as e:
        raise ConfigurationError(f"failed to write config file {path}: {e}") from e
    logger.info("config_saved", path=path)


def default_config_location(
    environ: Optional[Mapping[str, str]] = None, is_root: Optional[bool] = None
) -> str:
    """Where a new config file goes: system-wide for root, else the user's."""
    environ = os.environ if environ is None else environ
    if is_root is None:
        is_root = os.geteuid() == 0
    if is_root:
        return SYSTEM_CONFIG_PATH
    home = environ.get("HOME", "")
    if not home:
        return "./hardn.yml"
    return os.path.join(home, ".config", "hardn", "hardn.yml")


def detect_env_var_loss(
    environ: Mapping[str, str], commander: CommanderPort
) -> bool:
    """True when sudo dropped HARDN_CONFIG that the invoking user has set."""
    if not environ.get("SUDO_UID") or environ.get(CONFIG_ENV_VAR):
        return False
    sudo_user = environ.get("SUDO_USER", "")
    if not sudo_user:
        return False
    result = commander.execute(
        ["su", "-", sudo_user, "-c", f"echo ${CONFIG_ENV_VAR}"], check=False
    )
    return result.success and bool(result.stdout.strip())


ENV_LOSS_NOTICE = (
    "NOTICE: The HARDN_CONFIG environment variable is set in your user environment\n"
    "but is not preserved when using sudo. To fix this, run:\n"
    "  sudo hardn --setup-sudo-env\n"
    "Then run your command again."
)


def ssh_key_path_for(config: HardnConfig, username: str, home: str) -> str:
    return resolve_key_path(config.ssh_key_path, username, home)


def to_package_sources(config: HardnConfig) -> PackageSources:
    return PackageSources(
        debian_repos=config.debian_repos,
        proxmox_src_repos=config.proxmox_src_repos,
        proxmox_ceph_repo=config.proxmox_ceph_repo,
        proxmox_enterprise_repo=config.proxmox_enterprise_repo,
        alpine_testing_repo=config.alpine_testing_repo,
        debian_core_packages=config.linux_core_packages,
        debian_dmz_packages=config.linux_dmz_packages,
        debian_lab_packages=config.linux_lab_packages,
        alpine_core_packages=config.alpine_core_packages,
        alpine_dmz_packages=config.alpine_dmz_packages,
        alpine_lab_packages=config.alpine_lab_packages,
        debian_python_packages=config.python_packages,
        non_wsl_python_packages=config.non_wsl_python_packages,
        python_pip_packages=config.python_pip_packages,
        alpine_python_packages=config.alpine_python_packages,
    )


def to_hardening_config(
    config: HardnConfig, create_user: Optional[bool] = None
) -> HardeningConfig:
    """Map file options onto a hardening request.

    ``create_user`` defaults to whether a username is configured.
    """
    if create_user is None:
        create_user = bool(config.username)
    return HardeningConfig(
        create_user=create_user,
        username=config.username,
        sudo_no_password=config.sudo_no_password,
        ssh_keys=config.ssh_keys,
        ssh_port=config.ssh_port,
        ssh_listen_addresses=[config.ssh_listen_address],
        ssh_allowed_users=config.ssh_allowed_users,
        ssh_key_paths=[],
        enable_firewall=config.enable_ufw_ssh_policy,
        allowed_ports=config.ufw_allowed_ports,
        firewall_profiles=config.ufw_app_profiles,
        configure_dns=config.configure_dns,
        nameservers=config.nameservers,
        enable_app_armor=config.enable_app_armor,
        enable_lynis=config.enable_lynis,
        enable_unattended_upgrades=config.enable_unattended_upgrades,
    )
