"""Type definitions for hardn."""

from enum import Enum
from typing import List, NamedTuple


class OSType(str, Enum):
    """Supported distributions."""

    DEBIAN = "debian"
    UBUNTU = "ubuntu"
    ALPINE = "alpine"


class FirewallAction(str, Enum):
    """Firewall rule actions and default policies."""

    ALLOW = "allow"
    DENY = "deny"


class FirewallProtocol(str, Enum):
    """Protocols a firewall rule may match."""

    TCP = "tcp"
    UDP = "udp"
    ICMP = "icmp"


class PackageType(str, Enum):
    """Package groups selectable from the configuration."""

    CORE = "core"
    DMZ = "dmz"
    LAB = "lab"
    PYTHON = "python"


class RiskLevel(str, Enum):
    """Risk grade derived from the security posture."""

    CRITICAL = "Critical"
    HIGH = "High"
    MODERATE = "Moderate"
    LOW = "Low"
    MINIMAL = "Minimal"


class CommandResult(NamedTuple):
    """Result of command execution."""

    success: bool
    stdout: str
    stderr: str
    return_code: int = 0


class FileStat(NamedTuple):
    """Subset of stat information the core relies on."""

    path: str
    size: int
    mode: int
    mtime: float
    is_dir: bool = False


class FirewallStatus(NamedTuple):
    """Summary of the firewall state."""

    installed: bool
    enabled: bool
    configured: bool
    rules: List[str]
