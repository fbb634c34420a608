"""hardn - Linux hardening for Debian, Ubuntu, Proxmox VE and Alpine."""

__version__ = "0.4.0"
__author__ = "DevOps Team"
__license__ = "MIT"

from hardn.exceptions import (
    BackupError,
    CommandExecutionError,
    ConfigurationError,
    HardnError,
    MutationError,
    NotFoundError,
    ProbeError,
    SystemRequirementError,
    ValidationError,
)

__all__ = [
    "BackupError",
    "CommandExecutionError",
    "ConfigurationError",
    "HardnError",
    "MutationError",
    "NotFoundError",
    "ProbeError",
    "SystemRequirementError",
    "ValidationError",
]
