"""Operating system detection."""

import os
from typing import Dict, List

import structlog

from hardn.exceptions import SystemRequirementError
from hardn.models import OSInfo
from hardn.ports import FileSystemPort
from hardn.types import OSType

logger = structlog.get_logger(__name__)

OS_RELEASE = "/etc/os-release"
PROXMOX_MARKER = "/etc/pve"


def parse_os_release_ids(content: str) -> Dict[str, str]:
    """Extract ID, VERSION_ID and VERSION_CODENAME, unquoted."""
    values: Dict[str, str] = {}
    for line in content.splitlines():
        for key in ("ID", "VERSION_ID", "VERSION_CODENAME"):
            prefix = f"{key}="
            if line.startswith(prefix):
                values[key] = line[len(prefix):].strip().strip('"')
    return values


def detect_os(fs: FileSystemPort) -> OSInfo:
    """Identify the distribution from /etc/os-release.

    Args:
        fs: Filesystem to read from

    Returns:
        Detected OSInfo; Alpine uses its version as the codename

    Raises:
        SystemRequirementError: If os-release is missing or the distribution
            is not Debian, Ubuntu or Alpine
    """
    try:
        content = fs.read_text(OS_RELEASE)
    except OSError as e:
        raise SystemRequirementError(
            f"cannot detect OS type: {OS_RELEASE} not readable: {e}"
        ) from e

    values = parse_os_release_ids(content)
    os_id = values.get("ID", "").lower()
    supported = [t.value for t in OSType]
    if os_id not in supported:
        raise SystemRequirementError(
            f"unsupported OS type detected: {os_id or 'unknown'}"
        )

    info = OSInfo(
        os_type=OSType(os_id),
        version=values.get("VERSION_ID", ""),
        codename=values.get("VERSION_CODENAME", ""),
        is_proxmox=fs.exists(PROXMOX_MARKER),
    )
    logger.info(
        "os_detected",
        os=info.os_type.value,
        version=info.version,
        codename=info.codename,
        proxmox=info.is_proxmox,
    )
    return info


def is_root() -> bool:
    return os.geteuid() == 0


def check_requirements(os_info: OSInfo, root: bool) -> List[str]:
    """Problems that prevent hardening from running; empty when none."""
    issues: List[str] = []
    if not root:
        if os_info.is_alpine:
            issues.append(
                "must run as root: use `sudo hardn` or switch to root with `su`"
            )
        else:
            issues.append(
                "must run as root: use `sudo hardn` or switch to root with `sudo -i`"
            )
    return issues
