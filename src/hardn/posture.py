"""Read-only security posture probe and risk grading.

Every indicator is derived from files and command output on the host.
A probe that cannot read its source assumes the vulnerable answer.
"""

import re
from typing import List, Optional, Tuple

import structlog

from hardn.adapters.features import ALPINE_UPGRADE_SCRIPT
from hardn.adapters.firewall import is_configured
from hardn.adapters.ssh import ALPINE_SSHD_CONFIG, DROP_IN_SSHD_CONFIG
from hardn.adapters.sudoers import SUDOERS_DIR
from hardn.models import OSInfo, SecurityReport, SecurityStatus
from hardn.ports import CommanderPort, FileSystemPort
from hardn.types import RiskLevel

logger = structlog.get_logger(__name__)

ENFORCE_RE = re.compile(r"(\d+) profiles are in enforce mode")

# Highest score for each grade, checked in order.
RISK_GRADES: List[Tuple[int, RiskLevel, str]] = [
    (2, RiskLevel.CRITICAL, "no security"),
    (4, RiskLevel.HIGH, "weak security"),
    (6, RiskLevel.MODERATE, "medium security"),
    (8, RiskLevel.LOW, "strong security"),
    (9, RiskLevel.MINIMAL, "hardened security"),
]


def grade(score: int) -> Tuple[RiskLevel, str]:
    """Map an indicator count (0..9) to a risk level and description."""
    for ceiling, level, description in RISK_GRADES:
        if score <= ceiling:
            return level, description
    return RISK_GRADES[-1][1], RISK_GRADES[-1][2]


def sshd_directive(content: str, keyword: str) -> Optional[str]:
    """First value of ``keyword`` in an sshd config, or None."""
    for line in content.splitlines():
        fields = line.split()
        if len(fields) >= 2 and fields[0] == keyword:
            return fields[1]
    return None


def apparmor_enforcing(output: str) -> bool:
    match = ENFORCE_RE.search(output)
    return match is not None and int(match.group(1)) > 0


class PostureEvaluator:
    """Probes the host and returns a SecurityStatus."""

    def __init__(
        self,
        fs: FileSystemPort,
        commander: CommanderPort,
        os_info: OSInfo,
    ) -> None:
        self.fs = fs
        self.commander = commander
        self.os_info = os_info

    def sshd_config_path(self) -> str:
        if not self.os_info.is_alpine and self.fs.exists(DROP_IN_SSHD_CONFIG):
            return DROP_IN_SSHD_CONFIG
        return ALPINE_SSHD_CONFIG

    def _sshd_content(self) -> Optional[str]:
        path = self.sshd_config_path()
        try:
            return self.fs.read_text(path)
        except OSError as e:
            logger.debug("sshd_config_unreadable", path=path, error=str(e))
            return None

    def _succeeds(self, args: List[str]) -> bool:
        return self.commander.execute(args, check=False).success

    def check_root_login_enabled(self, content: Optional[str]) -> bool:
        if content is None:
            return True
        return sshd_directive(content, "PermitRootLogin") != "no"

    def check_password_auth_disabled(self, content: Optional[str]) -> bool:
        if content is None:
            return False
        return sshd_directive(content, "PasswordAuthentication") == "no"

    def check_ssh_port_non_default(self, content: Optional[str]) -> bool:
        port = sshd_directive(content or "", "Port")
        return port is not None and port.isdigit() and int(port) != 22

    def check_firewall(self) -> Tuple[bool, bool]:
        result = self.commander.execute(["ufw", "status", "verbose"], check=False)
        if not result.success:
            return False, False
        return "Status: active" in result.stdout, is_configured(result.stdout)

    def check_secure_users(self) -> bool:
        """A non-root sudoers drop-in, or a non-root sudo/wheel member."""
        if self.fs.is_dir(SUDOERS_DIR):
            try:
                entries = self.fs.list_dir(SUDOERS_DIR)
            except OSError:
                entries = []
            if any(name not in ("README", "root") for name in entries):
                return True

        try:
            groups = self.fs.read_text("/etc/group")
        except OSError:
            return False
        for line in groups.splitlines():
            if not (line.startswith("sudo:") or line.startswith("wheel:")):
                continue
            fields = line.split(":")
            if len(fields) >= 4:
                members = [m for m in fields[3].split(",") if m]
                if any(m != "root" for m in members):
                    return True
        return False

    def check_apparmor(self) -> bool:
        if self.os_info.is_alpine:
            if not self._succeeds(["apk", "info", "-e", "apparmor"]):
                return False
            services = self.commander.execute(["rc-status", "default"], check=False)
            if not services.success or "apparmor" not in services.stdout:
                return False
        status = self.commander.execute(["aa-status"], check=False)
        if not status.success:
            return False
        loaded = "apparmor module is loaded" in status.stdout
        if not self.os_info.is_alpine and not loaded:
            return False
        return apparmor_enforcing(status.stdout)

    def check_unattended_upgrades(self) -> bool:
        if self.os_info.is_alpine:
            return self.fs.exists(ALPINE_UPGRADE_SCRIPT)
        return self._succeeds(["dpkg", "-l", "unattended-upgrades"]) and self._succeeds(
            ["systemctl", "is-enabled", "unattended-upgrades"]
        )

    def check_sudo_configured(self) -> bool:
        return self.commander.check_command_available("sudo") and self.fs.exists(
            "/etc/sudoers"
        )

    def evaluate(self) -> SecurityStatus:
        content = self._sshd_content()
        firewall_enabled, firewall_configured = self.check_firewall()
        return SecurityStatus(
            root_login_enabled=self.check_root_login_enabled(content),
            firewall_enabled=firewall_enabled,
            firewall_configured=firewall_configured,
            secure_users=self.check_secure_users(),
            app_armor_enabled=self.check_apparmor(),
            unattended_upgrades=self.check_unattended_upgrades(),
            sudo_configured=self.check_sudo_configured(),
            ssh_port_non_default=self.check_ssh_port_non_default(content),
            password_auth_disabled=self.check_password_auth_disabled(content),
        )

    def report(self) -> SecurityReport:
        status = self.evaluate()
        score = status.score()
        level, description = grade(score)
        return SecurityReport(
            status=status, score=score, risk_level=level, description=description
        )
