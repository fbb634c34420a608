"""Uncomplicated Firewall (ufw) adapter."""

import configparser
import re
from typing import List, Optional

import structlog

from hardn.exceptions import (
    CommandExecutionError,
    MutationError,
    ProbeError,
    SystemRequirementError,
)
from hardn.models import FirewallConfig, FirewallProfile, FirewallRule
from hardn.ports import BackupHook, CommanderPort, FileSystemPort
from hardn.types import FirewallAction, FirewallProtocol, FirewallStatus

logger = structlog.get_logger(__name__)

APPS_DIR = "/etc/ufw/applications.d"
PROFILES_PATH = f"{APPS_DIR}/hardn"

HEADER_PREFIXES = ("Status:", "Logging:", "Default:", "New profiles:")
RULE_RE = re.compile(
    r"^(?P<port>\d+)/(?P<proto>tcp|udp)\s+"
    r"(?P<action>ALLOW|DENY|REJECT|LIMIT)(?: IN)?\s+"
    r"(?P<source>.+?)\s*(?:#\s*(?P<comment>.*))?$"
)


def rule_args(rule: FirewallRule) -> List[str]:
    """``<action> <port>/<proto> [from <ip>]`` for ufw."""
    args = [rule.action.value, f"{rule.port}/{rule.protocol.value}"]
    if rule.source_ip:
        args.extend(["from", rule.source_ip])
    return args


def render_profiles(profiles: List[FirewallProfile]) -> str:
    blocks = []
    for profile in profiles:
        blocks.append(
            f"[{profile.name}]\n"
            f"title={profile.title}\n"
            f"description={profile.description}\n"
            f"ports={','.join(profile.ports)}\n\n"
        )
    return "".join(blocks)


def parse_profiles(content: str) -> List[FirewallProfile]:
    parser = configparser.ConfigParser(interpolation=None)
    parser.optionxform = str  # type: ignore[assignment]
    parser.read_string(content)
    return [
        FirewallProfile(
            name=name,
            title=parser.get(name, "title", fallback=""),
            description=parser.get(name, "description", fallback=""),
            ports=[p for p in parser.get(name, "ports", fallback="").split(",") if p],
        )
        for name in parser.sections()
    ]


def rule_lines(status_output: str) -> List[str]:
    """Rule lines below the ``--`` separator of ``ufw status``."""
    lines: List[str] = []
    seen_separator = False
    for raw in status_output.splitlines():
        line = raw.strip()
        if not line:
            continue
        if line.startswith("--"):
            seen_separator = True
            continue
        if not seen_separator or line.startswith(HEADER_PREFIXES):
            continue
        if line.startswith("To") and "Action" in line and "From" in line:
            continue
        lines.append(line)
    return lines


def parse_status(output: str) -> FirewallConfig:
    """Build a FirewallConfig from ``ufw status verbose`` output."""
    config = FirewallConfig(enabled="Status: active" in output)

    default = re.search(r"Default:\s*(\w+) \(incoming\),\s*(\w+) \(outgoing\)", output)
    if default:
        incoming, outgoing = default.group(1), default.group(2)
        if incoming in ("allow", "deny"):
            config.default_incoming = FirewallAction(incoming)
        if outgoing in ("allow", "deny"):
            config.default_outgoing = FirewallAction(outgoing)

    for line in rule_lines(output):
        if "(v6)" in line:
            continue
        match = RULE_RE.match(line)
        if not match:
            continue
        action = match.group("action").lower()
        source = match.group("source").strip()
        denied = action in ("deny", "reject")
        config.rules.append(
            FirewallRule(
                action=FirewallAction.DENY if denied else FirewallAction.ALLOW,
                protocol=FirewallProtocol(match.group("proto")),
                port=int(match.group("port")),
                source_ip="" if source == "Anywhere" else source,
                description=(match.group("comment") or "").strip(),
            )
        )
    return config


def is_configured(output: str) -> bool:
    return (
        "deny (incoming)" in output
        and "allow (outgoing)" in output
        and any("ALLOW IN" in line and "/tcp" in line for line in output.splitlines())
    )


class UFWFirewallAdapter:
    """Applies firewall policy through the ufw CLI."""

    def __init__(
        self,
        fs: FileSystemPort,
        commander: CommanderPort,
        backup: Optional[BackupHook] = None,
    ) -> None:
        self.fs = fs
        self.commander = commander
        self.backup = backup

    def _ufw(self, *args: str, context: str) -> None:
        try:
            self.commander.execute(["ufw", *args])
        except CommandExecutionError as e:
            raise MutationError(f"{context}: {e}") from e

    def is_installed(self) -> bool:
        return self.commander.check_command_available("ufw")

    def save_firewall_config(self, config: FirewallConfig) -> None:
        """Reset ufw and apply the full policy.

        Raises:
            SystemRequirementError: If ufw is not installed
            MutationError: If any ufw call fails
        """
        if not self.is_installed():
            raise SystemRequirementError("UFW firewall is not installed")

        self._ufw(
            "default",
            config.default_incoming.value,
            "incoming",
            context="failed to set default incoming policy",
        )
        self._ufw(
            "default",
            config.default_outgoing.value,
            "outgoing",
            context="failed to set default outgoing policy",
        )
        self._ufw("disable", context="failed to disable UFW before reset")
        self._ufw("--force", "reset", context="failed to reset UFW")

        if config.application_profiles:
            self._write_profiles(config.application_profiles)

        for rule in config.rules:
            self.add_rule(rule)

        if config.enabled:
            self.enable_firewall()

        logger.info(
            "firewall_configured",
            rules=len(config.rules),
            profiles=len(config.application_profiles),
            enabled=config.enabled,
        )

    def _write_profiles(self, profiles: List[FirewallProfile]) -> None:
        try:
            self.fs.mkdir_all(APPS_DIR, 0o755)
        except OSError as e:
            raise MutationError(
                f"failed to create UFW applications directory: {e}"
            ) from e

        if self.backup is not None:
            self.backup.backup_file(PROFILES_PATH)
        try:
            self.fs.write_file(PROFILES_PATH, render_profiles(profiles), 0o644)
        except OSError as e:
            raise MutationError(f"failed to write UFW application profiles: {e}") from e

        for profile in profiles:
            self._ufw(
                "allow",
                "from",
                "any",
                "to",
                "any",
                "app",
                profile.name,
                context=f"failed to apply profile {profile.name}",
            )

    def _read_profiles(self) -> List[FirewallProfile]:
        if not self.fs.exists(PROFILES_PATH):
            return []
        try:
            return parse_profiles(self.fs.read_text(PROFILES_PATH))
        except (OSError, configparser.Error) as e:
            raise ProbeError(f"failed to read UFW application profiles: {e}") from e

    def _status_output(self) -> str:
        result = self.commander.execute(["ufw", "status", "verbose"], check=False)
        return result.stdout if result.success else ""

    def get_firewall_config(self) -> FirewallConfig:
        config = parse_status(self._status_output())
        config.application_profiles = self._read_profiles()
        return config

    def add_rule(self, rule: FirewallRule) -> None:
        args = rule_args(rule)
        if rule.description:
            args.extend(["comment", rule.description])
        self._ufw(*args, context=f"failed to add rule {' '.join(rule_args(rule)[:2])}")

    def remove_rule(self, rule: FirewallRule) -> None:
        self._ufw(
            "delete",
            *rule_args(rule),
            context=f"failed to remove rule {' '.join(rule_args(rule)[:2])}",
        )

    def add_profile(self, profile: FirewallProfile) -> None:
        """Add or replace one profile while keeping the others in the file."""
        profiles = [p for p in self._read_profiles() if p.name != profile.name]
        profiles.append(profile)
        self._write_profiles(profiles)

    def enable_firewall(self) -> None:
        try:
            self.commander.execute(["sh", "-c", "yes | ufw enable"])
        except CommandExecutionError as e:
            raise MutationError(f"failed to enable UFW: {e}") from e

    def disable_firewall(self) -> None:
        self._ufw("disable", context="failed to disable UFW")

    def get_firewall_status(self) -> FirewallStatus:
        if not self.is_installed():
            return FirewallStatus(False, False, False, [])
        output = self._status_output()
        return FirewallStatus(
            installed=True,
            enabled="Status: active" in output,
            configured=is_configured(output),
            rules=rule_lines(output),
        )
