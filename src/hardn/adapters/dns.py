"""Resolver configuration for systemd-resolved, resolvconf or resolv.conf."""

import posixpath
from typing import List, Optional

import structlog

from hardn.exceptions import CommandExecutionError, MutationError, ProbeError
from hardn.models import DNSConfig
from hardn.ports import BackupHook, CommanderPort, FileSystemPort
from hardn.types import OSType

logger = structlog.get_logger(__name__)

RESOLVED_CONF = "/etc/systemd/resolved.conf"
RESOLVCONF_HEAD = "/etc/resolvconf/resolv.conf.d/head"
RESOLV_CONF = "/etc/resolv.conf"


def render_resolved(config: DNSConfig) -> str:
    content = "[Resolve]\n"
    content += f"DNS={' '.join(config.nameservers)}\n"
    if config.domain:
        content += f"Domains={config.domain}\n"
    return content


def render_resolv_conf(config: DNSConfig) -> str:
    lines: List[str] = []
    if config.domain:
        lines.append(f"domain {config.domain}")
    search = config.search or ([config.domain] if config.domain else [])
    if search:
        lines.append(f"search {' '.join(search)}")
    lines.extend(f"nameserver {ns}" for ns in config.nameservers)
    return "\n".join(lines) + "\n"


def parse_resolv_conf(content: str) -> DNSConfig:
    config = DNSConfig()
    for raw in content.splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or line.startswith(";"):
            continue
        fields = line.split()
        if len(fields) < 2:
            continue
        if fields[0] == "nameserver":
            config.nameservers.append(fields[1])
        elif fields[0] == "domain":
            config.domain = fields[1]
        elif fields[0] == "search":
            config.search = fields[1:]
    return config


class FileDNSAdapter:
    """Picks the resolver back-end present on the host."""

    def __init__(
        self,
        fs: FileSystemPort,
        commander: CommanderPort,
        os_type: OSType,
        backup: Optional[BackupHook] = None,
    ) -> None:
        self.fs = fs
        self.commander = commander
        self.os_type = os_type
        self.backup = backup

    def _write(self, path: str, content: str) -> None:
        try:
            self.fs.mkdir_all(posixpath.dirname(path), 0o755)
        except OSError as e:
            raise MutationError(f"failed to create directory for {path}: {e}") from e
        if self.backup is not None:
            self.backup.backup_file(path)
        try:
            self.fs.write_file(path, content, 0o644)
        except OSError as e:
            raise MutationError(f"failed to write {path}: {e}") from e

    def _run(self, args: List[str], context: str) -> None:
        try:
            self.commander.execute(args)
        except CommandExecutionError as e:
            raise MutationError(f"{context}: {e}") from e

    def save_dns_config(self, config: DNSConfig) -> None:
        """Write resolver settings to the first back-end that is present.

        Raises:
            MutationError: If the write or the service reload fails
        """
        resolved = self.commander.execute(
            ["systemctl", "is-active", "systemd-resolved"], check=False
        )
        if resolved.success:
            self._write(RESOLVED_CONF, render_resolved(config))
            self._run(
                ["systemctl", "restart", "systemd-resolved"],
                "failed to restart systemd-resolved",
            )
            logger.info("dns_configured", backend="systemd-resolved")
            return

        if self.commander.check_command_available("resolvconf"):
            self._write(RESOLVCONF_HEAD, render_resolv_conf(config))
            self._run(["resolvconf", "-u"], "failed to update resolvconf")
            logger.info("dns_configured", backend="resolvconf")
            return

        self._write(RESOLV_CONF, render_resolv_conf(config))
        logger.info("dns_configured", backend="resolv.conf")

    def get_dns_config(self) -> DNSConfig:
        """Parse /etc/resolv.conf, the canonical view of the resolver."""
        try:
            content = self.fs.read_text(RESOLV_CONF)
        except OSError as e:
            raise ProbeError(f"failed to read {RESOLV_CONF}: {e}") from e
        return parse_resolv_conf(content)
