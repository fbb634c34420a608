"""Host summary gathered from /proc, /etc and a few commands."""

import socket
from typing import Dict, List, Optional, Tuple

import structlog

from hardn.adapters.dns import RESOLV_CONF, parse_resolv_conf
from hardn.exceptions import HardnError, ProbeError
from hardn.models import HostInfo
from hardn.ports import CommanderPort, FileSystemPort, NetworkPort, UserPort

logger = structlog.get_logger(__name__)

PSEUDO_MOUNT_PREFIXES = ("/dev", "/sys", "/proc", "/run")


def format_uptime(seconds: float) -> str:
    minutes_total = int(seconds // 60)
    days, rest = divmod(minutes_total, 24 * 60)
    hours, minutes = divmod(rest, 60)
    if days > 0:
        return f"{days} days, {hours} hours, {minutes} minutes"
    if hours > 0:
        return f"{hours} hours, {minutes} minutes"
    return f"{minutes} minutes"


def format_bytes(size: int) -> str:
    """Binary units: ``1536`` becomes ``1.5 KiB``."""
    unit = 1024
    if size < unit:
        return f"{size} B"
    div, exp = unit, 0
    n = size // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{size / div:.1f} {'KMGTPE'[exp]}iB"


def parse_os_release(content: str) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for line in content.splitlines():
        if "=" not in line or line.startswith("#"):
            continue
        key, value = line.split("=", 1)
        values[key.strip()] = value.strip().strip('"')
    return values


def parse_cpu_model(content: str) -> str:
    for prefixes in (("model name",), ("Hardware", "Processor")):
        for line in content.splitlines():
            if line.startswith(prefixes) and ":" in line:
                return line.split(":", 1)[1].strip()
    return ""


def parse_meminfo(content: str) -> Tuple[int, int]:
    """(total, free) in bytes."""
    total = free = 0
    for line in content.splitlines():
        fields = line.split()
        if len(fields) < 2 or not fields[1].isdigit():
            continue
        if fields[0] == "MemTotal:":
            total = int(fields[1]) * 1024
        elif fields[0] == "MemFree:":
            free = int(fields[1]) * 1024
    return total, free


def parse_df(output: str) -> Dict[str, Dict[str, int]]:
    """Mount point to total/free bytes from ``df -kP`` output."""
    disks: Dict[str, Dict[str, int]] = {}
    for line in output.splitlines()[1:]:
        fields = line.split()
        if len(fields) < 6:
            continue
        mount = fields[5]
        if mount.startswith(PSEUDO_MOUNT_PREFIXES):
            continue
        if not (fields[1].isdigit() and fields[3].isdigit()):
            continue
        disks[mount] = {"total": int(fields[1]) * 1024, "free": int(fields[3]) * 1024}
    return disks


class OSHostInfoAdapter:
    """Collects a HostInfo; each probe that fails leaves its fields empty."""

    def __init__(
        self,
        fs: FileSystemPort,
        commander: CommanderPort,
        network: NetworkPort,
        users: Optional[UserPort] = None,
    ) -> None:
        self.fs = fs
        self.commander = commander
        self.network = network
        self.users = users

    def _read(self, path: str) -> str:
        try:
            return self.fs.read_text(path)
        except OSError as e:
            result = self.commander.execute(["cat", path], check=False)
            if not result.success:
                raise ProbeError(f"failed to read {path}: {e}") from e
            return result.stdout

    def _output(self, args: List[str]) -> str:
        result = self.commander.execute(args, check=False)
        if not result.success:
            raise ProbeError(f"{' '.join(args)} failed: {result.stdout.strip()}")
        return result.stdout.strip()

    def get_dns_servers(self) -> List[str]:
        return parse_resolv_conf(self._read(RESOLV_CONF)).nameservers

    def get_hostname(self) -> Tuple[str, str]:
        """(host, domain) from ``hostname -f``, falling back to ``domainname``."""
        try:
            fqdn = self._output(["hostname", "-f"])
        except ProbeError:
            fqdn = socket.gethostname()
        host, _, domain = fqdn.partition(".")
        if not domain:
            try:
                domain = self._output(["domainname"])
            except ProbeError:
                domain = ""
            if domain in ("none", "(none)"):
                domain = ""
        return host, domain

    def get_uptime(self) -> float:
        fields = self._read("/proc/uptime").split()
        try:
            return float(fields[0])
        except (IndexError, ValueError) as e:
            raise ProbeError(f"unexpected /proc/uptime content: {e}") from e

    def get_host_info(self) -> HostInfo:
        info = HostInfo(ip_addresses=self.network.get_ip_addresses())

        probes = [
            ("dns", self._probe_dns),
            ("hostname", self._probe_hostname),
            ("os_release", self._probe_os_release),
            ("uptime", self._probe_uptime),
            ("kernel", self._probe_kernel),
            ("cpu", self._probe_cpu),
            ("memory", self._probe_memory),
            ("disks", self._probe_disks),
            ("accounts", self._probe_accounts),
        ]
        for name, probe in probes:
            try:
                probe(info)
            except HardnError as e:
                logger.debug("host_probe_failed", probe=name, error=str(e))
        return info

    def _probe_dns(self, info: HostInfo) -> None:
        info.dns_servers = self.get_dns_servers()

    def _probe_hostname(self, info: HostInfo) -> None:
        info.hostname, info.domain = self.get_hostname()

    def _probe_os_release(self, info: HostInfo) -> None:
        release = parse_os_release(self._read("/etc/os-release"))
        info.os_name = release.get("NAME", "")
        info.os_version = release.get("VERSION", "")

    def _probe_uptime(self, info: HostInfo) -> None:
        info.uptime_seconds = self.get_uptime()

    def _probe_kernel(self, info: HostInfo) -> None:
        info.kernel = self._output(["uname", "-r"])

    def _probe_cpu(self, info: HostInfo) -> None:
        info.cpu_model = parse_cpu_model(self._read("/proc/cpuinfo"))

    def _probe_memory(self, info: HostInfo) -> None:
        info.memory_total, info.memory_free = parse_meminfo(self._read("/proc/meminfo"))

    def _probe_disks(self, info: HostInfo) -> None:
        info.disks = parse_df(self._output(["df", "-kP"]))

    def _probe_accounts(self, info: HostInfo) -> None:
        if self.users is None:
            return
        info.users = self.users.get_non_system_users()
        info.groups = self.users.get_non_system_groups()
