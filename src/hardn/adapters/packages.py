"""Package installation and repository sources for apt and apk."""

from typing import List, Optional

import structlog

from hardn.exceptions import CommandExecutionError, MutationError
from hardn.models import OSInfo, PackageInstallRequest, PackageSources
from hardn.ports import BackupHook, CommanderPort, FileSystemPort

logger = structlog.get_logger(__name__)

APT_SOURCES = "/etc/apt/sources.list"
APT_SOURCES_DIR = "/etc/apt/sources.list.d"
CEPH_LIST = f"{APT_SOURCES_DIR}/ceph.list"
PVE_ENTERPRISE_LIST = f"{APT_SOURCES_DIR}/pve-enterprise.list"
APK_REPOSITORIES = "/etc/apk/repositories"
ALPINE_MIRROR = "https://dl-cdn.alpinelinux.org/alpine"

PROXMOX_HELD_PACKAGES = [
    "proxmox-archive-keyring",
    "proxmox-backup-client",
    "proxmox-ve",
    "pve-kernel",
]


def substitute_codename(repos: List[str], codename: str) -> str:
    return "".join(repo.replace("CODENAME", codename) + "\n" for repo in repos)


def alpine_version_prefix(version: str) -> str:
    """``3.19.1`` becomes ``3.19``."""
    if "." in version:
        return version.rsplit(".", 1)[0]
    return version


def render_alpine_repositories(version: str, testing: bool) -> str:
    prefix = alpine_version_prefix(version)
    content = (
        "# Main repositories\n"
        f"{ALPINE_MIRROR}/v{prefix}/main\n"
        f"{ALPINE_MIRROR}/v{prefix}/community\n"
    )
    if testing:
        content += (
            "\n# Testing repository (use with caution)\n"
            f"{ALPINE_MIRROR}/edge/testing\n"
        )
    return content


class OSPackageAdapter:
    """Installs packages with apt-get, apk, pip3 or uv."""

    def __init__(
        self,
        fs: FileSystemPort,
        commander: CommanderPort,
        os_info: OSInfo,
        sources: Optional[PackageSources] = None,
        backup: Optional[BackupHook] = None,
    ) -> None:
        self.fs = fs
        self.commander = commander
        self.os_info = os_info
        self.sources = sources or PackageSources()
        self.backup = backup

    def _run(self, args: List[str], context: str) -> None:
        try:
            self.commander.execute(args)
        except CommandExecutionError as e:
            raise MutationError(f"{context}: {e}") from e

    def _run_warn(self, args: List[str]) -> None:
        result = self.commander.execute(args, check=False)
        if not result.success:
            logger.warning(
                "package_command_failed",
                command=" ".join(args),
                output=result.stdout.strip(),
            )

    def install_packages(self, request: PackageInstallRequest) -> None:
        """Install the packages named in the request.

        Raises:
            MutationError: If a required install step fails
        """
        if not request.packages and not request.pip_packages:
            return

        if request.is_python:
            self._install_python(request)
        elif self.os_info.is_alpine:
            self._run(
                ["apk", "add", "--no-cache", *request.packages],
                "failed to install Alpine packages",
            )
        else:
            self._install_apt(request.packages)

        logger.info(
            "packages_installed",
            type=request.package_type.value,
            packages=request.packages,
            pip_packages=request.pip_packages,
        )

    def _install_apt(self, packages: List[str]) -> None:
        if self.os_info.is_proxmox:
            for pkg in PROXMOX_HELD_PACKAGES:
                self._run_warn(["apt-mark", "hold", pkg])

        self._run(["apt-get", "update"], "failed to update package lists")
        self._run(
            ["apt-get", "install", "--yes", *packages],
            "failed to install Debian/Ubuntu packages",
        )

        self._run_warn(["apt-get", "autoremove", "--yes"])
        self._run_warn(["apt-get", "clean"])
        self._run_warn(["sh", "-c", "rm -rf /var/lib/apt/lists/*"])

        if self.os_info.is_proxmox:
            for pkg in PROXMOX_HELD_PACKAGES:
                self._run_warn(["apt-mark", "unhold", pkg])

    def _install_python(self, request: PackageInstallRequest) -> None:
        if request.packages:
            if self.os_info.is_alpine:
                self._run(
                    ["apk", "add", "--no-cache", *request.packages],
                    "failed to install Alpine Python packages",
                )
            else:
                self._run(
                    ["apt-get", "update"],
                    "failed to update package lists for Python installation",
                )
                self._run(
                    ["apt-get", "install", "--yes", *request.packages],
                    "failed to install Python system packages",
                )

        if not request.pip_packages:
            return

        if request.use_uv:
            self._ensure_uv()
            self._run(
                ["uv", "pip", "install", *request.pip_packages],
                "failed to install Python pip packages with UV",
            )
        else:
            self._run(
                ["pip3", "install", *request.pip_packages],
                "failed to install Python pip packages",
            )

    def _ensure_uv(self) -> None:
        """Install uv through pip3, installing pip3 itself first if missing."""
        if self.commander.check_command_available("uv"):
            return
        if not self.commander.check_command_available("pip3"):
            if self.os_info.is_alpine:
                self._run(
                    ["apk", "add", "--no-cache", "py3-pip"],
                    "failed to install pip3",
                )
            else:
                self._run(
                    ["apt-get", "install", "--yes", "python3-pip"],
                    "failed to install pip3",
                )
        self._run(["pip3", "install", "uv"], "failed to install UV package manager")

    def _write_sources(self, path: str, content: str) -> None:
        """Keep a sibling ``.bak`` of the previous file, then overwrite it."""
        if self.fs.exists(path):
            try:
                self.fs.write_file(f"{path}.bak", self.fs.read_file(path), 0o644)
            except OSError as e:
                logger.warning("sources_backup_failed", path=path, error=str(e))
            if self.backup is not None:
                self.backup.backup_file(path)
        try:
            self.fs.write_file(path, content, 0o644)
        except OSError as e:
            raise MutationError(f"failed to write {path}: {e}") from e

    def update_package_sources(self, sources: PackageSources) -> None:
        if self.os_info.is_alpine:
            self._write_sources(
                APK_REPOSITORIES,
                render_alpine_repositories(
                    self.os_info.version, sources.alpine_testing_repo
                ),
            )
            self._run(["apk", "update"], "failed to update Alpine package index")
        else:
            repos = list(sources.debian_repos)
            if self.os_info.is_proxmox:
                repos.extend(sources.proxmox_src_repos)
            self._write_sources(
                APT_SOURCES, substitute_codename(repos, self.os_info.codename)
            )
        logger.info("package_sources_updated", os=self.os_info.os_type.value)

    def update_proxmox_sources(self, sources: PackageSources) -> None:
        """Write the Ceph and enterprise lists; a no-op off Proxmox."""
        if not self.os_info.is_proxmox:
            return
        try:
            self.fs.mkdir_all(APT_SOURCES_DIR, 0o755)
        except OSError as e:
            raise MutationError(f"failed to create {APT_SOURCES_DIR}: {e}") from e

        codename = self.os_info.codename
        self._write_sources(
            CEPH_LIST, substitute_codename(sources.proxmox_ceph_repo, codename)
        )
        self._write_sources(
            PVE_ENTERPRISE_LIST,
            substitute_codename(sources.proxmox_enterprise_repo, codename),
        )
        logger.info("proxmox_sources_updated")

    def is_package_installed(self, package: str) -> bool:
        if self.os_info.is_alpine:
            args = ["apk", "info", "-e", package]
        else:
            args = ["dpkg", "-l", package]
        return self.commander.execute(args, check=False).success

    def get_package_sources(self) -> PackageSources:
        return self.sources
