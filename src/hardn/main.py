"""CLI entry point for hardn."""

import argparse
import logging
import os
import sys
from typing import IO, Any, Callable, Dict, List, NoReturn, Optional, Sequence

import structlog

from hardn import __version__
from hardn.config import (
    ENV_LOSS_NOTICE,
    HardnConfig,
    detect_env_var_loss,
    load_config,
    to_hardening_config,
)
from hardn.exceptions import HardnError
from hardn.factory import ServiceFactory
from hardn.log import configure_logging
from hardn.managers import BackupManager
from hardn.models import SecurityReport
from hardn.system_info import check_requirements, detect_os, is_root
from hardn.utils import Provider

logger = structlog.get_logger(__name__)

STATUS_LABELS = [
    ("root_login_enabled", "Root SSH login disabled", True),
    ("firewall_enabled", "Firewall enabled", False),
    ("firewall_configured", "Firewall rules configured", False),
    ("secure_users", "Non-root sudo user present", False),
    ("app_armor_enabled", "AppArmor enforcing", False),
    ("unattended_upgrades", "Automatic updates enabled", False),
    ("sudo_configured", "sudo configured", False),
    ("ssh_port_non_default", "SSH on a non-default port", False),
    ("password_auth_disabled", "SSH password authentication disabled", False),
]

ACTION_FLAGS = (
    "create_user",
    "disable_root",
    "install_linux",
    "install_python",
    "install_all",
    "configure_dns",
    "configure_ufw",
    "configure_sources",
    "run_all",
    "print_logs",
    "setup_sudo_env",
    "status",
    "list_backups",
    "restore_backup",
    "cleanup_backups",
)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="hardn",
        description="hardn - Linux hardening for Debian, Ubuntu, Proxmox and Alpine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Full hardening run from a config file
  sudo hardn -f /etc/hardn/hardn.yml --run-all

  # Create a sudo user and lock down SSH
  sudo hardn -u ops --create-user --disable-root

  # Preview every change
  sudo hardn --run-all --dry-run

  # Show the security posture
  sudo hardn --status

Environment variables:
  HARDN_CONFIG          - Path to the configuration file
  HARDN_<OPTION>        - Override any option, e.g. HARDN_SSH_PORT=2222

See README.md for full documentation.
        """,
    )

    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )

    parser.add_argument(
        "-f",
        "--config",
        help="Path to configuration file (YAML)",
    )

    parser.add_argument(
        "-u",
        "--username",
        help="Username to create or manage (overrides config/env)",
    )

    parser.add_argument(
        "-c",
        "--create-user",
        action="store_true",
        help="Create a non-root user with sudo access",
    )

    parser.add_argument(
        "-d",
        "--disable-root",
        action="store_true",
        help="Disable root SSH access",
    )

    parser.add_argument(
        "-l",
        "--install-linux",
        action="store_true",
        help="Install core Linux packages",
    )

    parser.add_argument(
        "-i",
        "--install-python",
        action="store_true",
        help="Install Python packages",
    )

    parser.add_argument(
        "-a",
        "--install-all",
        action="store_true",
        help="Install all Linux and Python packages",
    )

    parser.add_argument(
        "-g",
        "--configure-dns",
        action="store_true",
        help="Configure DNS resolvers",
    )

    parser.add_argument(
        "-w",
        "--configure-ufw",
        action="store_true",
        help="Configure the UFW firewall",
    )

    parser.add_argument(
        "-s",
        "--configure-sources",
        action="store_true",
        help="Update package sources",
    )

    parser.add_argument(
        "-r",
        "--run-all",
        action="store_true",
        help="Run all hardening steps",
    )

    parser.add_argument(
        "-n",
        "--dry-run",
        action="store_true",
        help="Simulate changes without applying them",
    )

    parser.add_argument(
        "-p",
        "--print-logs",
        action="store_true",
        help="Print the log file",
    )

    parser.add_argument(
        "-e",
        "--setup-sudo-env",
        action="store_true",
        help="Preserve HARDN_CONFIG across sudo",
    )

    parser.add_argument(
        "--status",
        action="store_true",
        help="Show the security posture and risk grade",
    )

    parser.add_argument(
        "--list-backups",
        metavar="PATH",
        help="List backups of a file",
    )

    parser.add_argument(
        "--restore-backup",
        nargs=2,
        metavar=("BACKUP", "ORIGINAL"),
        help="Restore a backup over the original file",
    )

    parser.add_argument(
        "--cleanup-backups",
        type=int,
        metavar="DAYS",
        help="Remove backup days older than DAYS",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Suppress non-error output",
    )

    return parser.parse_args(argv)


def has_action(args: argparse.Namespace) -> bool:
    return any(getattr(args, name) not in (None, False) for name in ACTION_FLAGS)


def apply_overrides(config: HardnConfig, args: argparse.Namespace) -> HardnConfig:
    """Command-line values win over the file and environment."""
    updates: Dict[str, Any] = {}
    if args.dry_run:
        updates["dry_run"] = True
    if args.username:
        updates["username"] = args.username
    return config.model_copy(update=updates)


def format_report(report: SecurityReport) -> str:
    lines = ["Security status:"]
    for field, label, inverted in STATUS_LABELS:
        value = getattr(report.status, field)
        ok = not value if inverted else value
        lines.append(f"  [{'x' if ok else ' '}] {label}")
    lines.append("")
    lines.append(
        f"Risk: {report.risk_level.value} ({report.description}), "
        f"score {report.score}/{len(STATUS_LABELS)}"
    )
    return "\n".join(lines)


class Runner:
    """Executes the selected flags against the managers of one factory.

    Individual operations keep going after a failure; ``run`` reports
    whether all of them succeeded.
    """

    def __init__(
        self,
        factory: ServiceFactory,
        config: HardnConfig,
        out: Optional[IO[str]] = None,
        probe_provider: Optional[Provider] = None,
    ) -> None:
        self.factory = factory
        self.config = config
        self.out = out or sys.stdout
        self.probe_provider = probe_provider
        self.failures: List[str] = []

    def _attempt(
        self, operation: str, func: Callable[..., Any], *args: Any
    ) -> bool:
        try:
            func(*args)
        except HardnError as e:
            logger.error("operation_failed", operation=operation, error=str(e))
            self.failures.append(operation)
            return False
        logger.info("operation_completed", operation=operation)
        return True

    def _print(self, text: str) -> None:
        self.out.write(text + "\n")

    def run_all(self) -> None:
        security = self.factory.create_security_manager()
        request = to_hardening_config(self.config)
        if self._attempt("harden_system", security.harden_system, request):
            self._attempt(
                "security_features", security.apply_security_features, request
            )
        if not self.failures:
            self._print(f"Check the log file at {self.config.log_file} for details.")

    def show_status(self) -> None:
        evaluator = self.factory.create_posture_evaluator(self.probe_provider)
        self._print(format_report(evaluator.report()))

    def run(self, args: argparse.Namespace) -> bool:
        if args.run_all:
            self.run_all()
            return not self.failures

        if not has_action(args):
            self.show_status()
            self._print("\nRun `hardn --help` to see the available operations.")
            return True

        cfg = self.config
        os_info = self.factory.os_info

        if args.configure_sources:
            packages = self.factory.create_package_manager()
            self._attempt("update_package_sources", packages.update_package_sources)
            if os_info.is_proxmox and not os_info.is_alpine:
                self._attempt(
                    "update_proxmox_sources", packages.update_proxmox_sources
                )

        if args.disable_root:
            ssh = self.factory.create_ssh_manager()
            self._attempt("disable_root_access", ssh.disable_root_access)

        if args.install_linux or args.install_all:
            packages = self.factory.create_package_manager()
            if args.install_all:
                self._attempt(
                    "install_all_linux_packages", packages.install_all_linux_packages
                )
            else:
                self._attempt("install_core_packages", packages.install_core_packages)

        if args.install_python or args.install_all:
            packages = self.factory.create_package_manager()
            self._attempt(
                "install_python_packages", packages.install_all_python_packages
            )

        if args.create_user:
            users = self.factory.create_user_manager()
            ssh = self.factory.create_ssh_manager()
            if self._attempt(
                "create_user",
                users.create_user,
                cfg.username,
                True,
                cfg.sudo_no_password,
                cfg.ssh_keys,
            ):
                self._attempt(
                    "configure_ssh",
                    ssh.configure_ssh,
                    cfg.ssh_port,
                    [cfg.ssh_listen_address],
                    cfg.permit_root_login,
                    cfg.ssh_allowed_users,
                    [],
                )

        if args.configure_ufw:
            firewall = self.factory.create_firewall_manager()
            self._attempt(
                "configure_firewall",
                firewall.configure_secure_firewall,
                cfg.ssh_port,
                cfg.ufw_allowed_ports,
                cfg.ufw_app_profiles,
            )

        if args.configure_dns:
            dns = self.factory.create_dns_manager()
            self._attempt("configure_dns", dns.configure_dns, cfg.nameservers, "lan")

        if args.print_logs:
            logs = self.factory.create_logs_manager()
            self._attempt("print_logs", logs.print_logs, self.out)

        if args.setup_sudo_env:
            environment = self.factory.create_environment_manager()
            self._attempt("setup_sudo_env", environment.setup_sudo_preservation)

        if args.list_backups:
            backups = self.factory.create_backup_manager()
            self._attempt(
                "list_backups", self._list_backups, backups, args.list_backups
            )

        if args.restore_backup:
            backups = self.factory.create_backup_manager()
            self._attempt(
                "restore_backup", backups.restore_backup, *args.restore_backup
            )

        if args.cleanup_backups is not None:
            backups = self.factory.create_backup_manager()
            self._attempt(
                "cleanup_backups", self._cleanup_backups, backups, args.cleanup_backups
            )

        if args.status:
            self.show_status()

        return not self.failures

    def _list_backups(self, backups: BackupManager, path: str) -> None:
        found = backups.list_backups(path)
        if not found:
            self._print(f"No backups found for {path}")
            return
        for backup in found:
            created = backup.created.strftime("%Y-%m-%d %H:%M:%S")
            self._print(f"{created}  {backup.size:>8}  {backup.backup_path}")

    def _cleanup_backups(self, backups: BackupManager, days: int) -> None:
        removed = backups.cleanup_old_backups(days)
        self._print(f"Removed {len(removed)} backup day(s)")


def main(argv: Optional[Sequence[str]] = None) -> NoReturn:
    """Main entry point for CLI.

    Raises:
        SystemExit: Always exits with appropriate code
    """
    args = parse_args(argv)

    if not sys.platform.startswith("linux"):
        print("Error: This tool only supports Linux systems", file=sys.stderr)
        sys.exit(1)

    try:
        config = apply_overrides(load_config(args.config), args)

        configure_logging(
            level=logging.DEBUG if args.verbose else logging.INFO,
            log_file=config.log_file,
            quiet=args.quiet,
        )

        probe_provider = Provider.default()
        if detect_env_var_loss(os.environ, probe_provider.commander):
            print(ENV_LOSS_NOTICE, file=sys.stderr)

        provider = Provider.default(dry_run=config.dry_run)
        os_info = detect_os(provider.fs)

        issues = [] if config.dry_run else check_requirements(os_info, is_root())
        if issues:
            for issue in issues:
                print(f"Error: {issue}", file=sys.stderr)
            sys.exit(1)

        if (args.create_user or args.run_all) and not config.username:
            print(
                "Error: Please specify a username with -u or in the config file.",
                file=sys.stderr,
            )
            sys.exit(1)

        if config.dry_run and not args.quiet:
            print("DRY RUN MODE - No changes will be applied\n")

        factory = ServiceFactory(provider, os_info, config)
        runner = Runner(factory, config, probe_provider=probe_provider)
        ok = runner.run(args)
        sys.exit(0 if ok else 1)

    except KeyboardInterrupt:
        print("\n\nInterrupted by user", file=sys.stderr)
        sys.exit(130)

    except HardnError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
