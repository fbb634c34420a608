"""Command execution utilities."""

import subprocess
from typing import Optional, Sequence, Tuple

import structlog

from hardn.exceptions import CommandExecutionError
from hardn.types import CommandResult

logger = structlog.get_logger(__name__)

# Probes that never change system state and still run in dry-run mode.
READ_ONLY_PREFIXES: Tuple[Tuple[str, ...], ...] = (
    ("id",),
    ("which",),
    ("getent",),
    ("groups",),
    ("grep",),
    ("last",),
    ("lastlog",),
    ("uname",),
    ("hostname",),
    ("domainname",),
    ("df",),
    ("aa-status",),
    ("rc-status",),
    ("su",),
    ("ufw", "status"),
    ("systemctl", "is-active"),
    ("systemctl", "is-enabled"),
    ("dpkg", "-l"),
    ("apk", "info"),
)


def format_command(args: Sequence[str]) -> str:
    """Render argv as a single space-joined string."""
    return " ".join(args)


class Commander:
    """Execute system commands with proper error handling."""

    def __init__(self, dry_run: bool = False, timeout: Optional[int] = None) -> None:
        """Initialize commander.

        Args:
            dry_run: If True, only log mutating commands without executing
            timeout: Optional timeout in seconds; none by default
        """
        self.dry_run = dry_run
        self.timeout = timeout

    def _is_read_only(self, args: Sequence[str]) -> bool:
        return any(tuple(args[: len(p)]) == p for p in READ_ONLY_PREFIXES)

    def execute(
        self,
        args: Sequence[str],
        input: Optional[str] = None,
        check: bool = True,
    ) -> CommandResult:
        """Execute a program with argv and optional stdin.

        stdout and stderr are combined into ``CommandResult.stdout``.

        Args:
            args: Program name followed by its arguments
            input: Text fed to the program's stdin
            check: Whether to raise exception on failure

        Returns:
            CommandResult with execution details

        Raises:
            CommandExecutionError: If command fails and check=True
        """
        cmd = format_command(args)

        if self.dry_run and not self._is_read_only(args):
            logger.info("[DRY RUN] skipped command", command=cmd)
            return CommandResult(True, "", "", 0)

        try:
            result = subprocess.run(
                list(args),
                input=input,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            error_msg = f"command timed out after {self.timeout}s: {cmd}"
            if check:
                raise CommandExecutionError(error_msg) from e
            return CommandResult(False, "", error_msg, -1)
        except OSError as e:
            error_msg = f"failed to run {cmd}: {e}"
            if check:
                raise CommandExecutionError(error_msg, return_code=127) from e
            return CommandResult(False, "", error_msg, 127)

        cmd_result = CommandResult(
            success=result.returncode == 0,
            stdout=result.stdout or "",
            stderr="",
            return_code=result.returncode,
        )

        if check and not cmd_result.success:
            detail = cmd_result.stdout.strip()
            message = f"command failed: {cmd}: exit status {result.returncode}"
            if detail:
                message = f"{message}: {detail}"
            raise CommandExecutionError(message, result.returncode, cmd_result.stdout)

        return cmd_result

    def check_command_available(self, command: str) -> bool:
        """Check if command is available on system."""
        result = self.execute(["which", command], check=False)
        return result.success
