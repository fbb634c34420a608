"""Validated writes to sudoers drop-ins."""

from typing import Optional

import structlog

from hardn.exceptions import CommandExecutionError, MutationError, ValidationError
from hardn.ports import BackupHook, CommanderPort, FileSystemPort

logger = structlog.get_logger(__name__)

SUDOERS_DIR = "/etc/sudoers.d"
SUDOERS_MODE = 0o440
SUDOERS_TEMP_PREFIX = "hardn_sudoers_"


def install_sudoers_file(
    fs: FileSystemPort,
    commander: CommanderPort,
    target: str,
    content: str,
    backup: Optional[BackupHook] = None,
) -> None:
    """Validate ``content`` with visudo, then write it to ``target``.

    The target is only touched after ``visudo -c`` accepts a temporary copy.
    The copy gets a fresh unpredictable name in the temp directory.

    Raises:
        ValidationError: If visudo rejects the content
        MutationError: If a file cannot be written
    """
    try:
        tmp = fs.write_temp_file(SUDOERS_TEMP_PREFIX, content, SUDOERS_MODE)
    except OSError as e:
        raise MutationError(f"failed to write temporary sudoers file: {e}") from e

    try:
        commander.execute(["visudo", "-c", "-f", tmp])
    except CommandExecutionError as e:
        try:
            fs.remove(tmp)
        except OSError as rm_err:
            logger.warning("temp_sudoers_cleanup_failed", path=tmp, error=str(rm_err))
        raise ValidationError(f"invalid sudoers configuration: {e}") from e

    try:
        fs.remove(tmp)
    except OSError as e:
        logger.warning("temp_sudoers_cleanup_failed", path=tmp, error=str(e))

    if backup is not None:
        backup.backup_file(target)

    try:
        fs.write_file(target, content, SUDOERS_MODE)
    except OSError as e:
        raise MutationError(f"failed to write sudoers file: {e}") from e
