"""Timestamped file backups under a dated directory tree."""

import fnmatch
import posixpath
import re
from datetime import datetime
from typing import Callable, List, Optional

import structlog

from hardn.exceptions import BackupError, NotFoundError
from hardn.models import BackupConfig, BackupFile
from hardn.ports import FileSystemPort

logger = structlog.get_logger(__name__)

DAY_DIR_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
WRITE_TEST_FILE = ".write_test"


class FileBackupAdapter:
    """Backups at ``<backup_dir>/<YYYY-MM-DD>/<name>.<HHMMSS>.bak``."""

    def __init__(
        self,
        fs: FileSystemPort,
        config: BackupConfig,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.fs = fs
        self.config = config
        self.clock = clock

    def backup_file(self, path: str) -> Optional[BackupFile]:
        """Copy ``path`` into today's backup directory.

        Returns:
            The created backup, or None when disabled or the source is missing

        Raises:
            BackupError: If the copy cannot be written
        """
        if not self.config.enabled or not self.fs.exists(path):
            return None
        if self.fs.is_dir(path):
            raise BackupError(f"cannot back up a directory: {path}")

        now = self.clock()
        day_dir = posixpath.join(self.config.backup_dir, now.strftime("%Y-%m-%d"))
        target = posixpath.join(
            day_dir, f"{posixpath.basename(path)}.{now.strftime('%H%M%S')}.bak"
        )

        try:
            data = self.fs.read_file(path)
            self.fs.mkdir_all(day_dir, 0o755)
            self.fs.write_file(target, data, 0o644)
        except OSError as e:
            raise BackupError(f"failed to back up {path}: {e}") from e

        logger.info("file_backed_up", source=path, backup=target)
        return BackupFile(
            original_path=path, backup_path=target, created=now, size=len(data)
        )

    def list_backups(self, path: str) -> List[BackupFile]:
        """Find every backup of ``path``'s basename, oldest first."""
        pattern = f"{posixpath.basename(path)}.*.bak"
        backups: List[BackupFile] = []
        if not self.fs.is_dir(self.config.backup_dir):
            return backups

        pending = [self.config.backup_dir]
        while pending:
            directory = pending.pop()
            for name in self.fs.list_dir(directory):
                full = posixpath.join(directory, name)
                if self.fs.is_dir(full):
                    pending.append(full)
                elif fnmatch.fnmatch(name, pattern):
                    info = self.fs.stat(full)
                    backups.append(
                        BackupFile(
                            original_path=path,
                            backup_path=full,
                            created=datetime.fromtimestamp(info.mtime),
                            size=info.size,
                        )
                    )
        backups.sort(key=lambda b: b.backup_path)
        return backups

    def restore_backup(self, backup_path: str, original_path: str) -> None:
        """Copy a backup over the original path.

        Raises:
            NotFoundError: If the backup is missing
            BackupError: If the backup is a directory or cannot be copied
        """
        if not self.fs.exists(backup_path):
            raise NotFoundError(f"backup file not found: {backup_path}")
        if self.fs.is_dir(backup_path):
            raise BackupError(f"backup path is a directory: {backup_path}")

        try:
            data = self.fs.read_file(backup_path)
            self.fs.mkdir_all(posixpath.dirname(original_path), 0o755)
            self.fs.write_file(original_path, data, 0o644)
        except OSError as e:
            raise BackupError(f"failed to restore {original_path}: {e}") from e

        logger.info("backup_restored", backup=backup_path, target=original_path)

    def cleanup_old_backups(self, before: datetime) -> List[str]:
        """Remove day directories dated before ``before``.

        Only ``YYYY-MM-DD`` directories are considered; anything else at the
        top of the backup directory is left alone.

        Returns:
            The removed directories
        """
        root = self.config.backup_dir
        if not self.fs.exists(root):
            return []
        if not self.fs.is_dir(root):
            raise BackupError(f"backup path is not a directory: {root}")

        removed: List[str] = []
        for name in self.fs.list_dir(root):
            full = posixpath.join(root, name)
            if not DAY_DIR_RE.match(name) or not self.fs.is_dir(full):
                continue
            try:
                day = datetime.strptime(name, "%Y-%m-%d")
            except ValueError:
                continue
            if day < before:
                try:
                    self.fs.remove_all(full)
                except OSError as e:
                    raise BackupError(f"failed to remove {full}: {e}") from e
                removed.append(full)
                logger.info("backup_dir_removed", path=full)
        return removed

    def verify_backup_directory(self) -> None:
        """Create the backup directory and prove it is writable.

        Raises:
            BackupError: If the directory cannot be created or written
        """
        root = self.config.backup_dir
        try:
            self.fs.mkdir_all(root, 0o755)
        except OSError as e:
            raise BackupError(f"failed to create backup directory {root}: {e}") from e

        probe = posixpath.join(root, WRITE_TEST_FILE)
        try:
            self.fs.write_file(probe, b"test", 0o644)
        except OSError as e:
            raise BackupError(f"backup directory {root} is not writable: {e}") from e

        try:
            self.fs.remove(probe)
        except OSError as e:
            logger.warning("write_test_cleanup_failed", path=probe, error=str(e))

    def get_backup_config(self) -> BackupConfig:
        return self.config.model_copy()

    def set_backup_config(self, config: BackupConfig) -> None:
        """Replace the settings; enabling backups verifies the directory."""
        self.config = config.model_copy()
        if config.enabled:
            self.verify_backup_directory()
