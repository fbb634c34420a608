"""Filesystem access used by every adapter."""

import os
import shutil
import stat as stat_module
import tempfile
from pathlib import Path
from typing import List, Union

import structlog

from hardn.types import FileStat

logger = structlog.get_logger(__name__)

Data = Union[str, bytes]


def to_bytes(data: Data) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return data


class FileSystem:
    """Read, write, stat and remove paths on the local machine."""

    def __init__(self, dry_run: bool = False) -> None:
        """Initialize filesystem.

        Args:
            dry_run: If True, reads pass through and mutations are only logged
        """
        self.dry_run = dry_run

    def read_file(self, path: str) -> bytes:
        """Read file content as bytes."""
        return Path(path).read_bytes()

    def read_text(self, path: str) -> str:
        """Read file content as text."""
        return self.read_file(path).decode("utf-8", errors="replace")

    def write_file(self, path: str, data: Data, mode: int = 0o644) -> None:
        """Write content to file and set its mode.

        Missing parent directories are created with mode 0755. The mode is
        applied explicitly so it holds for files that already existed.

        Args:
            path: Path to file
            data: Content to write
            mode: Permission bits for the file
        """
        if self.dry_run:
            logger.info("[DRY RUN] skipped write", path=path, mode=oct(mode))
            return

        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True, mode=0o755)
        target.write_bytes(to_bytes(data))
        os.chmod(target, mode)

    def write_temp_file(self, prefix: str, data: Data, mode: int = 0o600) -> str:
        """Write content to a new, uniquely named file in the temp directory.

        The file is created exclusively, so an existing path or symlink is
        never reused, and the mode is set on the open descriptor.

        Returns:
            Path of the new file
        """
        if self.dry_run:
            path = os.path.join(tempfile.gettempdir(), f"{prefix}dry_run")
            logger.info("[DRY RUN] skipped temp write", path=path, mode=oct(mode))
            return path

        fd, path = tempfile.mkstemp(prefix=prefix)
        try:
            os.fchmod(fd, mode)
            with os.fdopen(fd, "wb") as f:
                f.write(to_bytes(data))
        except OSError:
            os.remove(path)
            raise
        return path

    def mkdir_all(self, path: str, mode: int = 0o755) -> None:
        """Create a directory and its parents."""
        if self.dry_run:
            logger.info("[DRY RUN] skipped mkdir", path=path, mode=oct(mode))
            return
        Path(path).mkdir(parents=True, exist_ok=True, mode=mode)

    def stat(self, path: str) -> FileStat:
        """Return stat information.

        Raises:
            FileNotFoundError: If the path does not exist
        """
        st = os.stat(path)
        return FileStat(
            path=path,
            size=st.st_size,
            mode=stat_module.S_IMODE(st.st_mode),
            mtime=st.st_mtime,
            is_dir=stat_module.S_ISDIR(st.st_mode),
        )

    def exists(self, path: str) -> bool:
        return os.path.exists(path)

    def is_dir(self, path: str) -> bool:
        return os.path.isdir(path)

    def list_dir(self, path: str) -> List[str]:
        """Return the sorted entry names of a directory."""
        return sorted(os.listdir(path))

    def remove(self, path: str) -> None:
        """Remove a file or an empty directory."""
        if self.dry_run:
            logger.info("[DRY RUN] skipped remove", path=path)
            return
        if os.path.isdir(path):
            os.rmdir(path)
        else:
            os.remove(path)

    def remove_all(self, path: str) -> None:
        """Remove a path recursively; a missing path is not an error."""
        if self.dry_run:
            logger.info("[DRY RUN] skipped remove", path=path, recursive=True)
            return
        if os.path.isdir(path) and not os.path.islink(path):
            shutil.rmtree(path)
        elif os.path.lexists(path):
            os.remove(path)
