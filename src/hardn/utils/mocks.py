"""In-memory doubles for the filesystem, commander and network."""

import errno
import posixpath
import time
from typing import Dict, List, Optional, Sequence, Tuple

from hardn.exceptions import CommandExecutionError
from hardn.types import CommandResult, FileStat
from hardn.utils.command import format_command
from hardn.utils.file import Data, to_bytes


def _norm(path: str) -> str:
    return posixpath.normpath(path)


def _not_found(path: str) -> FileNotFoundError:
    return FileNotFoundError(errno.ENOENT, "No such file or directory", path)


class MockFileSystem:
    """Path to bytes map with modes, directories and error injection."""

    temp_dir = "/tmp"

    def __init__(self) -> None:
        self.files: Dict[str, bytes] = {}
        self.modes: Dict[str, int] = {}
        self.dirs: Dict[str, int] = {"/": 0o755}
        self.mtimes: Dict[str, float] = {}
        self.errors: Dict[Tuple[str, str], Exception] = {}

    def set_error(self, operation: str, path: str, error: Exception) -> None:
        """Make ``operation`` on ``path`` raise ``error``."""
        self.errors[(operation, _norm(path))] = error

    def _check(self, operation: str, path: str) -> None:
        error = self.errors.get((operation, path))
        if error is not None:
            raise error

    def _ensure_parents(self, path: str) -> None:
        parent = posixpath.dirname(path)
        while parent and parent not in self.dirs:
            self.dirs[parent] = 0o755
            self.mtimes[parent] = time.time()
            parent = posixpath.dirname(parent)

    def add_file(self, path: str, data: Data, mode: int = 0o644) -> None:
        """Seed a file without going through error injection."""
        path = _norm(path)
        self._ensure_parents(path)
        self.files[path] = to_bytes(data)
        self.modes[path] = mode
        self.mtimes[path] = time.time()

    def add_dir(self, path: str, mode: int = 0o755) -> None:
        path = _norm(path)
        self._ensure_parents(path)
        self.dirs.setdefault(path, mode)
        self.mtimes.setdefault(path, time.time())

    def read_file(self, path: str) -> bytes:
        path = _norm(path)
        self._check("read_file", path)
        if path not in self.files:
            raise _not_found(path)
        return self.files[path]

    def read_text(self, path: str) -> str:
        return self.read_file(path).decode("utf-8", errors="replace")

    def write_file(self, path: str, data: Data, mode: int = 0o644) -> None:
        path = _norm(path)
        self._check("write_file", path)
        self._ensure_parents(path)
        self.files[path] = to_bytes(data)
        self.modes[path] = mode
        self.mtimes[path] = time.time()

    @classmethod
    def temp_path(cls, prefix: str) -> str:
        """Path handed out by write_temp_file for ``prefix``."""
        return posixpath.join(cls.temp_dir, f"{prefix}tmp")

    def write_temp_file(self, prefix: str, data: Data, mode: int = 0o600) -> str:
        path = self.temp_path(prefix)
        self._check("write_temp_file", path)
        self.add_file(path, data, mode)
        return path

    def mkdir_all(self, path: str, mode: int = 0o755) -> None:
        path = _norm(path)
        self._check("mkdir_all", path)
        if path in self.files:
            raise FileExistsError(errno.EEXIST, "File exists", path)
        self._ensure_parents(path)
        if path not in self.dirs:
            self.dirs[path] = mode
            self.mtimes[path] = time.time()

    def stat(self, path: str) -> FileStat:
        path = _norm(path)
        self._check("stat", path)
        if path in self.files:
            return FileStat(
                path, len(self.files[path]), self.modes[path], self.mtimes[path], False
            )
        if path in self.dirs:
            return FileStat(path, 0, self.dirs[path], self.mtimes.get(path, 0.0), True)
        raise _not_found(path)

    def exists(self, path: str) -> bool:
        path = _norm(path)
        return path in self.files or path in self.dirs

    def is_dir(self, path: str) -> bool:
        return _norm(path) in self.dirs

    def list_dir(self, path: str) -> List[str]:
        path = _norm(path)
        self._check("list_dir", path)
        if path not in self.dirs:
            if path in self.files:
                raise NotADirectoryError(errno.ENOTDIR, "Not a directory", path)
            raise _not_found(path)
        names = set()
        for entry in list(self.files) + list(self.dirs):
            if entry != path and posixpath.dirname(entry) == path:
                names.add(posixpath.basename(entry))
        return sorted(names)

    def remove(self, path: str) -> None:
        path = _norm(path)
        self._check("remove", path)
        if path in self.files:
            del self.files[path]
            self.modes.pop(path, None)
            self.mtimes.pop(path, None)
            return
        if path in self.dirs:
            if self.list_dir(path):
                raise OSError(errno.ENOTEMPTY, "Directory not empty", path)
            del self.dirs[path]
            self.mtimes.pop(path, None)
            return
        raise _not_found(path)

    def remove_all(self, path: str) -> None:
        path = _norm(path)
        self._check("remove_all", path)
        prefix = path.rstrip("/") + "/"
        for entry in [p for p in self.files if p == path or p.startswith(prefix)]:
            del self.files[entry]
            self.modes.pop(entry, None)
            self.mtimes.pop(entry, None)
        for entry in [p for p in self.dirs if p == path or p.startswith(prefix)]:
            del self.dirs[entry]
            self.mtimes.pop(entry, None)


class MockCommander:
    """Table-driven commander that records every call in order.

    Keys are the space-joined argv. Calls with stdin are keyed and recorded
    as ``INPUT:<stdin>|<argv>``. Unknown commands succeed with empty output.
    """

    def __init__(self) -> None:
        self.outputs: Dict[str, str] = {}
        self.errors: Dict[str, CommandResult] = {}
        self.executed: List[str] = []
        self.dry_run = False

    @staticmethod
    def key(args: Sequence[str], input: Optional[str] = None) -> str:
        cmd = format_command(args)
        if input is not None:
            return f"INPUT:{input}|{cmd}"
        return cmd

    def add_output(self, command: str, output: str) -> None:
        """Register a successful output and clear any registered failure."""
        self.errors.pop(command, None)
        self.outputs[command] = output

    def add_error(self, command: str, output: str = "", return_code: int = 1) -> None:
        """Make a command exit non-zero."""
        self.errors[command] = CommandResult(False, output, "", return_code)

    def clear_error(self, command: str) -> None:
        self.errors.pop(command, None)

    def execute(
        self,
        args: Sequence[str],
        input: Optional[str] = None,
        check: bool = True,
    ) -> CommandResult:
        key = self.key(args, input)
        self.executed.append(key)

        failure = self.errors.get(key)
        if failure is not None:
            if check:
                raise CommandExecutionError(
                    f"command failed: {format_command(args)}: "
                    f"exit status {failure.return_code}",
                    failure.return_code,
                    failure.stdout,
                )
            return failure

        return CommandResult(True, self.outputs.get(key, ""), "", 0)

    def check_command_available(self, command: str) -> bool:
        return self.execute(["which", command], check=False).success

    def was_executed(self, command: str) -> bool:
        return command in self.executed

    def executed_starting_with(self, prefix: str) -> List[str]:
        return [c for c in self.executed if c.startswith(prefix)]


class MockNetworkOperations:
    """Fixed interface table."""

    def __init__(self, interfaces: Optional[Dict[str, List[str]]] = None) -> None:
        self.interfaces: Dict[str, List[str]] = interfaces or {
            "lo": ["127.0.0.1"],
        }

    def get_interfaces(self) -> Dict[str, List[str]]:
        return self.interfaces

    def get_ip_addresses(self) -> List[str]:
        return [
            a
            for addrs in self.interfaces.values()
            for a in addrs
            if not a.startswith("127.")
        ]

    def check_subnet(self, subnet: str) -> bool:
        if not subnet:
            return False
        prefix = subnet.rstrip(".")
        return any(
            ".".join(a.split(".")[:3]) == prefix
            for addrs in self.interfaces.values()
            for a in addrs
        )
