"""Reads back the tool's own log file."""

from typing import List, Optional

from hardn.exceptions import ProbeError
from hardn.models import LogEntry, LogsConfig
from hardn.ports import FileSystemPort


def parse_log_line(line: str) -> Optional[LogEntry]:
    """``<time> <LEVEL>: <message>`` or None for lines that do not fit."""
    parts = line.split(" ", 2)
    if len(parts) < 3:
        return None
    return LogEntry(time=parts[0], level=parts[1].rstrip(":"), message=parts[2])


class FileLogsAdapter:
    def __init__(self, fs: FileSystemPort, log_file_path: str) -> None:
        self.fs = fs
        self.log_file_path = log_file_path

    def read_log(self) -> str:
        """Raw log contents.

        Raises:
            ProbeError: If the log file cannot be read
        """
        try:
            return self.fs.read_text(self.log_file_path)
        except OSError as e:
            raise ProbeError(
                f"failed to read log file {self.log_file_path}: {e}"
            ) from e

    def get_log_entries(self) -> List[LogEntry]:
        entries: List[LogEntry] = []
        for line in self.read_log().splitlines():
            entry = parse_log_line(line)
            if entry is not None:
                entries.append(entry)
        return entries

    def get_log_config(self) -> LogsConfig:
        return LogsConfig(log_file_path=self.log_file_path)
