"""Last-login lookups backed by ``lastlog`` and ``last``."""

import re
from datetime import datetime
from typing import List, Optional, Tuple

import structlog

from hardn.exceptions import CommandExecutionError, ProbeError
from hardn.ports import CommanderPort

logger = structlog.get_logger(__name__)

IPV4_RE = re.compile(r"^\d+\.\d+\.\d+\.\d+$")
TZ_OFFSET_RE = re.compile(r"^[+-]\d{4}$")

LoginInfo = Tuple[Optional[datetime], str]


def parse_login_time(fields: List[str], now: Optional[datetime] = None) -> datetime:
    """Parse ``Mon Jan 2 15:04[:05] [2006]`` from a list of tokens.

    Timezone offsets such as ``+0000`` are ignored. When the year is
    missing the current year is assumed.

    Raises:
        ProbeError: If no known layout matches
    """
    tokens = [f for f in fields if not TZ_OFFSET_RE.match(f)]
    with_year = " ".join(tokens[:5])
    for fmt in ("%a %b %d %H:%M:%S %Y", "%a %b %d %H:%M %Y"):
        try:
            return datetime.strptime(with_year, fmt)
        except ValueError:
            pass

    now = now or datetime.now()
    without_year = " ".join(tokens[:4])
    for fmt in ("%a %b %d %H:%M:%S", "%a %b %d %H:%M"):
        try:
            # Parse with a leap year so Feb 29 is accepted before the year swap.
            parsed = datetime.strptime(f"{without_year} 2000", f"{fmt} %Y")
            return parsed.replace(year=now.year)
        except ValueError:
            pass

    raise ProbeError(f"failed to parse login time: {' '.join(fields)}")


def parse_lastlog_output(output: str) -> LoginInfo:
    """Parse ``lastlog -u <user>`` output.

    Returns:
        (time, ip) where time is None if the user never logged in
    """
    lines = output.split("\n")
    if len(lines) < 2:
        raise ProbeError("unexpected format in lastlog output")
    line = lines[1]
    if "Never logged in" in line:
        return None, ""

    fields = line.split()
    if len(fields) < 5:
        raise ProbeError("not enough fields in lastlog output")

    start = 3 if ("." in fields[2] or ":" in fields[2]) else 2
    ip = fields[2] if IPV4_RE.match(fields[2]) else ""
    return parse_login_time(fields[start:]), ip


def parse_last_output(output: str) -> LoginInfo:
    """Parse the first line of ``last -1 <user>`` output."""
    lines = output.strip().split("\n")
    if not lines or not lines[0] or "wtmp begins" in lines[0]:
        return None, ""

    fields = lines[0].split()
    if len(fields) < 5:
        raise ProbeError("unexpected format in last command output")

    has_host = "." in fields[2]
    start = 3 if has_host else 2
    ip = fields[2] if has_host else ""
    return parse_login_time(fields[start:]), ip


class LastlogLoginAdapter:
    """Login info from ``lastlog``."""

    def __init__(self, commander: CommanderPort) -> None:
        self.commander = commander

    def get_last_login(self, username: str) -> LoginInfo:
        try:
            result = self.commander.execute(["lastlog", "-u", username])
        except CommandExecutionError as e:
            raise ProbeError(f"failed to execute lastlog command: {e}") from e
        return parse_lastlog_output(result.stdout)


class LastLoginAdapter:
    """Login info from ``last``."""

    def __init__(self, commander: CommanderPort) -> None:
        self.commander = commander

    def get_last_login(self, username: str) -> LoginInfo:
        try:
            result = self.commander.execute(["last", "-1", username])
        except CommandExecutionError as e:
            raise ProbeError(f"failed to execute last command: {e}") from e
        return parse_last_output(result.stdout)


class FallbackLoginAdapter:
    """Prefer ``lastlog``; fall back to ``last`` when it is unavailable."""

    def __init__(self, commander: CommanderPort) -> None:
        self.primary = LastlogLoginAdapter(commander)
        self.fallback = LastLoginAdapter(commander)

    def get_last_login(self, username: str) -> LoginInfo:
        try:
            return self.primary.get_last_login(username)
        except ProbeError as e:
            logger.debug("lastlog_unavailable", user=username, error=str(e))
            return self.fallback.get_last_login(username)
