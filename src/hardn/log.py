"""structlog setup for the command line.

Console output is rendered by structlog on stderr. When a log file is
given, each event is also appended as ``<time> <LEVEL>: <event> k=v``,
the format the logs view parses back.
"""

import logging
import os
import sys
from typing import Any, List, MutableMapping, Optional

import structlog

TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"


def render_log_line(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> str:
    """Plain single-line rendering used for the log file."""
    timestamp = event_dict.pop("timestamp", "")
    level = str(event_dict.pop("level", method_name)).upper()
    event = event_dict.pop("event", "")
    event_dict.pop("logger", None)
    context = " ".join(f"{k}={v}" for k, v in event_dict.items())
    line = f"{timestamp} {level}: {event}"
    return f"{line} {context}" if context else line


def _file_handler(log_file: str, shared: List[Any]) -> Optional[logging.Handler]:
    try:
        parent = os.path.dirname(log_file)
        if parent:
            os.makedirs(parent, mode=0o755, exist_ok=True)
        handler = logging.FileHandler(log_file, encoding="utf-8")
    except OSError as e:
        print(f"Warning: cannot open log file {log_file}: {e}", file=sys.stderr)
        return None
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                render_log_line,
            ],
        )
    )
    return handler


def configure_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    quiet: bool = False,
) -> None:
    """Route structlog through the stdlib root logger.

    Args:
        level: Minimum level for console and file output
        log_file: File that also receives every event; skipped if unwritable
        quiet: Only show errors on the console
    """
    shared: List[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt=TIME_FORMAT),
    ]

    structlog.configure(
        processors=shared
        + [
            structlog.stdlib.filter_by_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.ERROR if quiet else level)
    console.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
            ],
        )
    )

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.addHandler(console)
    if log_file:
        handler = _file_handler(log_file, shared)
        if handler is not None:
            handler.setLevel(level)
            root.addHandler(handler)
    root.setLevel(level)
