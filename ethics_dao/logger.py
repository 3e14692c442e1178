"""
Ethics DAO Logging

Process-wide logging for the ledger, tally and reveal packages. Records go
through the standard ``logging`` tree; the console handler is a ``rich``
handler with a ledger-aware highlighter, and a rotating file handler can be
switched on through ``ETHICS_DAO_LOG_FILE_OUTPUT``.

Formats come from ``ETHICS_DAO_LOG_FORMAT`` / ``ETHICS_DAO_LOG_DATE_FORMAT``.
A format that fails to render falls back to the packaged default with a
note on stderr.

    from ethics_dao.logger import get_logger
    logger = get_logger(__name__)
"""

import logging
import logging.handlers
import re
import sys
import threading
import time
from pathlib import Path
from typing import Optional, Tuple

from rich.console import Console
from rich.highlighter import RegexHighlighter
from rich.logging import RichHandler
from rich.theme import Theme

from .constants import (
    LOG_LEVEL,
    LOG_FORMAT,
    LOG_DATE_FORMAT,
    LOG_MAX_FILE_SIZE,
    LOG_BACKUP_COUNT,
    LOG_CONSOLE_HIGHLIGHTING,
    LOG_FILE_OUTPUT,
)


PROJECT_ROOT = Path(__file__).parent.parent
LOG_FILE_PATH = PROJECT_ROOT / "logs" / "ethics_dao.log"

LEDGER_THEME = {
    "ledger.address":        "cyan",
    "ledger.level_critical": "bold red reverse",
    "ledger.level_debug":    "bold dim",
    "ledger.level_error":    "bold red",
    "ledger.level_info":     "bold green",
    "ledger.level_warning":  "bold yellow",
    "ledger.logger_name":    "magenta",
    "ledger.proposal_id":    "bold white",
    "ledger.tag":            "bold magenta",
    "ledger.timestamp":      "bold cyan",
    "ledger.vote_kind":      "bold yellow",
}

_SAMPLE_RECORD = logging.LogRecord(
    name="ethics_dao", level=logging.INFO, pathname="", lineno=0,
    msg="sample", args=(), exc_info=None,
)


def _fallback(kind: str, value: str, reason: str) -> None:
    print(f"ethics_dao.logger: ignoring {kind} {value!r} ({reason})", file=sys.stderr)


def resolve_formats(
    log_format: Optional[str] = None,
    date_format: Optional[str] = None,
) -> Tuple[str, str]:
    """
    Return a usable ``(log_format, date_format)`` pair.

    A log format must pass ``logging.Formatter`` validation and render a
    sample record; a date format must contain at least one strftime
    directive and render. Blank or failing values are replaced by the
    packaged defaults.
    """
    default_fmt = str(LOG_FORMAT.default())
    default_datefmt = str(LOG_DATE_FORMAT.default())

    fmt = str(log_format) if log_format else default_fmt
    try:
        logging.Formatter(fmt=fmt, validate=True).format(_SAMPLE_RECORD)
    except (ValueError, KeyError, TypeError) as e:
        _fallback("log format", fmt, str(e))
        fmt = default_fmt

    datefmt = str(date_format) if date_format else default_datefmt
    if not re.search(r"%[A-Za-z]", datefmt):
        _fallback("date format", datefmt, "no strftime directive")
        datefmt = default_datefmt
    else:
        try:
            time.strftime(datefmt)
        except ValueError as e:
            _fallback("date format", datefmt, str(e))
            datefmt = default_datefmt

    return fmt, datefmt


class LogManager:
    """
    Singleton owner of the root logger's handlers.

    ``configure`` runs once per process; later calls are no-ops.
    """

    _instance: Optional["LogManager"] = None
    _lock: threading.Lock = threading.Lock()

    def __new__(cls) -> "LogManager":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._configured = False
        return cls._instance

    def configure(
        self,
        log_level: Optional[str] = None,
        log_file: Optional[Path] = None,
        console_output: bool = True,
        file_output: Optional[bool] = None,
    ) -> None:
        """
        Install handlers on the root logger.

        Args:
            log_level:      Level name; defaults to ``ETHICS_DAO_LOG_LEVEL``.
            log_file:       Rotating log path; defaults to ``logs/ethics_dao.log``.
            console_output: Attach the console handler.
            file_output:    Attach the file handler; defaults to
                            ``ETHICS_DAO_LOG_FILE_OUTPUT``.
        """
        with self._lock:
            if self._configured:
                return

            level = _level_number(log_level or LOG_LEVEL)
            root = logging.getLogger()
            root.setLevel(level)
            root.handlers.clear()

            # aiosqlite logs every statement at DEBUG
            logging.getLogger("aiosqlite").setLevel(logging.WARNING)

            fmt, datefmt = resolve_formats(LOG_FORMAT, LOG_DATE_FORMAT)
            formatter = TerminalSafeFormatter(fmt=fmt, datefmt=datefmt + " UTC")
            formatter.converter = time.gmtime

            handlers = []
            if console_output:
                handlers.append(_console_handler())
            if file_output is None:
                file_output = bool(LOG_FILE_OUTPUT)
            if file_output:
                path = log_file or LOG_FILE_PATH
                path.parent.mkdir(parents=True, exist_ok=True)
                handlers.append(logging.handlers.RotatingFileHandler(
                    filename=str(path),
                    maxBytes=LOG_MAX_FILE_SIZE,
                    backupCount=LOG_BACKUP_COUNT,
                    encoding="utf-8",
                ))

            for handler in handlers:
                handler.setLevel(level)
                handler.setFormatter(formatter)
                root.addHandler(handler)

            self._configured = True

    def get_logger(self, name: str) -> logging.Logger:
        if not self._configured:
            self.configure()
        return logging.getLogger(name)

    def set_level(self, log_level: str) -> None:
        """Change the level of the root logger and all its handlers."""
        level = _level_number(log_level)
        root = logging.getLogger()
        root.setLevel(level)
        for handler in root.handlers:
            handler.setLevel(level)

    @property
    def is_configured(self) -> bool:
        return self._configured


def _level_number(name: str) -> int:
    return getattr(logging, str(name).upper(), logging.INFO)


def _console_handler() -> logging.Handler:
    if not LOG_CONSOLE_HIGHLIGHTING:
        return logging.StreamHandler(sys.stdout)
    return RichHandler(
        console=Console(theme=Theme(LEDGER_THEME), highlight=False),
        highlighter=LedgerLogHighlighter(),
        keywords=[],
        rich_tracebacks=True,
        omit_repeated_times=False,
        show_path=False,
        show_time=False,
        show_level=False,
        markup=False,
    )


class TerminalSafeFormatter(logging.Formatter):
    """
    Strips ANSI escapes and control characters from formatted records.

    Proposal titles and identities are user input and end up in log lines
    (CWE-117). Tab and newline survive; carriage returns do not.
    """

    _escape_re = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b[@-Z\\-_]")
    _control_re = re.compile(r"[\x00-\x08\x0B-\x1F\x7F]")

    @classmethod
    def sanitize(cls, text: str) -> str:
        if not text:
            return text
        return cls._control_re.sub("", cls._escape_re.sub("", text))

    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))


class LedgerLogHighlighter(RegexHighlighter):
    """Colours addresses, proposal ids, vote kinds and levels."""

    base_style = "ledger."
    highlights = [
        r"(?P<address>\b0x[0-9a-fA-F]{6,}\b)",
        r"(?P<level_critical>\bCRITICAL\b)",
        r"(?P<level_debug>\bDEBUG\b)",
        r"(?P<level_error>\bERROR\b)",
        r"(?P<level_info>\bINFO\b)",
        r"\-\s+\w+\s+-\s+(?P<logger_name>[\w.]+)(?=\s-\s)",
        r"(?P<level_warning>\bWARNING\b)",
        r"(?P<proposal_id>\bprop-\d+-[0-9a-z]+\b)",
        r"(?P<tag>\[.*?\])",
        r"(?P<timestamp>^(.*?)UTC)",
        r"(?P<vote_kind>\b(APPROVE|REJECT|ABSTAIN)\b)",
    ]


_manager = LogManager()


def get_logger(name: str) -> logging.Logger:
    """Module logger; configures the process on first use."""
    return _manager.get_logger(name)


def set_log_level(level: str) -> None:
    """Apply a runtime log level (e.g. from the [logging] config section)."""
    _manager.set_level(level)


_manager.configure()
