"""
govkit Logging
==============

One place that configures logging for the library, the node and the CLI.
Console output goes through a rich handler that colours proposal states,
addresses and hashes; a rotating file under ``logs/`` keeps the plain text.

Usage:
    >>> from govkit.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Proposal %s → Active", proposal_id)
"""

import logging
import logging.handlers
import re
import sys
import threading
import time
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.highlighter import RegexHighlighter
from rich.logging import RichHandler
from rich.theme import Theme

from .constants import (
    LOG_BACKUP_COUNT,
    LOG_CONSOLE_HIGHLIGHTING,
    LOG_DATE_FORMAT,
    LOG_FILE_OUTPUT,
    LOG_FORMAT,
    LOG_LEVEL,
    LOG_MAX_FILE_SIZE,
)


LOG_FILE_PATH = Path(__file__).parent.parent / "logs" / "govkit.log"

# Library loggers that are noisy at INFO
QUIET_LOGGERS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "uvicorn.access": logging.WARNING,
    "uvicorn": logging.ERROR,
    "uvicorn.error": logging.ERROR,
}

GOVKIT_THEME = Theme({
    "govkit.address":      "cyan",
    "govkit.arrow":        "bold yellow",
    "govkit.hash":         "bright_black",
    "govkit.level_debug":  "dim",
    "govkit.level_info":   "bold green",
    "govkit.level_warn":   "bold yellow",
    "govkit.level_error":  "bold red",
    "govkit.module":       "magenta",
    "govkit.proposal":     "bold white",
    "govkit.state_open":   "bold yellow",
    "govkit.state_passed": "bold green",
    "govkit.state_failed": "bold red",
    "govkit.time":         "bold cyan",
})


class LogManager:
    """
    Process-wide logging setup.

    A single instance exists per process; ``configure`` installs handlers on
    the root logger the first time it runs and is a no-op afterwards.
    """

    _instance: Optional["LogManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "LogManager":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    instance = super().__new__(cls)
                    instance._configured = False
                    cls._instance = instance
        return cls._instance

    @staticmethod
    def checked_format(log_format: str) -> str:
        """Return ``log_format`` if it renders a sample record, else the default."""
        try:
            logging.Formatter(fmt=str(log_format)).format(
                logging.makeLogRecord({"msg": "sample", "levelname": "INFO", "name": "govkit"})
            )
            return str(log_format)
        except (ValueError, KeyError, TypeError) as e:
            print(f"govkit.logger: bad LOG_FORMAT ({e}), using default", file=sys.stderr)
            return str(LOG_FORMAT.default())

    @staticmethod
    def checked_date_format(date_format: str) -> str:
        """Return ``date_format`` if it contains a strftime directive, else the default."""
        if date_format and re.search(r"%[A-Za-z]", str(date_format)):
            return str(date_format)
        print("govkit.logger: bad LOG_DATE_FORMAT, using default", file=sys.stderr)
        return str(LOG_DATE_FORMAT.default())

    def configure(
        self,
        log_level: Optional[str] = None,
        log_file: Optional[Path] = None,
        console_output: bool = True,
        file_output: Optional[bool] = None,
    ) -> None:
        """
        Install console and file handlers on the root logger.

        Args:
            log_level: level name, defaults to ``LOG_LEVEL`` from the environment.
            log_file: rotating log path, defaults to ``logs/govkit.log``.
            console_output: attach a stderr handler.
            file_output: attach the rotating file handler, defaults to ``LOG_FILE_OUTPUT``.
        """
        with self._lock:
            if self._configured:
                return

            level = getattr(logging, str(log_level or LOG_LEVEL).upper(), logging.INFO)
            root = logging.getLogger()
            root.setLevel(level)
            root.handlers.clear()
            for name, quiet_level in QUIET_LOGGERS.items():
                logging.getLogger(name).setLevel(quiet_level)

            # Timestamps are UTC
            formatter = TerminalSafeFormatter(
                fmt=self.checked_format(LOG_FORMAT),
                datefmt=self.checked_date_format(LOG_DATE_FORMAT) + " UTC",
            )
            formatter.converter = time.gmtime

            if console_output:
                if LOG_CONSOLE_HIGHLIGHTING:
                    console_handler = RichHandler(
                        console=Console(theme=GOVKIT_THEME, highlight=False, stderr=True),
                        highlighter=GovernanceLogHighlighter(),
                        keywords=[],
                        markup=False,
                        rich_tracebacks=True,
                        show_level=False,
                        show_path=False,
                        show_time=False,
                    )
                else:
                    console_handler = logging.StreamHandler(sys.stderr)
                console_handler.setLevel(level)
                console_handler.setFormatter(formatter)
                root.addHandler(console_handler)

            if file_output is None:
                file_output = bool(LOG_FILE_OUTPUT)
            if file_output:
                path = log_file or LOG_FILE_PATH
                path.parent.mkdir(parents=True, exist_ok=True)
                file_handler = logging.handlers.RotatingFileHandler(
                    filename=str(path),
                    maxBytes=LOG_MAX_FILE_SIZE,
                    backupCount=LOG_BACKUP_COUNT,
                    encoding="utf-8",
                )
                file_handler.setLevel(level)
                file_handler.setFormatter(formatter)
                root.addHandler(file_handler)

            self._configured = True

    def get_logger(self, name: str) -> logging.Logger:
        if not self._configured:
            self.configure()
        return logging.getLogger(name)

    @property
    def is_configured(self) -> bool:
        return self._configured


class TerminalSafeFormatter(logging.Formatter):
    """
    Formatter that drops ANSI escapes and control characters.

    Descriptions and vote reasons come from whoever submits them and are
    logged verbatim, so they must not be able to rewrite the terminal.
    """

    _unsafe = re.compile(
        r"\x1b\[[0-?]*[ -/]*[@-~]"        # CSI sequences
        r"|\x1b[@-Z\\-_]"                 # two-byte escapes
        r"|[\x00-\x08\x0B-\x1F\x7F]"      # controls except tab and newline
    )

    @classmethod
    def sanitize(cls, text: str) -> str:
        return cls._unsafe.sub("", text) if text else text

    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))


class GovernanceLogHighlighter(RegexHighlighter):
    """Colours lifecycle states, proposal ids, addresses and hashes."""

    base_style = "govkit."
    highlights = [
        r"(?P<time>^\S+ UTC)",
        r"(?P<level_debug>\bDEBUG\b)",
        r"(?P<level_info>\bINFO\b)",
        r"(?P<level_warn>\bWARNING\b)",
        r"(?P<level_error>\b(ERROR|CRITICAL)\b)",
        r"\s-\s(?P<module>govkit(\.\w+)+)\s-\s",
        r"(?P<arrow>→)",
        r"(?P<state_open>\b(Pending|Active|Queued)\b)",
        r"(?P<state_passed>\b(Succeeded|Executed)\b)",
        r"(?P<state_failed>\b(Canceled|Defeated|Expired)\b)",
        r"(?P<proposal>proposal #?\d{6,}\b)",
        r"(?P<hash>\b0x[0-9a-fA-F]{64}\b)",
        r"(?P<address>\b0x[0-9a-fA-F]{40}\b)",
    ]


_manager = LogManager()


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name`` with the govkit handlers installed."""
    return _manager.get_logger(name)


_manager.configure()
