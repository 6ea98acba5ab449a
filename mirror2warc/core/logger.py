"""
Logging and Issue Tracking

This module provides logging configuration for the mirror2warc converter and
the IssueTracker that applies the strict/lenient policy to recoverable
problems (malformed cache lines, files with no known URL).
"""

import logging
import logging.handlers
import sys
from datetime import datetime
from typing import Optional, Dict, Any, List

from .errors import Mirror2WarcError

APP_NAME = "mirror2warc"

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

# Verbosity index -> logging level, quietest first
LOG_LEVELS = [logging.ERROR, logging.WARNING, logging.INFO, logging.DEBUG, TRACE]
DEFAULT_VERBOSITY = LOG_LEVELS.index(logging.INFO)


def clamp_verbosity(verbosity: int) -> int:
    """Clamp a verbosity index to the available levels."""
    return max(0, min(verbosity, len(LOG_LEVELS) - 1))


def level_for_verbosity(verbosity: int) -> int:
    return LOG_LEVELS[clamp_verbosity(verbosity)]


def initialize_logging(verbosity: int = DEFAULT_VERBOSITY,
                       log_file: Optional[str] = None) -> logging.Logger:
    """
    Set up the application logger with a console handler and, optionally,
    a rotating file handler.

    Args:
        verbosity: Index into LOG_LEVELS (0=error ... 4=trace)
        log_file: Path of a log file to write in addition to the console

    Returns:
        Configured application logger
    """
    level = level_for_verbosity(verbosity)
    logger = logging.getLogger(APP_NAME)
    logger.setLevel(level)

    # Re-initialisation replaces handlers instead of duplicating them
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_formatter = logging.Formatter(
        '%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%H:%M:%S'
    )
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    if log_file:
        detailed_formatter = logging.Formatter(
            '%(asctime)s | %(name)s | %(levelname)s | %(funcName)s:%(lineno)d | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setLevel(min(level, logging.DEBUG))
        file_handler.setFormatter(detailed_formatter)
        logger.addHandler(file_handler)
        logger.setLevel(min(level, logging.DEBUG))

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger under the application namespace.

    Args:
        name: Name of the module/component (optional)
    """
    if name:
        return logging.getLogger(f"{APP_NAME}.{name}")
    return logging.getLogger(APP_NAME)


class IssueTracker:
    """
    Records recoverable problems and applies the failure policy.

    Under the lenient policy an issue is logged as a warning and the caller
    skips the offending item. Under the strict policy the first issue is
    re-raised and ends the run.
    """

    def __init__(self, logger: logging.Logger, strict: bool = False):
        self.logger = logger
        self.strict = strict
        self.warnings: List[Dict[str, Any]] = []

    def warn(self,
             issue: Mirror2WarcError,
             context: Optional[str] = None,
             url: Optional[str] = None) -> str:
        """
        Report an issue.

        Args:
            issue: The problem, as an exception instance
            context: Where it happened (e.g. 'new.txt', a file path)
            url: URL being processed, if any

        Returns:
            Warning ID for tracking

        Raises:
            Mirror2WarcError: the issue itself, when strict
        """
        warning_id = f"WARN_{len(self.warnings) + 1:03d}"

        self.warnings.append({
            'id': warning_id,
            'timestamp': datetime.now(),
            'type': type(issue).__name__,
            'message': str(issue),
            'context': context,
            'url': url,
        })

        log_message = f"[{warning_id}] {issue}"
        if context:
            log_message += f" (Context: {context})"
        if url:
            log_message += f" (URL: {url})"

        if self.strict:
            self.logger.error(log_message + " [strict mode, aborting]")
            raise issue

        self.logger.warning(log_message)
        return warning_id

    def get_summary(self) -> Dict[str, Any]:
        """
        Get a summary of all warnings.

        Returns:
            Dictionary with warning statistics
        """
        type_counts: Dict[str, int] = {}
        for warning in self.warnings:
            type_counts[warning['type']] = type_counts.get(warning['type'], 0) + 1
        return {
            'total_warnings': len(self.warnings),
            'warning_types': type_counts,
            'recent_warnings': self.warnings[-5:],
        }
