"""
Exception types raised while converting an HTTrack crawl.

Header parse failures are always fatal. Cache line failures and correlation
failures are reported through the IssueTracker, which decides between
skip-with-warning and abort depending on the strict policy.
"""

from typing import Optional


class Mirror2WarcError(Exception):
    """Base class for conversion errors."""


class ConfigurationError(Mirror2WarcError, ValueError):
    """Invalid conversion settings."""


class ParseError(Mirror2WarcError):
    """
    Malformed HTTrack log or cache data.

    Attributes:
        kind: Which grammar failed ('header', 'cache', 'date', ...)
        line_number: 1-based line number within the source, if known
        line: The offending line, if known
    """

    def __init__(self, message: str, kind: str = "header",
                 line_number: Optional[int] = None, line: Optional[str] = None):
        self.kind = kind
        self.line_number = line_number
        self.line = line
        if line_number is not None:
            message = f"{message} (line {line_number})"
        super().__init__(message)


class CorrelationWarning(Mirror2WarcError):
    """A file in the crawl directory could not be mapped to a URL."""

    def __init__(self, path: str, message: str = "unable to determine original URL"):
        self.path = path
        super().__init__(f"{message}: {path}")
