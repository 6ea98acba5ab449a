"""
HTTrack Log Parser

Reads the header of hts-log.txt (tool version, launch time, seeds) and the
command line HTTrack echoes right after it. Also holds the HTTrack date
grammar shared with the cache parser, and a reader for hts-cache/doit.log
which carries the same command line when the log does not.
"""

from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, time
from typing import BinaryIO, Dict, Iterable, Optional, Tuple

from .errors import ParseError
from .logger import get_logger

# HTTrack's logs are always written in a single-byte encoding
LOG_ENCODING = "iso-8859-1"

# Locale-independent date grammar: "Mon, 01 Jan 2024 00:00:00".
# Groups: dow, day, month, year, hour, minute, second.
HTS_DATE_PATTERN = (
    r"(?P<dow>[A-Za-z]{3}), (?P<day>\d\d) (?P<month>[A-Za-z]{3}) (?P<year>\d{4}) "
    r"(?P<hour>\d\d):(?P<minute>\d\d):(?P<second>\d\d)"
)
HTS_DATE_RE = re.compile(HTS_DATE_PATTERN)

# Time-of-day column used by hts-cache/new.txt. Groups: hour, minute, second.
HTS_TIME_RE = re.compile(r"(?P<hour>\d\d):(?P<minute>\d\d):(?P<second>\d\d)")

MONTHS = {
    name: number for number, name in enumerate(
        ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
         "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"], 1)
}
WEEKDAYS = {"Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"}

# "HTTrack3.49-2+htsswf+htsjava launched on Tue, 10 Oct 2017 09:38:37 at http://example.org/ +*.png"
# Groups: tool, version, date, seeds.
HEADER_RE = re.compile(
    r"(?P<tool>[A-Za-z]+)(?P<version>\S+) launched on "
    r"(?P<date>\S+ \d\d \S+ \d{4} \d\d:\d\d:\d\d) at "
    r"(?P<seeds>.*)"
)

# "(httrack http://example.org/ -O "/data/crawl" +*.png )"
# Groups: args.
CMDLINE_RE = re.compile(r"\((?P<args>.*)\)\s*$")

# Output directory flag, "-O dir", '-O "dir"' or doit.log's "-O1 dir".
# Groups: quoted, bare.
OUTDIR_RE = re.compile(r'(?:^|\s)-O1?\s*(?:"(?P<quoted>[^"]*)"|(?P<bare>[^\s"]+))')

# "09:38:40	Warning: 	File has moved from http://a/b to http://a/b/"
# Groups: source, target.
MOVED_RE = re.compile(r"File has moved from (?P<source>\S+) to (?P<target>\S+)")

# Last line of doit.log. Groups: date.
DOIT_GENERATED_RE = re.compile(r"File generated automatically on (?P<date>.+?), do NOT edit")


def parse_hts_date(text: str) -> datetime:
    """
    Parse an HTTrack date such as "Mon, 01 Jan 2024 00:00:00".

    Month and day names are matched against fixed English abbreviations so the
    result never depends on the host locale. Trailing text (e.g. " GMT") is
    ignored.

    Raises:
        ParseError: if the text does not follow the grammar
    """
    match = HTS_DATE_RE.match(text.strip())
    if not match:
        raise ParseError(f"invalid HTTrack date: {text!r}", kind="date")

    month = MONTHS.get(match.group("month").title())
    if month is None or match.group("dow").title() not in WEEKDAYS:
        raise ParseError(f"invalid HTTrack date: {text!r}", kind="date")

    try:
        return datetime(
            int(match.group("year")), month, int(match.group("day")),
            int(match.group("hour")), int(match.group("minute")), int(match.group("second")),
        )
    except ValueError as e:
        raise ParseError(f"invalid HTTrack date: {text!r} ({e})", kind="date") from e


def parse_hts_time(text: str) -> time:
    """Parse the HH:MM:SS column of new.txt."""
    match = HTS_TIME_RE.fullmatch(text.strip())
    if not match:
        raise ParseError(f"invalid HTTrack time: {text!r}", kind="date")
    try:
        return time(int(match.group("hour")), int(match.group("minute")), int(match.group("second")))
    except ValueError as e:
        raise ParseError(f"invalid HTTrack time: {text!r} ({e})", kind="date") from e


def extract_output_dir(args: str) -> Optional[str]:
    """
    Find the -O output directory in an HTTrack command line.

    Returns:
        The directory with a trailing '/', or None if there is no -O flag
    """
    match = OUTDIR_RE.search(args)
    if not match:
        return None
    output_dir = match.group("quoted")
    if output_dir is None:
        output_dir = match.group("bare")
    if not output_dir:
        return None
    output_dir = output_dir.replace("\\", "/")
    if not output_dir.endswith("/"):
        output_dir += "/"
    return output_dir


def with_scheme(url: str) -> str:
    """HTTrack often logs URLs without a scheme."""
    if "://" in url:
        return url
    return "http://" + url


@dataclass(frozen=True)
class CrawlLog:
    """Metadata from the head of hts-log.txt."""

    tool: str
    version: str
    launch_time: datetime
    seeds: str
    output_dir: Optional[str] = None
    command_line: Optional[str] = None
    moved: Dict[str, str] = field(default_factory=dict)

    @property
    def seed_urls(self) -> Tuple[str, ...]:
        """Seed URLs without the +/- filter rules."""
        return tuple(with_scheme(token) for token in self.seeds.split()
                     if not token.startswith(("+", "-")))


class LogParser:
    """
    Parses hts-log.txt.

    Only the header line is mandatory; the command line echo and the
    "File has moved" notices are advisory.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or get_logger("log_parser")

    def parse(self, stream: BinaryIO) -> CrawlLog:
        """
        Read a CrawlLog from a binary hts-log.txt stream.

        Raises:
            ParseError: if the header line is missing or malformed
        """
        reader = io.TextIOWrapper(stream, encoding=LOG_ENCODING, newline=None)
        try:
            lines = (line.rstrip("\r\n") for line in reader)
            tool, version, launch_time, seeds = self._read_header(lines)
            command_line, output_dir = self._read_command_line(lines)
            moved = self._read_moved(lines)
        finally:
            reader.detach()

        self.logger.debug(f"{tool} {version} launched {launch_time.isoformat()} at {seeds}")
        if output_dir:
            self.logger.debug(f"HTTrack output directory: {output_dir}")

        return CrawlLog(
            tool=tool,
            version=version,
            launch_time=launch_time,
            seeds=seeds,
            output_dir=output_dir,
            command_line=command_line,
            moved=moved,
        )

    def _read_header(self, lines: Iterable[str]) -> Tuple[str, str, datetime, str]:
        for line in lines:
            if not line.strip():
                continue
            match = HEADER_RE.fullmatch(line.strip())
            if not match:
                raise ParseError(f"invalid hts-log.txt header: {line}", kind="header", line=line)
            try:
                launch_time = parse_hts_date(match.group("date"))
            except ParseError as e:
                raise ParseError(f"invalid hts-log.txt header: {e}", kind="header", line=line) from e
            return match.group("tool"), match.group("version"), launch_time, match.group("seeds")

        raise ParseError("missing hts-log.txt header line", kind="header")

    def _read_command_line(self, lines: Iterable[str]) -> Tuple[Optional[str], Optional[str]]:
        for line in lines:
            if not line.strip():
                continue
            match = CMDLINE_RE.match(line.strip())
            if not match:
                self.logger.debug(f"No command line echo in hts-log.txt: {line}")
                return None, None
            args = match.group("args").strip()
            # drop the program name
            parts = args.split(" ", 1)
            command_line = parts[1].strip() if len(parts) > 1 else ""
            return command_line, extract_output_dir(command_line)
        return None, None

    def _read_moved(self, lines: Iterable[str]) -> Dict[str, str]:
        moved: Dict[str, str] = {}
        for line in lines:
            match = MOVED_RE.search(line)
            if match:
                moved[with_scheme(match.group("source"))] = with_scheme(match.group("target"))
        return moved


def read_doit_log(stream: BinaryIO) -> Tuple[Optional[str], Optional[str], Optional[datetime]]:
    """
    Read hts-cache/doit.log.

    Returns:
        Tuple of (command_line, output_dir, generated_time); any may be None
    """
    text = stream.read().decode(LOG_ENCODING)
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if not lines:
        return None, None, None

    command_line = lines[0]
    generated = None
    for line in lines[1:]:
        match = DOIT_GENERATED_RE.search(line)
        if match:
            try:
                generated = parse_hts_date(match.group("date"))
            except ParseError:
                generated = None
    return command_line, extract_output_dir(command_line), generated
