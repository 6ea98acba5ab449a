"""
HTTrack Cache Record Parser

Parses hts-cache/new.txt, the per-URL transfer log HTTrack writes during a
crawl. Each data line becomes an immutable CrawlRecord.

Line format (tab separated):
    time  size/remote  flags  status  statusmsg  mime  etag|date  url  localfile  (from url)
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import BinaryIO, Iterator, Mapping, Optional, Union
from urllib.parse import unquote

from .errors import ParseError
from .log_parser import LOG_ENCODING, parse_hts_date, parse_hts_time, with_scheme
from .logger import get_logger

MIN_FIELDS = 9
MIDNIGHT_SLACK = timedelta(hours=12)


@dataclass(frozen=True)
class CrawlRecord:
    """One URL fetched by HTTrack."""

    url: str
    local_path: str
    status: int
    timestamp: datetime
    mime_type: Optional[str] = None
    last_modified: Optional[datetime] = None
    referrer: Optional[str] = None
    redirect_target: Optional[str] = None

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status < 400 and self.redirect_target is not None


class CacheParser:
    """
    Parses new.txt into CrawlRecords.

    Malformed lines are yielded as ParseError instances instead of records so
    the caller can apply its own strict/lenient policy and keep reading.
    """

    def __init__(self,
                 launch_time: datetime,
                 output_dir: Optional[str] = None,
                 redirects: Optional[Mapping[str, str]] = None,
                 logger: Optional[logging.Logger] = None):
        """
        Args:
            launch_time: Crawl start, supplies the date for new.txt's time column
            output_dir: HTTrack -O directory; local paths under it become relative
            redirects: "File has moved" notices from hts-log.txt
            logger: Logger to use
        """
        self.launch_time = launch_time
        self.output_dir = output_dir
        self.redirects = redirects or {}
        self.logger = logger or get_logger("cache_parser")

    def parse(self, stream: BinaryIO) -> Iterator[Union[CrawlRecord, ParseError]]:
        reader = io.TextIOWrapper(stream, encoding=LOG_ENCODING, newline=None)
        current = self.launch_time
        try:
            for line_number, raw in enumerate(reader, 1):
                line = raw.rstrip("\r\n")
                if not line.strip():
                    continue
                if line_number == 1 and line.startswith("date\t"):
                    continue
                try:
                    record = self.parse_line(line, current, line_number)
                except ParseError as e:
                    yield e
                    continue
                current = max(current, record.timestamp)
                yield record
        finally:
            reader.detach()

    def parse_line(self, line: str, previous: datetime, line_number: Optional[int] = None) -> CrawlRecord:
        """
        Parse one data line of new.txt.

        Args:
            line: The line without its terminator
            previous: Timestamp of the preceding record (or the launch time);
                a time of day earlier than it means the crawl crossed midnight

        Raises:
            ParseError: on a malformed line
        """
        fields = line.split("\t")
        if len(fields) < MIN_FIELDS:
            raise ParseError(f"expected at least {MIN_FIELDS} fields, got {len(fields)}",
                             kind="cache", line_number=line_number, line=line)

        try:
            time_of_day = parse_hts_time(fields[0])
        except ParseError as e:
            raise ParseError(str(e), kind="cache", line_number=line_number, line=line) from e

        timestamp = datetime.combine(previous.date(), time_of_day)
        # parallel connections finish slightly out of order; only a large
        # backwards jump means midnight has passed
        if timestamp < previous - MIDNIGHT_SLACK:
            timestamp += timedelta(days=1)

        try:
            status = int(fields[3])
        except ValueError as e:
            raise ParseError(f"invalid status code {fields[3]!r}",
                             kind="cache", line_number=line_number, line=line) from e

        url = fields[7].strip()
        if not url:
            raise ParseError("missing URL", kind="cache", line_number=line_number, line=line)
        url = with_scheme(url)

        local_path = self._relativize(fields[8].strip())
        mime_type = fields[5].strip() or None
        referrer = self._parse_referrer(fields[9]) if len(fields) > 9 else None

        redirect_target = None
        if 300 <= status < 400:
            redirect_target = self.redirects.get(url)

        return CrawlRecord(
            url=url,
            local_path=local_path,
            status=status,
            timestamp=timestamp,
            mime_type=mime_type,
            last_modified=self._parse_last_modified(fields[6]),
            referrer=referrer,
            redirect_target=redirect_target,
        )

    def _relativize(self, path: str) -> str:
        path = path.replace("\\", "/")
        if self.output_dir and path.startswith(self.output_dir):
            return path[len(self.output_dir):]
        return path

    def _parse_last_modified(self, value: str) -> Optional[datetime]:
        value = value.strip()
        if not value.startswith("date:"):
            return None
        try:
            return parse_hts_date(unquote(value[len("date:"):]))
        except ParseError:
            self.logger.debug(f"Ignoring unparseable date column: {value}")
            return None

    @staticmethod
    def _parse_referrer(value: str) -> Optional[str]:
        value = value.strip()
        if value.startswith("(from") and value.endswith(")"):
            value = value[len("(from"):-1].strip()
        return with_scheme(value) if value else None
