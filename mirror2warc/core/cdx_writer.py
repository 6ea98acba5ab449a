"""
CDX Index Writer

Builds a CDX index over the response and resource records written to the
WARC files, one line per record, sorted on close.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from warcio.timeutils import datetime_to_timestamp

from ..utils.validators import canonicalize, escape_cdx_url
from .logger import get_logger
from .warc_writer import WrittenRecord, to_utc

# N=massaged url, b=date, a=original url, m=mime, s=status, k=digest,
# r=redirect, M=meta tags, S=record length, V=offset, g=file name
CDX_HEADER = " CDX N b a m s k r M S V g"
EMPTY = "-"


@dataclass(frozen=True)
class IndexLine:
    key: str
    timestamp: str
    url: str
    mime_type: str
    status: str
    digest: str
    redirect: str
    length: int
    offset: int
    filename: str

    @classmethod
    def from_written(cls, written: WrittenRecord) -> "IndexLine":
        record = written.record
        mime_type = record.content_type.split(";", 1)[0].strip() or EMPTY
        return cls(
            key=canonicalize(record.target_uri),
            timestamp=datetime_to_timestamp(to_utc(record.date)),
            url=escape_cdx_url(record.target_uri),
            mime_type=mime_type.replace(" ", ""),
            status=str(record.status) if record.has_http_headers else EMPTY,
            digest=record.payload_digest,
            redirect=escape_cdx_url(record.location) if record.location else EMPTY,
            length=written.length,
            offset=written.offset,
            filename=written.filename,
        )

    def to_cdx(self) -> str:
        return " ".join([
            self.key, self.timestamp, self.url, self.mime_type, self.status,
            self.digest, self.redirect, EMPTY, str(self.length), str(self.offset),
            self.filename,
        ])


class CdxWriter:
    """
    Collects IndexLines and writes the sorted CDX file when closed.

    Usable as a context manager; the file is written on every exit path so
    an aborted run still indexes what reached the WARC files.
    """

    def __init__(self, path: Path, logger: Optional[logging.Logger] = None):
        self.path = Path(path)
        self.logger = logger or get_logger("cdx_writer")
        self.lines: List[IndexLine] = []
        self.closed = False

    def add(self, written: WrittenRecord) -> Optional[IndexLine]:
        """Index a written record; warcinfo and request records are ignored."""
        if not written.record.is_indexed:
            return None
        line = IndexLine.from_written(written)
        self.lines.append(line)
        return line

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        # sort on the encoded form, like `LC_ALL=C sort`
        rendered = sorted((line.to_cdx() for line in self.lines), key=lambda s: s.encode("utf-8"))
        with open(self.path, "w", encoding="utf-8", newline="\n") as f:
            f.write(CDX_HEADER + "\n")
            for line in rendered:
                f.write(line + "\n")
        self.logger.info(f"Wrote CDX index {self.path} ({len(rendered)} lines)")

    def __enter__(self) -> "CdxWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
