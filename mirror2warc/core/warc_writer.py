"""
WARC Writer

Frames ArchiveRecords as WARC/1.0 records (via warcio) and writes them into a
rolling set of output files. Each file set is a small state machine:

    Closed --write()--> Open(sequence, bytes_written)
    Open   --write() past size target--> Open(sequence + 1, 0)
    Open   --close()--> Closed

Every file starts with a warcinfo record, and a record is never split across
files.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from enum import Enum
from http import HTTPStatus
from io import BytesIO
from pathlib import Path
from typing import BinaryIO, Callable, List, Optional, Tuple

from warcio.statusandheaders import StatusAndHeaders
from warcio.timeutils import datetime_to_iso_date
from warcio.warcwriter import BufferWARCWriter

from ..utils.file_manager import DEFAULT_MIME_TYPE, format_warc_name
from .logger import TRACE, get_logger

WARC_VERSION = "1.0"
WARC_FIELDS_TYPE = "application/warc-fields"


class RecordType(Enum):
    """WARC-Type values this converter knows about."""

    WARCINFO = "warcinfo"
    REQUEST = "request"
    RESPONSE = "response"
    RESOURCE = "resource"
    REVISIT = "revisit"


class Compression(Enum):
    NONE = "none"
    GZIP = "gzip"


def make_record_id() -> str:
    return f"<urn:uuid:{uuid.uuid4()}>"


def to_utc(moment: datetime) -> datetime:
    """Aware UTC datetime; naive values are taken as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def localize(moment: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """
    Attach a timezone to a naive HTTrack timestamp and convert it to UTC.

    Args:
        moment: Timestamp as logged by HTTrack (local wall-clock time)
        tz: Zone the crawl ran in; None means the host's local zone
    """
    if moment.tzinfo is None:
        moment = moment.astimezone() if tz is None else moment.replace(tzinfo=tz)
    return moment.astimezone(timezone.utc)


def reason_phrase(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Unknown"


@dataclass(frozen=True)
class ArchiveRecord:
    """
    A record to be written to a WARC file.

    Attributes:
        record_type: WARC-Type
        target_uri: WARC-Target-URI (empty for warcinfo)
        date: Capture time; converted to UTC for WARC-Date
        body: Payload bytes (the content block for non-HTTP records)
        content_type: MIME type of the payload
        status: HTTP status, response records only
        http_headers: HTTP header lines, response records only
        warc_headers: Additional named WARC headers (e.g. WARC-Filename)
        record_id: WARC-Record-ID, unique within a run
    """

    record_type: RecordType
    target_uri: str
    date: datetime
    body: bytes = b""
    content_type: str = DEFAULT_MIME_TYPE
    status: Optional[int] = None
    http_headers: Tuple[Tuple[str, str], ...] = ()
    warc_headers: Tuple[Tuple[str, str], ...] = ()
    record_id: str = field(default_factory=make_record_id)

    @property
    def is_indexed(self) -> bool:
        """Only captured content goes into the CDX index."""
        return self.record_type in (RecordType.RESPONSE, RecordType.RESOURCE)

    @property
    def has_http_headers(self) -> bool:
        return self.record_type == RecordType.RESPONSE and self.status is not None

    def http_header(self, name: str) -> Optional[str]:
        name = name.lower()
        for key, value in self.http_headers:
            if key.lower() == name:
                return value
        return None

    @property
    def location(self) -> Optional[str]:
        return self.http_header("Location")

    @property
    def payload_digest(self) -> str:
        """SHA-1 of the payload, base32 encoded as used in CDX files."""
        return base64.b32encode(hashlib.sha1(self.body).digest()).decode("ascii")


@dataclass(frozen=True)
class WrittenRecord:
    """Where a record ended up."""

    record: ArchiveRecord
    filename: str
    offset: int
    length: int


def make_warcinfo_record(filename: str, fields: List[str], date: Optional[datetime] = None) -> ArchiveRecord:
    """
    Build the warcinfo record that opens every WARC file.

    Args:
        filename: Name of the WARC file it will head
        fields: "key: value" lines, written verbatim
        date: Record date (default: now)
    """
    body = "".join(line.rstrip("\r\n") + "\r\n" for line in fields).encode("utf-8")
    return ArchiveRecord(
        record_type=RecordType.WARCINFO,
        target_uri="",
        date=date or datetime.now(timezone.utc),
        body=body,
        content_type=WARC_FIELDS_TYPE,
        warc_headers=(("WARC-Filename", filename),),
    )


def serialize_record(record: ArchiveRecord, compression: Compression = Compression.GZIP) -> bytes:
    """
    Frame a record as WARC bytes.

    With gzip compression the result is a single gzip member, so every record
    can be decompressed on its own.
    """
    writer = BufferWARCWriter(gzip=compression == Compression.GZIP, warc_version=WARC_VERSION)

    warc_headers = {
        "WARC-Record-ID": record.record_id,
        "WARC-Date": datetime_to_iso_date(to_utc(record.date)),
    }
    warc_headers.update(record.warc_headers)

    http_headers = None
    warc_content_type = record.content_type
    if record.has_http_headers:
        status_line = f"{record.status} {reason_phrase(record.status)}"
        http_headers = StatusAndHeaders(status_line, list(record.http_headers), protocol="HTTP/1.1")
        warc_content_type = "application/http; msgtype=response"

    warc_record = writer.create_warc_record(
        record.target_uri or None,
        record.record_type.value,
        payload=BytesIO(record.body),
        length=len(record.body),
        warc_content_type=warc_content_type,
        warc_headers_dict=warc_headers,
        http_headers=http_headers,
    )
    writer.write_record(warc_record)
    return writer.get_contents()


@dataclass
class OpenFile:
    """The Open state of a WarcFileSet."""

    sequence: int
    path: Path
    handle: BinaryIO
    bytes_written: int = 0
    content_records: int = 0


class WarcFileSet:
    """
    A sequence of WARC files sharing a name pattern and size target.

    Callers hand over finished ArchiveRecords; the set decides which file
    they land in.
    """

    def __init__(self,
                 directory: Path,
                 name_pattern: str,
                 size_target: int,
                 warcinfo_factory: Callable[[str], ArchiveRecord],
                 compression: Compression = Compression.GZIP,
                 logger: Optional[logging.Logger] = None):
        """
        Args:
            directory: Where files are created
            name_pattern: File name with one sequence placeholder ('crawl-%d.warc.gz')
            size_target: Roll over once a record would push a file past this size
            warcinfo_factory: Builds the warcinfo record for a given file name
            compression: Per-record gzip or none
            logger: Logger to use
        """
        self.directory = Path(directory)
        self.name_pattern = name_pattern
        self.size_target = size_target
        self.warcinfo_factory = warcinfo_factory
        self.compression = compression
        self.logger = logger or get_logger("warc_writer")
        self.files: List[Path] = []
        self._next_sequence = 0
        self._current: Optional[OpenFile] = None

    @property
    def is_open(self) -> bool:
        return self._current is not None

    @property
    def current(self) -> Optional[OpenFile]:
        return self._current

    def write(self, record: ArchiveRecord) -> WrittenRecord:
        """
        Append a record, rolling over to the next file first if it would not fit.

        Returns:
            The file name, offset and length the record was written with
        """
        data = serialize_record(record, self.compression)

        if self._current is None:
            self._open_next()
        elif (self._current.content_records > 0
              and self._current.bytes_written + len(data) > self.size_target):
            self.logger.debug(f"{self._current.path.name} reached size target, rolling over")
            self._close_current()
            self._open_next()

        current = self._current
        offset = current.bytes_written
        self._append(data)
        current.content_records += 1
        self.logger.log(TRACE, f"Wrote {record.record_type.value} {record.target_uri} "
                           f"to {current.path.name} @ {offset} ({len(data)} bytes)")
        return WrittenRecord(record=record, filename=current.path.name, offset=offset, length=len(data))

    def close(self) -> None:
        if self._current is not None:
            self._close_current()

    def __enter__(self) -> "WarcFileSet":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _open_next(self) -> None:
        name = format_warc_name(self.name_pattern, self._next_sequence)
        path = self.directory / name
        handle = open(path, "wb")
        self._current = OpenFile(sequence=self._next_sequence, path=path, handle=handle)
        self._next_sequence += 1
        self.files.append(path)
        self.logger.info(f"Writing {path}")
        self._append(serialize_record(self.warcinfo_factory(name), self.compression))

    def _append(self, data: bytes) -> None:
        # one write per record, then flush, so an abort never leaves half a record
        self._current.handle.write(data)
        self._current.handle.flush()
        self._current.bytes_written += len(data)

    def _close_current(self) -> None:
        current = self._current
        self._current = None
        current.handle.close()
        self.logger.debug(f"Closed {current.path.name}: {current.content_records} records, "
                          f"{current.bytes_written:,} bytes")
