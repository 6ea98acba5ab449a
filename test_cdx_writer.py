#!/usr/bin/env python3
"""
Tests for CDX index generation.
"""

import base64
import hashlib
from datetime import datetime, timezone

from mirror2warc.core.cdx_writer import CDX_HEADER, CdxWriter, IndexLine
from mirror2warc.core.warc_writer import ArchiveRecord, RecordType, WrittenRecord, make_warcinfo_record

DATE = datetime(2024, 1, 1, 10, 0, 1, tzinfo=timezone.utc)


def written(record, offset=0, length=100, filename="crawl-0.warc.gz"):
    return WrittenRecord(record=record, filename=filename, offset=offset, length=length)


def test_response_line():
    body = b"<html>hi</html>"
    record = ArchiveRecord(record_type=RecordType.RESPONSE, target_uri="https://Example.org/a b.html",
                           date=DATE, body=body, content_type="text/html; charset=utf-8", status=200,
                           http_headers=(("Content-Type", "text/html; charset=utf-8"),))
    line = IndexLine.from_written(written(record, offset=512, length=321))
    assert line.key == "org,example)/a%20b.html"
    assert line.timestamp == "20240101100001"
    assert line.url == "https://Example.org/a%20b.html"
    assert line.mime_type == "text/html"
    assert line.status == "200"
    assert line.digest == base64.b32encode(hashlib.sha1(body).digest()).decode("ascii")
    assert line.redirect == "-"
    assert line.to_cdx().split(" ")[-4:] == ["-", "321", "512", "crawl-0.warc.gz"]


def test_resource_and_redirect_lines():
    resource = ArchiveRecord(record_type=RecordType.RESOURCE, target_uri="http://example.org/a.png",
                             date=DATE, body=b"PNG", content_type="image/png")
    assert IndexLine.from_written(written(resource)).status == "-"

    redirect = ArchiveRecord(record_type=RecordType.RESPONSE, target_uri="http://mirror.example/a",
                             date=DATE, status=301, content_type="text/html",
                             http_headers=(("Location", "http://example.org/a"),))
    line = IndexLine.from_written(written(redirect))
    assert line.status == "301"
    assert line.redirect == "http://example.org/a"


def test_writer_sorts_and_skips_unindexed_records(tmp_path):
    path = tmp_path / "index.cdx"
    with CdxWriter(path) as cdx:
        assert cdx.add(written(make_warcinfo_record("crawl-0.warc.gz", ["software: test"]))) is None
        for url in ("http://example.org/z", "http://example.org/a", "http://alpha.example/"):
            cdx.add(written(ArchiveRecord(record_type=RecordType.RESOURCE, target_uri=url,
                                          date=DATE, content_type="text/plain")))

    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines[0] == CDX_HEADER
    assert len(lines) == 4
    assert lines[1:] == sorted(lines[1:])
    assert lines[1].startswith("example,alpha)/ ")
    assert all(len(line.split(" ")) == 11 for line in lines[1:])


def test_empty_index_has_header(tmp_path):
    path = tmp_path / "index.cdx"
    cdx = CdxWriter(path)
    cdx.close()
    cdx.close()
    assert path.read_text(encoding="utf-8") == CDX_HEADER + "\n"
