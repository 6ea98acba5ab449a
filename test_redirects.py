#!/usr/bin/env python3
"""
Tests for synthetic redirect records.
"""

from datetime import datetime, timezone
from pathlib import Path

from warcio.archiveiterator import ArchiveIterator

from mirror2warc.core.cache_parser import CrawlRecord
from mirror2warc.core.correlator import Correlation
from mirror2warc.core.redirects import RedirectSynthesizer
from mirror2warc.core.warc_writer import RecordType, WarcFileSet, make_warcinfo_record

LAUNCH = datetime(2024, 1, 1, 10, 0, 0)
PREFIX = "http://mirror.example/archive/"


def correlation(relpath, url, record=None):
    return Correlation(path=Path("/crawl") / relpath, relpath=relpath, url=url, record=record)


def test_single_redirect_written_and_read_back(tmp_path):
    synthesizer = RedirectSynthesizer(PREFIX, LAUNCH, tz=timezone.utc)
    records = synthesizer.synthesize_for(
        correlation("origin.example/page.html", "http://origin.example/page.html"))
    assert len(records) == 1

    with WarcFileSet(tmp_path, "redirects-%d.warc.gz", 1 << 20,
                     lambda name: make_warcinfo_record(name, ["software: test"])) as warcs:
        for record in records:
            warcs.write(record)

    with open(warcs.files[0], "rb") as f:
        responses = [(rec.rec_headers.get_header("WARC-Target-URI"),
                      rec.http_headers.get_statuscode(),
                      rec.http_headers.get_header("Location"),
                      rec.content_stream().read())
                     for rec in ArchiveIterator(f) if rec.rec_type == "response"]

    assert responses == [(
        "http://mirror.example/archive/origin.example/page.html",
        "301",
        "http://origin.example/page.html",
        b"",
    )]


def test_index_file_also_redirects_directory_url():
    synthesizer = RedirectSynthesizer("http://mirror.example/archive", LAUNCH, tz=timezone.utc)
    records = synthesizer.synthesize_for(correlation("origin.example/docs/index.html", "http://origin.example/docs/"))
    assert [r.target_uri for r in records] == [
        "http://mirror.example/archive/origin.example/docs/index.html",
        "http://mirror.example/archive/origin.example/docs/",
    ]
    assert all(r.location == "http://origin.example/docs/" for r in records)
    assert all(r.record_type == RecordType.RESPONSE and r.status == 301 for r in records)


def test_identical_urls_are_skipped():
    synthesizer = RedirectSynthesizer("http://", LAUNCH, tz=timezone.utc)
    assert synthesizer.synthesize_for(correlation("origin.example/page.html", "http://origin.example/page.html")) == []


def test_rewritten_urls_are_quoted():
    synthesizer = RedirectSynthesizer(PREFIX, LAUNCH)
    assert synthesizer.rewritten_urls(correlation("origin.example/a b.html", "http://origin.example/a%20b.html")) == [
        "http://mirror.example/archive/origin.example/a%20b.html"]


def test_timestamp_from_record_or_launch_time():
    synthesizer = RedirectSynthesizer(PREFIX, LAUNCH, tz=timezone.utc)
    fetched = CrawlRecord(url="http://origin.example/a.html", local_path="origin.example/a.html",
                          status=200, timestamp=datetime(2024, 1, 1, 10, 5, 0))
    [with_record] = synthesizer.synthesize_for(correlation("origin.example/a.html", fetched.url, fetched))
    [without] = synthesizer.synthesize_for(correlation("origin.example/b.html", "http://origin.example/b.html"))
    assert with_record.date == datetime(2024, 1, 1, 10, 5, 0, tzinfo=timezone.utc)
    assert without.date == datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
