#!/usr/bin/env python3
"""
Tests for mapping crawl files to URLs, and for mirrored-link handling.
"""

import re
from datetime import datetime

import pytest

from mirror2warc.core.cache_parser import CrawlRecord
from mirror2warc.core.correlator import Correlator
from mirror2warc.core.errors import CorrelationWarning
from mirror2warc.core.link_rewriter import LinkRewriter

WHEN = datetime(2024, 1, 1, 10, 0, 0)


def record(url, local_path="", status=200):
    return CrawlRecord(url=url, local_path=local_path, status=status, timestamp=WHEN)


def write(tmp_path, relpath, content="<html></html>"):
    path = tmp_path / relpath
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def test_cache_rule(tmp_path):
    fetched = record("https://example.org/", "example.org/index.html")
    correlator = Correlator([fetched])
    result = correlator.correlate(write(tmp_path, "example.org/index.html"), "example.org/index.html")
    assert result.url == "https://example.org/"
    assert result.record is fetched
    assert result.method == "cache"


def test_cache_rule_prefers_successful_fetch(tmp_path):
    moved = record("http://example.org/a", "example.org/a.html", status=301)
    fetched = record("http://example.org/a.html", "example.org/a.html")
    correlator = Correlator([moved, fetched])
    result = correlator.correlate(write(tmp_path, "example.org/a.html"), "example.org/a.html")
    assert result.record is fetched


def test_cache_rule_matches_absolute_path_suffix(tmp_path):
    fetched = record("http://example.org/a.css", "/somewhere/else/example.org/a.css")
    correlator = Correlator([fetched])
    result = correlator.correlate(write(tmp_path, "example.org/a.css"), "example.org/a.css")
    assert result.url == "http://example.org/a.css"
    assert result.method == "cache"


def test_filename_rule_with_port(tmp_path):
    correlator = Correlator([])
    result = correlator.correlate(write(tmp_path, "example.org_8080/a b/c.html"), "example.org_8080/a b/c.html")
    assert result.url == "http://example.org:8080/a%20b/c.html"
    assert result.record is None
    assert result.method == "filename"


def test_filename_rule_uses_crawl_scheme(tmp_path):
    correlator = Correlator([], seeds=["https://example.org/"])
    result = correlator.correlate(write(tmp_path, "example.org/page.html"), "example.org/page.html")
    assert result.url == "https://example.org/page.html"


def test_filename_rule_finds_directory_url(tmp_path):
    fetched = record("https://example.org/docs/")
    correlator = Correlator([fetched])
    result = correlator.correlate(write(tmp_path, "example.org/docs/index.html"), "example.org/docs/index.html")
    assert result.url == "https://example.org/docs/"
    assert result.record is fetched


def test_tool_artifacts_are_ignored(tmp_path):
    correlator = Correlator([])
    assert correlator.correlate(write(tmp_path, "hts-log.txt", ""), "hts-log.txt") is None
    assert correlator.correlate(write(tmp_path, "hts-cache/new.txt", ""), "hts-cache/new.txt") is None
    assert correlator.correlate(write(tmp_path, "index.html"), "index.html") is None


def test_exclusions_match_path_and_url(tmp_path):
    fetched = record("http://example.org/secret", "example.org/hidden.html")
    correlator = Correlator([fetched], exclusions=[re.compile(r"\.css$"), re.compile(r"/secret$")])
    assert correlator.correlate(write(tmp_path, "example.org/a.css"), "example.org/a.css") is None
    assert correlator.correlate(write(tmp_path, "example.org/hidden.html"), "example.org/hidden.html") is None


def test_unresolvable_file_raises(tmp_path):
    correlator = Correlator([])
    with pytest.raises(CorrelationWarning) as excinfo:
        correlator.correlate(write(tmp_path, "stray.bin"), "stray.bin")
    assert excinfo.value.path == "stray.bin"


def test_content_rule_reads_mirrored_from_comment(tmp_path):
    html = ("<html><head><!-- Mirrored from www.example.org/about.html by HTTrack Website Copier/3.x "
            "[XR&CO'2014], Mon, 01 Jan 2024 10:00:00 GMT --><title>About</title></head><body></body></html>")
    path = write(tmp_path, "mirror/about.html", html)
    with pytest.raises(CorrelationWarning):
        Correlator([]).correlate(path, "mirror/about.html")

    result = Correlator([], rewrite_links=True).correlate(path, "mirror/about.html")
    assert result.url == "http://www.example.org/about.html"
    assert result.method == "content"


def test_content_rule_uses_redirect_prefix(tmp_path):
    html = '<html><head><base href="http://mirror.example/site/www.example.org/about.html"></head></html>'
    path = write(tmp_path, "mirror/about.html", html)
    rewriter = LinkRewriter(redirect_prefix="http://mirror.example/site/")
    result = Correlator([], rewrite_links=True, link_rewriter=rewriter).correlate(path, "mirror/about.html")
    assert result.url == "http://www.example.org/about.html"


def test_find_original_url_canonical():
    html = b'<html><head><link rel="canonical" href="https://example.org/c"></head></html>'
    assert LinkRewriter().find_original_url(html) == "https://example.org/c"
    assert LinkRewriter().find_original_url(b"<html><body>nothing</body></html>") is None


def test_rewrite_links():
    table = {
        "example.org/index.html": "https://example.org/",
        "example.org/page.html": "https://example.org/page.html",
        "example.org/css/site.css": "https://example.org/css/site.css",
    }
    html = (b'<html><head><link rel="stylesheet" href="css/site.css"></head><body>'
            b'<a href="page.html#intro">Page</a><a href="./">Home</a>'
            b'<a href="missing.html">Missing</a><a href="mailto:a@example.org">Mail</a>'
            b'<a href="#top">Top</a></body></html>')
    rewritten = LinkRewriter(table).rewrite(html, "example.org/index.html").decode("utf-8")
    assert 'href="https://example.org/css/site.css"' in rewritten
    assert 'href="https://example.org/page.html#intro"' in rewritten
    assert 'href="https://example.org/"' in rewritten
    assert 'href="missing.html"' in rewritten
    assert 'href="mailto:a@example.org"' in rewritten
    assert 'href="#top"' in rewritten


def test_rewrite_without_matches_returns_input():
    html = b"<html><body><a href='http://other.example/'>x</a></body></html>"
    assert LinkRewriter({}).rewrite(html, "example.org/index.html") is html
