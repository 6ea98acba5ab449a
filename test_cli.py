#!/usr/bin/env python3
"""
Tests for the command line entry point and exit codes.
"""

import logging

import pytest
from warcio.archiveiterator import ArchiveIterator

from conftest import CACHE_LINES, build_crawl
from mirror2warc.cli import main
from mirror2warc.core.logger import APP_NAME


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logger = logging.getLogger(APP_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


def test_missing_crawl_dir_argument(capsys):
    assert main([]) == 1
    err = capsys.readouterr().err
    assert "usage:" in err
    assert "--help" in err


def test_extra_positional_argument(tmp_path):
    assert main([str(tmp_path / "a"), str(tmp_path / "b")]) == 1


def test_unknown_option(tmp_path):
    assert main(["--no-such-option", str(tmp_path)]) == 1


def test_help(capsys):
    assert main(["--help"]) == 0
    out = capsys.readouterr().out
    assert "--redirect-prefix" in out
    assert "--rewrite-links" in out
    assert "crawl-%d.warc.gz" in out


def test_short_help(capsys):
    assert main(["-h"]) == 0
    assert "usage:" in capsys.readouterr().out


def test_invalid_option_value(crawl_dir, tmp_path):
    assert main(["-n", "no-placeholder.warc", "-o", str(tmp_path / "out"), str(crawl_dir)]) == 1


def test_nonexistent_crawl_dir(tmp_path):
    assert main(["-o", str(tmp_path / "out"), str(tmp_path / "missing")]) == 1


def test_convert(crawl_dir, tmp_path):
    outdir = tmp_path / "out"
    argv = ["-q", "-Z", "UTC", "-o", str(outdir), "--cdx", "crawl.cdx", "-x", "private/",
            "-I", "operator: CLI Test", str(crawl_dir)]
    assert main(argv) == 0
    assert (outdir / "crawl-0.warc.gz").exists()
    assert (outdir / "crawl.cdx").exists()

    with open(outdir / "crawl-0.warc.gz", "rb") as f:
        info = next(iter(ArchiveIterator(f))).content_stream().read().decode("utf-8")
    assert "operator: CLI Test\r\n" in info
    assert "mirror2warcOptions: -q -Z UTC -o " in info


def test_strict_escalation(tmp_path):
    crawl_dir = build_crawl(tmp_path / "crawl", cache_lines=["broken\tline\n"] + CACHE_LINES)
    assert main(["-q", "-o", str(tmp_path / "lenient"), str(crawl_dir)]) == 0
    assert main(["-q", "--strict", "-o", str(tmp_path / "strict"), str(crawl_dir)]) != 0


def test_log_file(crawl_dir, tmp_path):
    log_file = tmp_path / "run.log"
    assert main(["-v", "--log-file", str(log_file), "-o", str(tmp_path / "out"), str(crawl_dir)]) == 0
    assert "CONVERSION SUMMARY" in log_file.read_text(encoding="utf-8")
