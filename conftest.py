"""
Shared fixtures: a small fake HTTrack crawl directory.
"""

from pathlib import Path
from typing import Dict, Iterable, Optional

import pytest

HTS_LOG = (
    "HTTrack3.49-2+htsswf+htsjava launched on Mon, 01 Jan 2024 10:00:00 at https://example.org/ +*.css\n"
    '(httrack https://example.org/ -O "/data/crawl" +*.css )\n'
    "\n"
    "10:00:03\tWarning: \tFile has moved from https://example.org/old.html to https://example.org/page.html\n"
    "HTTrack Website Copier/3.49-2 mirror complete in 5 seconds : 4 links scanned, 4 files written\n"
)

CACHE_HEADER = ("date\tsize'/'remotesize\tflags(request:Update,Range state:File response:Modified,Chunked,gZipped)"
                "\tstatuscode\tstatus ('servermsg')\tMIME\tEtag|Date\tURL\tlocalfile\t(from URL)\n")


def cache_line(time: str, status: int, mime: str, url: str, local: str,
               date_col: str = "", referrer: str = "") -> str:
    return f"{time}\t120/120\t---M--\t{status}\tadded ('OK')\t{mime}\t{date_col}\t{url}\t{local}\t(from {referrer})\n"


CACHE_LINES = [
    cache_line("10:00:01", 200, "text/html", "https://example.org/", "/data/crawl/example.org/index.html",
               date_col="date:Mon,%2001%20Jan%202024%2009:00:00%20GMT"),
    cache_line("10:00:02", 200, "text/css", "https://example.org/style.css", "/data/crawl/example.org/style.css",
               referrer="https://example.org/"),
    cache_line("10:00:03", 301, "text/html", "https://example.org/old.html", "/data/crawl/example.org/old.html",
               referrer="https://example.org/"),
    cache_line("10:00:04", 200, "text/html", "https://example.org/private/secret.html",
               "/data/crawl/example.org/private/secret.html", referrer="https://example.org/"),
]

INDEX_HTML = (
    '<html><head><title>Home</title><link rel="stylesheet" href="style.css"></head>\n'
    '<body><a href="page.html#intro">Page</a> <a href="old.html">Old</a>\n'
    '<a href="#top">Top</a> <a href="mailto:web@example.org">Mail</a></body></html>\n'
)

CRAWL_FILES = {
    "index.html": "<html><body>HTTrack project index</body></html>",
    "backblue.gif": b"GIF89a",
    "example.org/index.html": INDEX_HTML,
    "example.org/style.css": "body { color: black; }\n",
    "example.org/old.html": "<html><body>Page has moved</body></html>",
    "example.org/page.html": "<html><body>Page</body></html>",
    "example.org/private/secret.html": "<html><body>Secret</body></html>",
}


def build_crawl(root: Path,
                log_text: Optional[str] = HTS_LOG,
                cache_lines: Optional[Iterable[str]] = CACHE_LINES,
                files: Optional[Dict[str, object]] = None) -> Path:
    """
    Write a crawl directory under root.

    A None log_text or cache_lines leaves the file out.
    """
    root.mkdir(parents=True, exist_ok=True)
    if log_text is not None:
        (root / "hts-log.txt").write_bytes(log_text.encode("iso-8859-1"))
    if cache_lines is not None:
        (root / "hts-cache").mkdir(exist_ok=True)
        (root / "hts-cache" / "new.txt").write_bytes((CACHE_HEADER + "".join(cache_lines)).encode("iso-8859-1"))
    for relpath, content in (CRAWL_FILES if files is None else files).items():
        path = root / relpath
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def crawl_dir(tmp_path):
    return build_crawl(tmp_path / "crawl")
