"""
URL/File Correlator

Maps each file in an HTTrack crawl directory back to the URL it was fetched
from. Rules are tried in order:

1. cache: the file's relative path is a local path in hts-cache/new.txt
2. filename: undo HTTrack's host/path naming ("example.org_8080/a/b.html")
3. content: for HTML with link rewriting enabled, read the page's
   "Mirrored from" comment, canonical link or <base href>
"""

from __future__ import annotations

import logging
import posixpath
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Pattern, Sequence

from ..utils.file_manager import guess_mime_type, is_tool_artifact
from ..utils.validators import build_url, host_of, quote_path, split_host_dir
from .cache_parser import CrawlRecord
from .errors import CorrelationWarning
from .link_rewriter import LinkRewriter, is_html
from .logger import get_logger

INDEX_FILE = 'index.html'


@dataclass(frozen=True)
class Correlation:
    """A crawl file and the URL it came from."""

    path: Path
    relpath: str
    url: str
    record: Optional[CrawlRecord] = None
    method: str = 'cache'


def _preference(record: CrawlRecord) -> int:
    # a 200 beats the 3xx HTTrack logs against the same local file
    return 0 if 200 <= record.status < 300 else 1


class Correlator:
    """
    Resolves crawl files to URLs using the parsed cache records.

    Args:
        records: CrawlRecords from new.txt
        exclusions: Compiled patterns; a match on relative path or URL skips the file
        rewrite_links: Enables the content rule
        seeds: Seed URLs, used to pick http or https for a host
        link_rewriter: Reads original URLs out of HTML for the content rule
        logger: Logger to use
    """

    def __init__(self,
                 records: Iterable[CrawlRecord],
                 exclusions: Sequence[Pattern] = (),
                 rewrite_links: bool = False,
                 seeds: Iterable[str] = (),
                 link_rewriter: Optional[LinkRewriter] = None,
                 logger: Optional[logging.Logger] = None):
        self.exclusions = list(exclusions)
        self.rewrite_links = rewrite_links
        self.link_rewriter = link_rewriter or LinkRewriter()
        self.logger = logger or get_logger("correlator")

        self.by_path: Dict[str, CrawlRecord] = {}
        self.by_url: Dict[str, CrawlRecord] = {}
        self.absolute: Dict[str, List[CrawlRecord]] = {}
        self.host_schemes: Dict[str, str] = {}

        for url in seeds:
            self._note_scheme(url)
        for record in records:
            self._index(record)

    def _index(self, record: CrawlRecord) -> None:
        self._note_scheme(record.url)
        current = self.by_url.get(record.url)
        if current is None or _preference(record) < _preference(current):
            self.by_url[record.url] = record

        if not record.local_path:
            return
        if record.local_path.startswith('/') or re.match(r'^[A-Za-z]:/', record.local_path):
            # output directory unknown, match on the path suffix later
            name = posixpath.basename(record.local_path)
            self.absolute.setdefault(name, []).append(record)
            return
        current = self.by_path.get(record.local_path)
        if current is None or _preference(record) < _preference(current):
            self.by_path[record.local_path] = record

    def _note_scheme(self, url: str) -> None:
        host = host_of(url)
        scheme = url.split(':', 1)[0].lower()
        if host and scheme in ('http', 'https'):
            self.host_schemes.setdefault(host, scheme)

    def is_excluded(self, value: str) -> bool:
        return any(pattern.search(value) for pattern in self.exclusions)

    def correlate(self, path: Path, relpath: str) -> Optional[Correlation]:
        """
        Resolve one file.

        Returns:
            The Correlation, or None for tool artifacts and excluded files

        Raises:
            CorrelationWarning: if no rule can determine the URL
        """
        if is_tool_artifact(relpath):
            self.logger.debug(f"Skipping HTTrack file {relpath}")
            return None
        if self.is_excluded(relpath):
            self.logger.debug(f"Excluded {relpath}")
            return None

        correlation = (self._from_cache(path, relpath)
                       or self._from_filename(path, relpath)
                       or self._from_content(path, relpath))
        if correlation is None:
            raise CorrelationWarning(relpath)

        if self.is_excluded(correlation.url):
            self.logger.debug(f"Excluded {relpath} ({correlation.url})")
            return None

        self.logger.debug(f"{relpath} -> {correlation.url} [{correlation.method}]")
        return correlation

    def _from_cache(self, path: Path, relpath: str) -> Optional[Correlation]:
        record = self.by_path.get(relpath)
        if record is None:
            candidates = [r for r in self.absolute.get(posixpath.basename(relpath), [])
                          if r.local_path.endswith('/' + relpath)]
            if candidates:
                record = min(candidates, key=_preference)
        if record is None:
            return None
        return Correlation(path=path, relpath=relpath, url=record.url, record=record, method='cache')

    def _from_filename(self, path: Path, relpath: str) -> Optional[Correlation]:
        if '/' not in relpath:
            return None
        host_dir, rest = relpath.split('/', 1)
        parsed = split_host_dir(host_dir)
        if parsed is None:
            return None
        host, port = parsed

        # HTTrack saves directory URLs as index.html, so try the directory first
        paths = ['/' + quote_path(rest)]
        if posixpath.basename(rest) == INDEX_FILE:
            paths.insert(0, '/' + quote_path(rest[:-len(INDEX_FILE)]))

        preferred = self.host_schemes.get(host, 'http')
        schemes = [preferred, 'https' if preferred == 'http' else 'http']

        candidates = [build_url(scheme, host, port, url_path)
                      for scheme in schemes for url_path in paths]
        for url in candidates:
            record = self.by_url.get(url)
            if record is not None:
                return Correlation(path=path, relpath=relpath, url=url, record=record, method='filename')

        return Correlation(path=path, relpath=relpath, url=candidates[0], method='filename')

    def _from_content(self, path: Path, relpath: str) -> Optional[Correlation]:
        if not self.rewrite_links or not is_html(guess_mime_type(relpath), relpath):
            return None
        with open(path, 'rb') as f:
            url = self.link_rewriter.find_original_url(f.read())
        if not url:
            return None
        return Correlation(path=path, relpath=relpath, url=url, record=self.by_url.get(url), method='content')
