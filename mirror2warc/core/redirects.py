"""
Redirect Synthesizer

When a mirror was published under a new base URL, every page has a second,
rewritten address. This module builds 301 records pointing from each
rewritten URL back to the original one, so replay tools can follow links
into the archived mirror.
"""

from __future__ import annotations

import logging
import posixpath
from datetime import datetime, tzinfo
from typing import List, Optional

from ..utils.validators import quote_path
from .correlator import INDEX_FILE, Correlation
from .logger import get_logger
from .warc_writer import ArchiveRecord, RecordType, localize

REDIRECT_STATUS = 301
REDIRECT_CONTENT_TYPE = "text/html"


class RedirectSynthesizer:
    """
    Builds synthetic redirect records for files published under a prefix.

    Args:
        prefix: Base URL the mirror was published under
        launch_time: Crawl start, used when a file has no CrawlRecord
        tz: Zone of the crawl's naive timestamps (None = host local zone)
        logger: Logger to use
    """

    def __init__(self,
                 prefix: str,
                 launch_time: datetime,
                 tz: Optional[tzinfo] = None,
                 logger: Optional[logging.Logger] = None):
        self.prefix = prefix if prefix.endswith('/') else prefix + '/'
        self.launch_time = launch_time
        self.tz = tz
        self.logger = logger or get_logger("redirects")

    def rewritten_urls(self, correlation: Correlation) -> List[str]:
        """Addresses the file has in the published mirror."""
        urls = [self.prefix + quote_path(correlation.relpath)]
        if posixpath.basename(correlation.relpath) == INDEX_FILE:
            urls.append(self.prefix + quote_path(correlation.relpath[:-len(INDEX_FILE)]))
        return urls

    def synthesize(self, rewritten_url: str, original_url: str,
                   timestamp: Optional[datetime] = None) -> ArchiveRecord:
        """
        One 301 response record from rewritten_url to original_url.

        Args:
            rewritten_url: Target URI of the record
            original_url: Location header value
            timestamp: Capture time (naive local); defaults to the launch time
        """
        return ArchiveRecord(
            record_type=RecordType.RESPONSE,
            target_uri=rewritten_url,
            date=localize(timestamp or self.launch_time, self.tz),
            body=b"",
            content_type=REDIRECT_CONTENT_TYPE,
            status=REDIRECT_STATUS,
            http_headers=(
                ("Location", original_url),
                ("Content-Type", REDIRECT_CONTENT_TYPE),
                ("Content-Length", "0"),
            ),
        )

    def synthesize_for(self, correlation: Correlation) -> List[ArchiveRecord]:
        """Redirect records for every rewritten address that differs from the original URL."""
        timestamp = correlation.record.timestamp if correlation.record else None
        records = []
        for url in self.rewritten_urls(correlation):
            if url == correlation.url:
                continue
            records.append(self.synthesize(url, correlation.url, timestamp))
        if records:
            self.logger.debug(f"{len(records)} redirects to {correlation.url}")
        return records
