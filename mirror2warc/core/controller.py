"""
mirror2warc Orchestrator: converts one HTTrack crawl into WARC files.

Phases:
1. Read hts-log.txt (and hts-cache/doit.log as a fallback)
2. Read hts-cache/new.txt
3. Walk the crawl directory and correlate every file with its URL
4. Write content records, synthetic redirects and the CDX index
"""

from __future__ import annotations

import dataclasses
import logging
import re
from contextlib import ExitStack, closing
from dataclasses import dataclass, field
from datetime import timezone, tzinfo
from email.utils import format_datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Pattern, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from warcio.timeutils import datetime_to_iso_date

from .. import __version__
from ..utils.file_manager import (
    CACHE_DIR, LOG_FILE, ensure_directory, guess_mime_type, validate_name_pattern, walk_crawl,
)
from ..utils.validators import has_scheme
from .cache_parser import CacheParser, CrawlRecord
from .cdx_writer import CdxWriter
from .correlator import Correlation, Correlator
from .errors import ConfigurationError, CorrelationWarning, ParseError
from .link_rewriter import LinkRewriter, is_html
from .log_parser import CrawlLog, LogParser, read_doit_log
from .logger import DEFAULT_VERBOSITY, IssueTracker, clamp_verbosity, get_logger
from .redirects import RedirectSynthesizer
from .warc_writer import (
    ArchiveRecord, Compression, RecordType, WarcFileSet, localize, make_warcinfo_record,
)

DEFAULT_SIZE = 1073741824  # 1 GiB
DEFAULT_NAME = "crawl-%d.warc.gz"
CACHE_FILE = "new.txt"
DOIT_FILE = "doit.log"
UTC_NAMES = ("UTC", "GMT", "Z")
CONFORMS_TO = "http://bibnum.bnf.fr/WARC/WARC_ISO_28500_version1_latestdraft.pdf"


@dataclass(frozen=True)
class ConversionConfig:
    """
    Settings for one conversion run, validated on construction.

    Attributes:
        outdir: Directory the WARC (and CDX) files are written to
        size: Target WARC file size in bytes
        name: WARC file name pattern with one sequence placeholder
        timezone: IANA zone the crawl ran in (None = host local zone)
        compression: 'gzip' or 'none'
        warcinfo: Extra 'key: value' lines for the warcinfo record
        exclude: Regexes; matching files (by path or URL) are skipped
        redirect_file: Separate name pattern for redirect records
        redirect_prefix: Base URL the mirror was published under
        rewrite_links: Rewrite mirrored links in HTML back to original URLs
        strict: Abort on the first warning
        cdx: CDX index file name (relative names go into outdir)
        verbosity: 0=error .. 4=trace
    """

    outdir: str = "."
    size: int = DEFAULT_SIZE
    name: str = DEFAULT_NAME
    timezone: Optional[str] = None
    compression: str = "gzip"
    warcinfo: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()
    redirect_file: Optional[str] = None
    redirect_prefix: Optional[str] = None
    rewrite_links: bool = False
    strict: bool = False
    cdx: Optional[str] = None
    verbosity: int = DEFAULT_VERBOSITY

    exclusions: Tuple[Pattern, ...] = field(init=False, repr=False, compare=False)
    tz: Optional[tzinfo] = field(init=False, repr=False, compare=False)
    compression_mode: Compression = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if self.size <= 0:
            raise ConfigurationError(f"size must be positive, got {self.size}")

        for pattern in (self.name, self.redirect_file):
            if pattern is not None:
                error = validate_name_pattern(pattern)
                if error:
                    raise ConfigurationError(error)
        if self.redirect_file is not None and self.redirect_file == self.name:
            raise ConfigurationError("redirect file pattern must differ from the WARC name pattern")
        if self.redirect_file is not None and not self.redirect_prefix:
            raise ConfigurationError("--redirect-file requires --redirect-prefix")
        if self.redirect_prefix is not None and not has_scheme(self.redirect_prefix):
            raise ConfigurationError(f"redirect prefix must be an absolute URL: {self.redirect_prefix!r}")

        try:
            compression_mode = Compression(self.compression)
        except ValueError:
            raise ConfigurationError(f"unknown compression {self.compression!r} (expected 'none' or 'gzip')") from None

        tz = None
        if self.timezone and self.timezone.upper() in UTC_NAMES:
            tz = timezone.utc
        elif self.timezone:
            try:
                tz = ZoneInfo(self.timezone)
            except (ZoneInfoNotFoundError, ValueError) as e:
                raise ConfigurationError(f"unknown timezone {self.timezone!r}") from e

        exclusions = []
        for pattern in self.exclude:
            try:
                exclusions.append(re.compile(pattern))
            except re.error as e:
                raise ConfigurationError(f"invalid exclusion pattern {pattern!r}: {e}") from e

        for line in self.warcinfo:
            if ":" not in line:
                raise ConfigurationError(f"warcinfo line must look like 'key: value', got {line!r}")

        object.__setattr__(self, "exclusions", tuple(exclusions))
        object.__setattr__(self, "tz", tz)
        object.__setattr__(self, "compression_mode", compression_mode)
        object.__setattr__(self, "verbosity", clamp_verbosity(self.verbosity))

    @property
    def cdx_path(self) -> Optional[Path]:
        if not self.cdx:
            return None
        path = Path(self.cdx)
        return path if path.is_absolute() else Path(self.outdir) / path


@dataclass
class RunSummary:
    written: int = 0
    redirects: int = 0
    skipped: int = 0
    failed: int = 0
    files: List[str] = field(default_factory=list)
    cdx: Optional[str] = None
    warnings: Dict[str, object] = field(default_factory=dict)


class Converter:
    def __init__(self, config: ConversionConfig, logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or get_logger("controller")

    def convert(self, crawl_dir, progress: Optional[Callable[[object], None]] = None) -> RunSummary:
        """
        Convert the crawl in crawl_dir.

        Args:
            crawl_dir: HTTrack project directory (contains hts-log.txt)
            progress: Optional callback receiving status dicts

        Returns:
            RunSummary with record counts and the files written

        Raises:
            ParseError: hts-log.txt is missing or has no valid header
            CorrelationWarning, ParseError: first issue, when strict
            OSError: on any read or write failure
        """
        crawl_dir = Path(crawl_dir)
        if not crawl_dir.is_dir():
            raise ConfigurationError(f"crawl directory does not exist: {crawl_dir}")

        issues = IssueTracker(self.logger, strict=self.config.strict)
        summary = RunSummary()

        # Phase 1: crawl metadata
        crawl_log = self.read_crawl_log(crawl_dir)
        self.logger.info(f"{crawl_log.tool} {crawl_log.version} crawl launched "
                         f"{crawl_log.launch_time.isoformat()} at {crawl_log.seeds}")

        # Phase 2: cache records
        records = self.read_records(crawl_dir, crawl_log, issues)
        if progress:
            progress({"type": "records", "total": len(records)})

        # Phase 3: correlate
        link_rewriter = LinkRewriter(redirect_prefix=self.config.redirect_prefix, logger=self.logger)
        correlations = self.correlate(crawl_dir, crawl_log, records, issues, summary, link_rewriter)
        link_rewriter.url_table.update({c.relpath: c.url for c in correlations})
        if progress:
            progress({"type": "correlated", "total": len(correlations)})

        # Phase 4: write
        outdir = ensure_directory(Path(self.config.outdir), self.logger)
        info_fields = self.warcinfo_fields(crawl_log)
        synthesizer = None
        if self.config.redirect_prefix:
            synthesizer = RedirectSynthesizer(self.config.redirect_prefix, crawl_log.launch_time,
                                              tz=self.config.tz, logger=self.logger)

        def warcinfo_factory(filename: str) -> ArchiveRecord:
            return make_warcinfo_record(filename, info_fields)

        with ExitStack() as stack:
            warcs = stack.enter_context(WarcFileSet(
                outdir, self.config.name, self.config.size, warcinfo_factory,
                compression=self.config.compression_mode, logger=self.logger))
            redirect_warcs = warcs
            if self.config.redirect_file:
                redirect_warcs = stack.enter_context(WarcFileSet(
                    outdir, self.config.redirect_file, self.config.size, warcinfo_factory,
                    compression=self.config.compression_mode, logger=self.logger))
            cdx = None
            if self.config.cdx_path:
                cdx = stack.enter_context(CdxWriter(self.config.cdx_path, logger=self.logger))
                summary.cdx = str(self.config.cdx_path)

            for idx, correlation in enumerate(correlations, 1):
                written = warcs.write(self.build_record(correlation, crawl_log, link_rewriter))
                summary.written += 1
                if cdx:
                    cdx.add(written)

                if synthesizer:
                    for redirect in synthesizer.synthesize_for(correlation):
                        written = redirect_warcs.write(redirect)
                        summary.redirects += 1
                        if cdx:
                            cdx.add(written)

                if progress:
                    progress({"type": "file", "index": idx, "relpath": correlation.relpath,
                              "url": correlation.url})

            summary.files = [str(p) for p in warcs.files]
            if redirect_warcs is not warcs:
                summary.files += [str(p) for p in redirect_warcs.files]

        summary.warnings = issues.get_summary()
        self.log_summary(summary)
        return summary

    def read_crawl_log(self, crawl_dir: Path) -> CrawlLog:
        log_path = crawl_dir / LOG_FILE
        if not log_path.is_file():
            raise ParseError(f"{LOG_FILE} not found in {crawl_dir}", kind="header")
        with open(log_path, "rb") as f:
            crawl_log = LogParser(logger=self.logger).parse(f)

        doit_path = crawl_dir / CACHE_DIR / DOIT_FILE
        if (crawl_log.output_dir is None or crawl_log.command_line is None) and doit_path.is_file():
            with open(doit_path, "rb") as f:
                command_line, output_dir, _ = read_doit_log(f)
            self.logger.debug(f"Using {CACHE_DIR}/{DOIT_FILE} for missing command line details")
            crawl_log = dataclasses.replace(
                crawl_log,
                command_line=crawl_log.command_line or command_line,
                output_dir=crawl_log.output_dir or output_dir,
            )
        return crawl_log

    def read_records(self, crawl_dir: Path, crawl_log: CrawlLog, issues: IssueTracker) -> List[CrawlRecord]:
        cache_path = crawl_dir / CACHE_DIR / CACHE_FILE
        if not cache_path.is_file():
            issues.warn(ParseError(f"{CACHE_DIR}/{CACHE_FILE} not found, URLs will be derived from file names",
                                   kind="cache"), context=str(crawl_dir))
            return []

        parser = CacheParser(crawl_log.launch_time, crawl_log.output_dir, crawl_log.moved, logger=self.logger)
        records: List[CrawlRecord] = []
        with open(cache_path, "rb") as f, closing(parser.parse(f)) as items:
            for item in items:
                if isinstance(item, ParseError):
                    issues.warn(item, context=f"{CACHE_DIR}/{CACHE_FILE}")
                    continue
                records.append(item)
        self.logger.info(f"Read {len(records)} cache records")
        return records

    def correlate(self, crawl_dir: Path, crawl_log: CrawlLog, records: List[CrawlRecord],
                  issues: IssueTracker, summary: RunSummary,
                  link_rewriter: Optional[LinkRewriter] = None) -> List[Correlation]:
        correlator = Correlator(
            records,
            exclusions=self.config.exclusions,
            rewrite_links=self.config.rewrite_links,
            seeds=crawl_log.seed_urls,
            link_rewriter=link_rewriter,
            logger=self.logger,
        )
        correlations: List[Correlation] = []
        for path, relpath in walk_crawl(crawl_dir):
            if self.is_own_output(path):
                continue
            try:
                correlation = correlator.correlate(path, relpath)
            except CorrelationWarning as e:
                summary.failed += 1
                issues.warn(e, context=relpath)
                continue
            if correlation is None:
                summary.skipped += 1
                continue
            correlations.append(correlation)
        return correlations

    def is_own_output(self, path: Path) -> bool:
        """Output written into the crawl directory by an earlier run."""
        if path.parent.resolve() != Path(self.config.outdir).resolve():
            return False
        cdx_path = self.config.cdx_path
        if cdx_path is not None and path.resolve() == cdx_path.resolve():
            return True
        return path.name.endswith((".warc", ".warc.gz"))

    def build_record(self, correlation: Correlation, crawl_log: CrawlLog,
                     link_rewriter: Optional[LinkRewriter] = None) -> ArchiveRecord:
        """Response record when the cache knows the fetch, resource record otherwise."""
        with open(correlation.path, "rb") as f:
            body = f.read()

        record = correlation.record
        mime_type = record.mime_type if record and record.mime_type else guess_mime_type(correlation.relpath)
        if link_rewriter is not None and self.config.rewrite_links and is_html(mime_type, correlation.relpath):
            body = link_rewriter.rewrite(body, correlation.relpath)

        timestamp = record.timestamp if record else crawl_log.launch_time
        date = localize(timestamp, self.config.tz)

        if record is None or not 100 <= record.status < 600:
            return ArchiveRecord(
                record_type=RecordType.RESOURCE,
                target_uri=correlation.url,
                date=date,
                body=body,
                content_type=mime_type,
            )

        headers = [("Content-Type", mime_type), ("Content-Length", str(len(body)))]
        if record.last_modified:
            headers.append(("Last-Modified",
                            format_datetime(localize(record.last_modified, timezone.utc), usegmt=True)))
        if record.redirect_target:
            headers.append(("Location", record.redirect_target))

        return ArchiveRecord(
            record_type=RecordType.RESPONSE,
            target_uri=correlation.url,
            date=date,
            body=body,
            content_type=mime_type,
            status=record.status,
            http_headers=tuple(headers),
        )

    def warcinfo_fields(self, crawl_log: CrawlLog) -> List[str]:
        launched = datetime_to_iso_date(localize(crawl_log.launch_time, self.config.tz))
        fields = [
            f"software: mirror2warc/{__version__}",
            "format: WARC File Format 1.0",
            f"conformsTo: {CONFORMS_TO}",
            f"httrackVersion: {crawl_log.version}",
            f"httrackLaunched: {launched}",
            f"httrackSeeds: {crawl_log.seeds}",
        ]
        if crawl_log.command_line:
            fields.append(f"httrackOptions: {crawl_log.command_line}")
        fields.extend(self.config.warcinfo)
        return fields

    def log_summary(self, summary: RunSummary) -> None:
        self.logger.info("=" * 60)
        self.logger.info("CONVERSION SUMMARY")
        self.logger.info("=" * 60)
        self.logger.info(f"Records written: {summary.written}")
        self.logger.info(f"Redirects: {summary.redirects}")
        self.logger.info(f"Skipped: {summary.skipped}")
        self.logger.info(f"Failed: {summary.failed}")
        for name in summary.files:
            self.logger.info(f"  {name}")
        if summary.cdx:
            self.logger.info(f"CDX index: {summary.cdx}")
        if not summary.files:
            self.logger.warning("No records were written")
