"""
File Management Utilities

Walks an HTTrack crawl directory and names the WARC files written from it.
"""

import logging
import mimetypes
import os
from pathlib import Path
from typing import Iterator, Optional, Tuple

# HTTrack's own bookkeeping, never part of the mirrored site
CACHE_DIR = "hts-cache"
LOG_FILE = "hts-log.txt"
TOOL_ARTIFACTS = {
    LOG_FILE,
    "hts-err.txt",
    "hts-ioinfo.txt",
    "hts-nohup.out",
    "hts-in_progress.lock",
    "hts-stats.txt",
    "cookies.txt",
    "index.html",
    "backblue.gif",
    "fade.gif",
}

DEFAULT_MIME_TYPE = "application/octet-stream"


def is_tool_artifact(relpath: str) -> bool:
    """
    True for files HTTrack generates itself (top-level project index, log
    files, cache directory) rather than files it downloaded.
    """
    parts = relpath.split('/')
    if parts[0] == CACHE_DIR:
        return True
    return len(parts) == 1 and parts[0] in TOOL_ARTIFACTS


def walk_crawl(crawl_dir: Path) -> Iterator[Tuple[Path, str]]:
    """
    Walk a crawl directory in a stable (sorted) order.

    Args:
        crawl_dir: Root of the HTTrack project

    Yields:
        Tuples of (absolute file path, '/'-separated path relative to crawl_dir)
    """
    for root, dirs, files in os.walk(crawl_dir):
        dirs.sort()
        root_path = Path(root)
        for name in sorted(files):
            path = root_path / name
            relpath = path.relative_to(crawl_dir).as_posix()
            yield path, relpath


def guess_mime_type(path: str) -> str:
    """MIME type from the file extension."""
    mime_type, _ = mimetypes.guess_type(path, strict=False)
    return mime_type or DEFAULT_MIME_TYPE


def format_warc_name(pattern: str, sequence: int) -> str:
    """Substitute a sequence number into a name pattern like 'crawl-%d.warc.gz'."""
    return pattern % sequence


def validate_name_pattern(pattern: str) -> Optional[str]:
    """
    Check that a name pattern has exactly one sequence placeholder.

    Returns:
        Error message, or None if the pattern is usable
    """
    try:
        first = format_warc_name(pattern, 0)
        second = format_warc_name(pattern, 1)
    except (TypeError, ValueError) as e:
        return f"invalid name pattern {pattern!r}: {e}"
    if first == second:
        return f"name pattern {pattern!r} has no sequence number placeholder (e.g. %d)"
    if '/' in first or os.sep in first:
        return f"name pattern {pattern!r} must be a file name, not a path"
    return None


def ensure_directory(path: Path, logger: Optional[logging.Logger] = None) -> Path:
    """Create an output directory if needed."""
    path.mkdir(parents=True, exist_ok=True)
    if logger:
        logger.debug(f"Output directory: {path.absolute()}")
    return path
