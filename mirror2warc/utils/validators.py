"""
URL Utilities

Helpers for turning HTTrack's on-disk names back into URLs and for
canonicalizing URLs for the CDX index.
"""

import re
from typing import Optional, Tuple
from urllib.parse import quote, urlparse, urlunparse

from surt import surt

# Characters left unescaped when a local path is turned back into a URL path
URL_PATH_SAFE = "/~!$&'()*+,;=:@%-._"

# HTTrack names a host directory "host" or "host_port"
HOST_DIR_RE = re.compile(r'^(?P<host>[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?(?:\.[A-Za-z0-9-]+)+)(?:_(?P<port>\d+))?$')


def split_host_dir(name: str) -> Optional[Tuple[str, Optional[int]]]:
    """
    Interpret a top-level directory name as a host.

    Args:
        name: First path segment of a file in the crawl directory

    Returns:
        Tuple of (host, port) or None if the name does not look like a host
    """
    match = HOST_DIR_RE.match(name)
    if not match:
        return None
    port = match.group('port')
    return match.group('host').lower(), int(port) if port else None


def quote_path(path: str) -> str:
    """Percent-encode a decoded local path for use in a URL."""
    return quote(path, safe=URL_PATH_SAFE)


def build_url(scheme: str, host: str, port: Optional[int], path: str) -> str:
    """Assemble a URL from parts, omitting default ports."""
    netloc = host
    if port and not (scheme == 'http' and port == 80) and not (scheme == 'https' and port == 443):
        netloc = f"{host}:{port}"
    if not path.startswith('/'):
        path = '/' + path
    return urlunparse((scheme, netloc, path, '', '', ''))


def host_of(url: str) -> Optional[str]:
    """Lowercased host of a URL, without port."""
    try:
        return urlparse(url).hostname
    except ValueError:
        return None


def has_scheme(url: str) -> bool:
    return bool(re.match(r'^[A-Za-z][A-Za-z0-9+.-]*:', url))


def escape_cdx_url(url: str) -> str:
    """CDX fields are space separated, so whitespace in URLs must be escaped."""
    return (url.replace(' ', '%20')
               .replace('\r', '%0D')
               .replace('\n', '%0A')
               .replace('\t', '%09'))


def canonicalize(url: str) -> str:
    """
    SURT form of a URL for the CDX key field.

    Falls back to the lowercased URL when surt cannot parse it.
    """
    try:
        return escape_cdx_url(surt(url))
    except ValueError:
        return escape_cdx_url(url.lower())
