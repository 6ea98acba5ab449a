"""
HTML link handling for mirrored pages.

Two jobs, both on HTTrack-saved HTML:
- find the URL a page was mirrored from (HTTrack's "Mirrored from" comment,
  a canonical link, or <base href>);
- rewrite links between mirrored files back to the original URLs.
"""

from __future__ import annotations

import logging
import posixpath
import re
from typing import Dict, Mapping, Optional
from urllib.parse import unquote, urlsplit

from bs4 import BeautifulSoup, Comment

from ..utils.validators import has_scheme
from .log_parser import with_scheme
from .logger import get_logger

# <!-- Mirrored from www.example.org/page.html by HTTrack Website Copier/3.x [XR&CO'2014], ... -->
# Groups: url.
MIRRORED_FROM_RE = re.compile(r"Mirrored from (?P<url>\S+) by HTTrack", re.I)

# Tag -> attributes holding a link
LINK_ATTRIBUTES = {
    'a': ('href',),
    'area': ('href',),
    'link': ('href',),
    'img': ('src',),
    'script': ('src',),
    'frame': ('src',),
    'iframe': ('src',),
    'embed': ('src',),
    'source': ('src',),
    'input': ('src',),
    'form': ('action',),
    'body': ('background',),
}

SKIPPED_SCHEMES = ('#', 'mailto:', 'javascript:', 'data:', 'tel:')

HTML_TYPES = ('text/html', 'application/xhtml+xml')


def is_html(mime_type: Optional[str], relpath: str = '') -> bool:
    if mime_type:
        return mime_type.split(';', 1)[0].strip().lower() in HTML_TYPES
    return relpath.lower().endswith(('.html', '.htm', '.xhtml'))


class LinkRewriter:
    """
    Maps links in mirrored HTML back to original URLs.

    Args:
        url_table: Relative path in the crawl directory -> original URL
        redirect_prefix: URL prefix the mirror was published under, if any
        logger: Logger to use
    """

    def __init__(self,
                 url_table: Optional[Mapping[str, str]] = None,
                 redirect_prefix: Optional[str] = None,
                 logger: Optional[logging.Logger] = None):
        self.url_table: Dict[str, str] = dict(url_table or {})
        self.redirect_prefix = redirect_prefix
        self.logger = logger or get_logger("link_rewriter")

    def unprefix(self, url: str) -> Optional[str]:
        """Turn a URL under the redirect prefix back into the original URL."""
        if not self.redirect_prefix or not url.startswith(self.redirect_prefix):
            return None
        rest = url[len(self.redirect_prefix):].lstrip('/')
        if not rest:
            return None
        return self.url_table.get(unquote(rest)) or with_scheme(rest)

    def find_original_url(self, html: bytes) -> Optional[str]:
        """
        Look inside a saved page for the URL it was fetched from.

        Returns:
            Absolute URL, or None if the page carries no hint
        """
        soup = BeautifulSoup(html, 'lxml')

        for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
            match = MIRRORED_FROM_RE.search(comment)
            if match:
                return self._absolute(match.group('url'), from_comment=True)

        canonical = soup.find('link', rel=lambda v: v and 'canonical' in v, href=True)
        if canonical:
            url = self._absolute(canonical['href'])
            if url:
                return url

        base = soup.find('base', href=True)
        if base:
            return self._absolute(base['href'])

        return None

    def _absolute(self, url: str, from_comment: bool = False) -> Optional[str]:
        url = url.strip()
        if not url:
            return None
        original = self.unprefix(url)
        if original:
            return original
        if has_scheme(url):
            return url
        # HTTrack writes the comment URL without a scheme
        if from_comment:
            return with_scheme(url)
        return None

    def rewrite(self, html: bytes, relpath: str) -> bytes:
        """
        Replace links to other mirrored files with their original URLs.

        Links that cannot be resolved are left as they are. When nothing is
        rewritten the input bytes are returned untouched.

        Args:
            html: Page content as saved by HTTrack
            relpath: Location of the page in the crawl directory
        """
        soup = BeautifulSoup(html, 'lxml')
        base_dir = posixpath.dirname(relpath)
        rewritten = 0

        for tag in soup.find_all(list(LINK_ATTRIBUTES)):
            for attr in LINK_ATTRIBUTES[tag.name]:
                value = tag.get(attr)
                if not value or not isinstance(value, str):
                    continue
                original = self.resolve_link(value.strip(), base_dir)
                if original and original != value:
                    tag[attr] = original
                    rewritten += 1

        if not rewritten:
            return html

        self.logger.debug(f"Rewrote {rewritten} links in {relpath}")
        return soup.encode(soup.original_encoding or 'utf-8')

    def resolve_link(self, link: str, base_dir: str) -> Optional[str]:
        """
        Original URL for one link found in a page under base_dir.

        Returns:
            URL (with the link's fragment kept), or None if unknown
        """
        if not link or link.lower().startswith(SKIPPED_SCHEMES):
            return None

        original = self.unprefix(link)
        if original:
            return original
        if has_scheme(link) or link.startswith('//'):
            return None

        parts = urlsplit(link)
        if parts.query:
            return None
        path = unquote(parts.path)
        if path.startswith('/'):
            target = posixpath.normpath(path.lstrip('/'))
        else:
            target = posixpath.normpath(posixpath.join(base_dir, path))
        if target == '.':
            target = ''
        if target.startswith('../') or target == '..':
            return None

        url = self.url_table.get(target)
        if url is None and (path.endswith('/') or not path):
            url = self.url_table.get(posixpath.join(target, 'index.html'))
        if url is None:
            return None
        if parts.fragment:
            url = f"{url}#{parts.fragment}"
        return url
