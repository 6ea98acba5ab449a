"""
mirror2warc: HTTrack Mirror to WARC Converter

Converts a finished HTTrack website-mirror crawl into WARC archive files,
with an optional CDX index, so legacy mirrors can be replayed and preserved
with standard web-archiving tools.
"""

__version__ = "1.0"
__author__ = "mirror2warc Project"
__description__ = "HTTrack Mirror to WARC Converter"
