"""
Command line interface.

Usage:
    mirror2warc [OPTIONS] crawldir

Converts the HTTrack crawl in crawldir to WARC files. Exit status is 0 on
success and 1 on a usage error or a failed conversion.
"""

import argparse
import shlex
import sys
from typing import Optional, Sequence

from . import __description__, __version__
from .core.controller import DEFAULT_NAME, DEFAULT_SIZE, ConversionConfig, Converter
from .core.errors import ConfigurationError, Mirror2WarcError
from .core.logger import DEFAULT_VERBOSITY, clamp_verbosity, initialize_logging

PROG = "mirror2warc"


class UsageParser(argparse.ArgumentParser):
    """ArgumentParser that exits with status 1 on usage errors."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n"
                     f"Try '{self.prog} --help' for more information.\n")


def build_parser() -> argparse.ArgumentParser:
    parser = UsageParser(
        prog=PROG,
        description=f"{__description__}.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument(
        'crawldir',
        help='HTTrack project directory (the one holding hts-log.txt)',
    )

    parser.add_argument(
        '--cdx',
        metavar='FILE',
        help='Write a CDX index of the WARC files to FILE',
    )

    parser.add_argument(
        '-C', '--compression',
        choices=['none', 'gzip'],
        default='gzip',
        help='WARC compression (default: gzip)',
    )

    parser.add_argument(
        '-x', '--exclude',
        metavar='REGEX',
        action='append',
        default=[],
        help='Skip files whose path or URL matches REGEX (repeatable)',
    )

    parser.add_argument(
        '-n', '--name',
        metavar='PATTERN',
        default=DEFAULT_NAME,
        help='WARC file name pattern (default: %(default)s)',
    )

    parser.add_argument(
        '-o', '--outdir',
        metavar='DIR',
        default='.',
        help='Directory to write WARC files to (default: current directory)',
    )

    parser.add_argument(
        '-q', '--quiet',
        action='count',
        default=0,
        help='Decrease logging verbosity (repeatable)',
    )

    parser.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Increase logging verbosity (repeatable)',
    )

    parser.add_argument(
        '--redirect-file',
        metavar='PATTERN',
        help='Write synthetic redirects to a separate WARC set named by PATTERN',
    )

    parser.add_argument(
        '--redirect-prefix',
        metavar='URL',
        help='Base URL the mirror was published under; adds 301s back to the original URLs',
    )

    parser.add_argument(
        '--rewrite-links',
        action='store_true',
        help='Rewrite links in mirrored HTML back to the original URLs',
    )

    parser.add_argument(
        '-s', '--size',
        metavar='BYTES',
        type=int,
        default=DEFAULT_SIZE,
        help='Target WARC file size (default: %(default)s)',
    )

    parser.add_argument(
        '--strict',
        action='store_true',
        help='Abort on any warning instead of skipping the offending item',
    )

    parser.add_argument(
        '-Z', '--timezone',
        metavar='ZONE',
        help='Timezone the crawl ran in, e.g. Australia/Sydney (default: local)',
    )

    parser.add_argument(
        '-I', '--warcinfo',
        metavar="'KEY: VALUE'",
        action='append',
        default=[],
        help='Add a line to the warcinfo record (repeatable)',
    )

    parser.add_argument(
        '--log-file',
        metavar='FILE',
        help='Also write a detailed log to FILE',
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}',
    )

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    argv = sys.argv[1:] if argv is None else list(argv)
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 0

    verbosity = clamp_verbosity(DEFAULT_VERBOSITY + args.verbose - args.quiet)
    logger = initialize_logging(verbosity, args.log_file)

    try:
        config = ConversionConfig(
            outdir=args.outdir,
            size=args.size,
            name=args.name,
            timezone=args.timezone,
            compression=args.compression,
            warcinfo=tuple(args.warcinfo) + (f"mirror2warcOptions: {shlex.join(argv)}",),
            exclude=tuple(args.exclude),
            redirect_file=args.redirect_file,
            redirect_prefix=args.redirect_prefix,
            rewrite_links=args.rewrite_links,
            strict=args.strict,
            cdx=args.cdx,
            verbosity=verbosity,
        )
    except ConfigurationError as e:
        parser.print_usage(sys.stderr)
        logger.error(str(e))
        return 1

    try:
        Converter(config, logger=logger).convert(args.crawldir)
    except (Mirror2WarcError, OSError) as e:
        logger.error(f"Conversion failed: {e}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
