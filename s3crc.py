#!/usr/bin/env python3
#
# SPDX-License-Identifier: MIT

import glob
import json
import logging
import os
import sys
import threading

from collections import namedtuple
from concurrent.futures import ThreadPoolExecutor
from functools import partial

import crc64

from s3crc_config import S3CrcConfig

__version__ = '1.0.0'

logger = logging.getLogger(__name__)

STDIN = '-'
STDIN_LABEL = 'stdin'

# Every '-' reads the same stream; two threads must not interleave on it.
_stdin_lock = threading.Lock()

Result = namedtuple('Result', 'label crc')
Failure = namedtuple('Failure', 'label error')


class SourceError(Exception):
    '''An input couldn't be checksummed; `label` says which one.'''

    def __init__(self, label, error):
        super().__init__(label, error)
        self.label = label
        self.error = error

    def __str__(self):
        return f'{self.label}: {self.error}'


class SourceUnavailable(SourceError):
    pass


class SourceReadError(SourceError):
    pass


def checksum_file(path, buffer_size=crc64.DEFAULT_BUFFER_SIZE):
    try:
        inf = open(path, 'rb')
    except OSError as e:
        raise SourceUnavailable(path, e) from e

    with inf:
        try:
            return crc64.crc64_stream(inf, buffer_size)
        except OSError as e:
            raise SourceReadError(path, e) from e


def checksum_stdin(buffer_size=crc64.DEFAULT_BUFFER_SIZE):
    if sys.stdin is None:
        raise SourceUnavailable(STDIN_LABEL, OSError('standard input is closed'))

    with _stdin_lock:
        try:
            return crc64.crc64_stream(sys.stdin.buffer, buffer_size)
        except OSError as e:
            raise SourceReadError(STDIN_LABEL, e) from e


def checksum_source(name, buffer_size=crc64.DEFAULT_BUFFER_SIZE):
    '''Return a :class:`Result` or :class:`Failure` for one path or ``-``.'''
    try:
        if STDIN == name:
            return Result(STDIN_LABEL, checksum_stdin(buffer_size))

        return Result(name, checksum_file(name, buffer_size))
    except SourceError as e:
        return Failure(e.label, e)


def checksum_sources(names, buffer_size=crc64.DEFAULT_BUFFER_SIZE, jobs=1):
    '''Yield outcomes for `names` in order, using `jobs` threads.'''
    fn = partial(checksum_source, buffer_size=buffer_size)
    if jobs < 2:
        yield from map(fn, names)
        return

    with ThreadPoolExecutor(max_workers=jobs) as pool:
        yield from pool.map(fn, names)


def expand_patterns(patterns, recursive=False):
    for pattern in patterns:
        if STDIN == pattern:
            yield STDIN
            continue

        matches = sorted(
            glob.glob(pattern, recursive=recursive, include_hidden=True)
        )
        if not matches:
            logger.debug('No files match %r', pattern)
        yield from matches


def log_failure(failure):
    if STDIN_LABEL == failure.label:
        logger.error('error reading from stdin: %s', failure.error.error)
    else:
        logger.error('error on %s: %s', failure.label, failure.error.error)


def format_line(result, encoding='base64'):
    return f'{crc64.encode(result.crc, encoding)}  {result.label}'


def format_json(results, encoding='base64'):
    return json.dumps(
        [
            dict(file=r.label, crc64=crc64.encode(r.crc, encoding))
            for r in results
        ],
        indent=2,
    )


def run(patterns, cfg, outfile=None):
    '''Checksum everything `patterns` names and print it; returns exit status.'''
    outfile = outfile or sys.stdout
    encoding = cfg.encoding
    names = expand_patterns(patterns, recursive=cfg.recursive)

    results = []
    for outcome in checksum_sources(names, cfg.buffer_size, cfg.jobs):
        if isinstance(outcome, Failure):
            log_failure(outcome)
        elif cfg.json:
            results.append(outcome)
        else:
            print(format_line(outcome, encoding), file=outfile, flush=True)

    if cfg.json:
        print(format_json(results, encoding), file=outfile)

    return 0


def main(args_list=None):
    import argparse

    parser = argparse.ArgumentParser(
        prog='s3crc',
        description='Compute CRC64-NVMe checksums of files matching globs',
        epilog='''
The checksum is the same one AWS S3 reports as x-amz-checksum-crc64nvme; the
default base64 output can be compared to that header directly. Use - as a
pattern to read stdin. A pattern that matches nothing is skipped.

Options can also be given as S3CRC_<OPTION> environment variables (e.g.
S3CRC_BUFFER_SIZE=65536) or in a TOML file (e.g. buffer-size = 65536) named by
--config or S3CRC_CONFIG. The command line wins over the environment, which
wins over the file.''',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    _a = parser.add_argument
    _a('patterns', metavar='PATTERN', nargs='*',
        help='File or glob to checksum; - reads stdin')
    _a('--hex', action=argparse.BooleanOptionalAction,
        help='Output checksum as lowercase hex')
    _a('--uppercase', action=argparse.BooleanOptionalAction,
        help='Output checksum as uppercase hex')
    _a('--json', action=argparse.BooleanOptionalAction,
        help='Output results as a JSON array')
    _a('-r', '--recursive', action=argparse.BooleanOptionalAction,
        help='Let ** match any number of directories')
    _a('-j', '--jobs', type=int,
        help='Number of sources to checksum concurrently (default: 1)')
    _a('-b', '--buffer-size', type=int,
        help=f'Read buffer size in bytes (default: {crc64.DEFAULT_BUFFER_SIZE})')
    _a('-c', '--config', help='TOML configuration file')
    _a('-v', '--verbose', action='store_true', help='Log debugging output')
    _a('--lut', action='store_true',
        help='Print LUT to stdout as C-style array, then exit')
    _a('--version', action='store_true', help='Print version and exit')
    args = parser.parse_args(args_list)

    if args.version:
        print(os.path.basename(sys.argv[0]), __version__)
        return 0

    if args.lut:
        crc64.print_LUT()
        return 0

    if not args.patterns:
        parser.error('at least one PATTERN is required')

    logging.basicConfig(
        format='%(message)s',
        level=logging.DEBUG if args.verbose else logging.WARNING,
    )

    try:
        cfg = S3CrcConfig.load(S3CrcConfig.config_file(args), cmdline=args)
    except (OSError, ValueError) as e:
        parser.error(str(e))

    logger.debug('Configuration:\n%s', cfg)

    return run(args.patterns, cfg)


if '__main__' == __name__:
    sys.exit(main())
