# SPDX-License-Identifier: MIT

'''CRC-64/NVME as used for S3's ``x-amz-checksum-crc64nvme`` header.

The checksum is the reflected (LSB-first) CRC with the NVMe polynomial, an
all-ones seed and an all-ones output XOR. Streams are folded through a fixed
buffer so memory use doesn't depend on the input size.
'''

import base64
import errno
import re
import sys

NVME_POLY = 0x9A6C9329AC4BC9B5
WIDTH = 64
MASK = (1 << WIDTH) - 1
INIT = MASK
XOR_OUT = MASK
DEFAULT_BUFFER_SIZE = 32 << 10

ENCODINGS = ('base64', 'hex', 'HEX')


def _bytes(x):
    try:
        return memoryview(x)
    except TypeError:
        return bytearray(x)


def make_table(poly=NVME_POLY):
    '''Build the 256 entry LUT for the reflected `poly`.'''
    table = [0] * 256
    for i in range(256):
        crc = i
        for _ in range(8):
            if crc & 1:
                crc = (crc >> 1) ^ poly
            else:
                crc >>= 1
        table[i] = crc

    return tuple(table)


TABLE = make_table()


def crc64_update(data, crc=INIT, table=TABLE):
    '''Fold `data` into the running (un-finalized) register `crc`.'''
    for byte in _bytes(data):
        crc = table[(crc ^ byte) & 0xff] ^ (crc >> 8)

    return crc


def finalize(crc):
    return crc ^ XOR_OUT


def crc64(data, crc=INIT):
    '''Checksum of a single buffer; `crc` continues a previous register.'''
    return finalize(crc64_update(data, crc))


def _would_block():
    return BlockingIOError(errno.EAGAIN, 'Source has no data ready')


def crc64_stream(source, buffer_size=DEFAULT_BUFFER_SIZE):
    '''Checksum everything `source` yields until end-of-stream.

    `source` only needs ``readinto()`` or ``read()``. It's read exactly once,
    front to back, and is neither seeked nor closed. Read errors propagate
    untouched, so a failing source never produces a value. A read that returns
    ``None`` (non-blocking source with nothing ready) raises
    :exc:`BlockingIOError` rather than ending the stream early.
    '''
    if buffer_size < 1:
        raise ValueError(f'Buffer size must be positive: {buffer_size}')

    crc = INIT
    readinto = getattr(source, 'readinto', None)
    if readinto is not None:
        buf = bytearray(buffer_size)
        view = memoryview(buf)
        while True:
            n = readinto(view)
            if n is None:
                raise _would_block()
            if 0 == n:
                break
            crc = crc64_update(view[:n], crc)
    else:
        while True:
            chunk = source.read(buffer_size)
            if chunk is None:
                raise _would_block()
            if not chunk:
                break
            crc = crc64_update(chunk, crc)

    return finalize(crc)


def encode(value, encoding='base64'):
    '''Render a checksum the way S3 (base64) or humans (hex) want it.'''
    if 'base64' == encoding:
        return base64.b64encode(value.to_bytes(8, 'big')).decode('ascii')
    if 'hex' == encoding:
        return f'{value:016x}'
    if 'HEX' == encoding:
        return f'{value:016X}'

    raise ValueError(f'Unknown encoding {encoding!r}; expected one of {ENCODINGS}')


def decode(text, encoding='base64'):
    if 'base64' == encoding:
        raw = base64.b64decode(text, validate=True)
        if 8 != len(raw):
            raise ValueError(f'Expected 8 bytes of checksum, got {len(raw)}')
        return int.from_bytes(raw, 'big')
    if encoding in ('hex', 'HEX'):
        if not re.fullmatch('[0-9a-fA-F]{16}', text):
            raise ValueError(f'Expected 16 hex digits of checksum, got {text!r}')
        return int(text, 16)

    raise ValueError(f'Unknown encoding {encoding!r}; expected one of {ENCODINGS}')


class CRC64:
    '''Incremental CRC-64/NVME with a :mod:`hashlib`-like interface.'''

    name = 'crc64nvme'
    digest_size = 8
    block_size = 1

    def __init__(self, data=b''):
        self._crc = INIT
        if data:
            self.update(data)

    def update(self, data):
        self._crc = crc64_update(data, self._crc)

    def copy(self):
        other = type(self)()
        other._crc = self._crc
        return other

    @property
    def value(self):
        return finalize(self._crc)

    def digest(self):
        return self.value.to_bytes(self.digest_size, 'big')

    def hexdigest(self):
        return encode(self.value, 'hex')

    def b64digest(self):
        return encode(self.value, 'base64')


def print_LUT(table=TABLE, outfile=None):
    '''Print the table as a C-style array of uint64_t.'''
    outfile = outfile or sys.stdout
    indent = ' ' * 4
    fmt = '0x{:016x}'
    entries = list(table)

    print(f'static const uint64_t CRC64_NVME_LUT[{len(entries)}] = {{', file=outfile)
    print(f'{indent}{fmt.format(entries.pop(0))}', end='', file=outfile)
    for i, x in enumerate(entries, 1):
        if 0 == (i & 3):
            print(f',\n{indent}{fmt.format(x)}', end='', file=outfile)
        else:
            print(f', {fmt.format(x)}', end='', file=outfile)
    print('\n};', file=outfile)
