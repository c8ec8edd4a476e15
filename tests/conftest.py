import os

import pytest


class ChunkedReader:
    '''Hands out `data` in reads no bigger than the successive `sizes`.'''

    def __init__(self, data, sizes=(1,)):
        self.data = memoryview(data)
        self.sizes = sizes
        self.pos = 0
        self.calls = 0
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self):
        self.closed = True

    def read(self, size=-1):
        limit = self.sizes[self.calls % len(self.sizes)]
        self.calls += 1
        if size >= 0:
            limit = min(limit, size)
        chunk = bytes(self.data[self.pos : self.pos + limit])
        self.pos += len(chunk)
        return chunk


class ChunkedReadinto(ChunkedReader):
    def readinto(self, buf):
        chunk = self.read(len(buf))
        buf[: len(chunk)] = chunk
        return len(chunk)


class FailingReader(ChunkedReader):
    '''Delivers `data` and then fails instead of signalling end-of-stream.'''

    def read(self, size=-1):
        chunk = super().read(size)
        if not chunk:
            raise OSError(5, 'Input/output error')
        return chunk


class FailingReadinto(FailingReader):
    def readinto(self, buf):
        chunk = self.read(len(buf))
        buf[: len(chunk)] = chunk
        return len(chunk)


class StallingReader:
    '''Non-blocking style source: a `None` in `chunks` means nothing ready.'''

    def __init__(self, chunks):
        self.chunks = list(chunks)

    def read(self, size=-1):
        if not self.chunks:
            return b''
        return self.chunks.pop(0)


class StallingReadinto(StallingReader):
    def readinto(self, buf):
        chunk = self.read(len(buf))
        if chunk is None:
            return None
        buf[: len(chunk)] = chunk
        return len(chunk)


class FakeStdin:
    def __init__(self, buffer):
        self.buffer = buffer


@pytest.fixture(autouse=True)
def _clean_environ(monkeypatch):
    for key in list(os.environ):
        if key.startswith('S3CRC_'):
            monkeypatch.delenv(key)
