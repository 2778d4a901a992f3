"""Artifact sources: byte streams that verify their own checksum.

A source is read like a binary file. Its ``actual_checksum`` and
``verify_checksum`` are only meaningful once the stream has been read to the
end; verifying earlier compares an incomplete digest and returns False.
"""
import gzip
import hmac
from abc import ABC, abstractmethod
from typing import BinaryIO, Union

from .checksum import parse_gnu_checksum


class Source(ABC):
    """A readable, closable artifact stream with checksum verification."""

    @abstractmethod
    def read(self, size: int = -1) -> bytes:
        ...

    @abstractmethod
    def close(self) -> None:
        ...

    @abstractmethod
    def expected_checksum(self) -> bytes:
        ...

    @abstractmethod
    def actual_checksum(self) -> bytes:
        ...

    def verify_checksum(self) -> bool:
        return hmac.compare_digest(self.actual_checksum(), self.expected_checksum())

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class _ChecksumSource(Source):
    """Tees everything read from ``stream`` into ``digest``."""

    def __init__(self, stream: BinaryIO, digest, expect: bytes, closers=()):
        self._stream = stream
        self._digest = digest
        self._expect = expect
        self._closers = closers

    def read(self, size: int = -1) -> bytes:
        data = self._stream.read(size)
        if data:
            self._digest.update(data)
        return data

    def close(self) -> None:
        self._stream.close()
        for closer in self._closers:
            closer.close()

    def expected_checksum(self) -> bytes:
        return self._expect

    def actual_checksum(self) -> bytes:
        return self._digest.digest()


class _NopChecksumSource(Source):
    """A trusted stream, e.g. delivered by the OS package manager."""

    def __init__(self, stream: BinaryIO):
        self._stream = stream

    def read(self, size: int = -1) -> bytes:
        return self._stream.read(size)

    def close(self) -> None:
        self._stream.close()

    def expected_checksum(self) -> bytes:
        return b''

    def actual_checksum(self) -> bytes:
        return b''

    def verify_checksum(self) -> bool:
        return True


def with_checksum(stream: BinaryIO, digest, checksum: Union[bytes, str]) -> Source:
    """Wrap a stream so its digest is compared to a GNU formatted checksum.

    Args:
        stream: Binary stream of the artifact
        digest: A fresh hashlib object, e.g. ``hashlib.sha256()``
        checksum: Content of the GNU checksum file

    Raises:
        ValueError: If the checksum cannot be parsed
    """
    return _ChecksumSource(stream, digest, parse_gnu_checksum(checksum))


def gzipped_with_checksum(stream: BinaryIO, digest, checksum: Union[bytes, str]) -> Source:
    """Like :func:`with_checksum` for a gzip stream.

    The digest is computed over the decompressed bytes.

    Raises:
        ValueError: If the checksum cannot be parsed or the stream is not gzip
    """
    expect = parse_gnu_checksum(checksum)
    gz = gzip.GzipFile(fileobj=stream, mode='rb')
    try:
        # Forces the gzip header to be read
        gz.peek(1)
    except (OSError, EOFError) as e:
        raise ValueError(f"getting gzip reader: {e}") from e
    return _ChecksumSource(gz, digest, expect, closers=(stream,))


def with_nop_checksum(stream: BinaryIO) -> Source:
    """Wrap a stream that is trusted without verification."""
    return _NopChecksumSource(stream)
