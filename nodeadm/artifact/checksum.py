"""Checksum parsing and mismatch errors."""
from typing import Union

from ..errors import ChecksumError


def parse_gnu_checksum(data: Union[bytes, str]) -> bytes:
    """Parse a GNU style checksum line.

    GNU checksums are a space separated digest and filename::

        <digest>  <filename>

    Args:
        data: Content of the checksum file

    Returns:
        bytes: The raw digest

    Raises:
        ValueError: If there is no separator or the digest is not hex
    """
    if isinstance(data, bytes):
        data = data.decode('utf-8', errors='replace')

    digest, sep, _ = data.partition(" ")
    if not sep:
        raise ValueError("invalid gnu checksum")

    try:
        return bytes.fromhex(digest)
    except ValueError as e:
        raise ValueError(f"invalid gnu checksum digest {digest!r}: {e}") from e


def new_checksum_error(source) -> ChecksumError:
    """Build a ChecksumError from a fully read source."""
    return ChecksumError(source.expected_checksum(), source.actual_checksum())


__all__ = ['ChecksumError', 'new_checksum_error', 'parse_gnu_checksum']
