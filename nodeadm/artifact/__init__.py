"""
Artifact download, verification and installation.
"""
from .checksum import ChecksumError, new_checksum_error, parse_gnu_checksum
from .install import DEFAULT_DIR_PERMS, install_file, install_tar_gz
from .package import Package, new_cmd
from .source import Source, gzipped_with_checksum, with_checksum, with_nop_checksum
from .upgrade import checksum_match, upgrade

__all__ = [
    'ChecksumError',
    'DEFAULT_DIR_PERMS',
    'Package',
    'Source',
    'checksum_match',
    'gzipped_with_checksum',
    'install_file',
    'install_tar_gz',
    'new_checksum_error',
    'new_cmd',
    'parse_gnu_checksum',
    'upgrade',
    'with_checksum',
    'with_nop_checksum',
]
