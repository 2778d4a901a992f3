"""Checksum-gated in-place upgrades of installed artifacts."""
import hashlib
import logging
import os
from typing import Optional

from ..errors import NodeadmError
from .checksum import new_checksum_error
from .install import install_file
from .source import Source

logger = logging.getLogger("nodeadm.artifact.upgrade")


def checksum_match(installed_path: str, source: Source) -> bool:
    """Compare the sha256 of an installed file with the source's expected digest.

    Raises:
        NodeadmError: If the installed file cannot be read
    """
    digest = hashlib.sha256()
    try:
        with open(installed_path, 'rb') as fh:
            for chunk in iter(lambda: fh.read(64 * 1024), b''):
                digest.update(chunk)
    except OSError as e:
        raise NodeadmError(f"checking for checksum match: {e}") from e
    return digest.digest() == source.expected_checksum()


def upgrade(
    name: str,
    path: str,
    source: Source,
    perms: int,
    log: Optional[logging.Logger] = None,
) -> bool:
    """Replace the artifact at ``path`` when the source holds a different version.

    Args:
        name: Artifact name used in log and error messages
        path: Location of the installed artifact
        source: Source of the candidate version
        perms: Mode of the upgraded file
        log: Logger to report progress to

    Returns:
        bool: True if the artifact was replaced, False if it was already current

    Raises:
        ChecksumError: If the written artifact does not match its checksum
    """
    log = log or logger
    if checksum_match(path, source):
        log.info(f"No new version found for artifact {name}. Skipping upgrade.")
        return False

    try:
        os.remove(path)
        install_file(path, source, perms)
    except OSError as e:
        raise NodeadmError(f"installing {name}: {e}") from e

    if not source.verify_checksum():
        raise new_checksum_error(source)

    log.info(f"Upgraded {name}")
    return True
