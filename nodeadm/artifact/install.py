"""Writing artifacts to disk."""
import logging
import os
import shutil
import stat
import tarfile
from typing import BinaryIO

logger = logging.getLogger("nodeadm.artifact.install")

# Permissions of parent directories created by the install functions.
DEFAULT_DIR_PERMS = 0o755


def install_file(dst: str, src: BinaryIO, perms: int) -> None:
    """Copy ``src`` into a new file at ``dst``.

    Missing parent directories are created. The destination must not exist:
    callers remove stale files first.

    Args:
        dst: Destination path
        src: Readable binary stream, consumed completely
        perms: Mode of the new file, applied regardless of umask

    Raises:
        FileExistsError: If ``dst`` already exists
    """
    os.makedirs(os.path.dirname(os.path.abspath(dst)), mode=DEFAULT_DIR_PERMS, exist_ok=True)

    fd = os.open(dst, os.O_WRONLY | os.O_CREAT | os.O_EXCL, perms)
    with os.fdopen(fd, 'wb') as fh:
        shutil.copyfileobj(src, fh)
    os.chmod(dst, perms)


def _valid_rel_path(name: str) -> bool:
    if not name or '\\' in name or name.startswith('/'):
        return False
    return '..' not in name.split('/')


def _within(root: str, path: str) -> bool:
    # Follows symlinks already present under the destination
    resolved = os.path.realpath(path)
    return resolved == root or resolved.startswith(root + os.sep)


def install_tar_gz(dst: str, src: str) -> None:
    """Extract the gzipped tarball ``src`` into ``dst`` and delete ``src``.

    Every entry is validated before anything is written, so an archive with
    an entry that would land outside ``dst`` modifies nothing. Directories that
    already exist keep their permissions; extracted entries get the mode
    recorded in the archive.

    Args:
        dst: Destination directory
        src: Path of the .tgz file

    Raises:
        ValueError: If the archive contains an invalid name or entry type, or an
            entry that resolves outside ``dst``
    """
    os.makedirs(dst, mode=DEFAULT_DIR_PERMS, exist_ok=True)

    root = os.path.realpath(dst)
    with tarfile.open(src, 'r:gz') as tar:
        members = tar.getmembers()
        for member in members:
            if not _valid_rel_path(member.name):
                raise ValueError(f"tar contained invalid name error {member.name!r}")
            if not (member.isdir() or member.isreg()):
                raise ValueError(f"tar contained unsupported entry type {member.name!r}")
            if not _within(root, os.path.join(dst, member.name)):
                raise ValueError(f"tar entry {member.name!r} resolves outside {dst}")

        for member in members:
            target = os.path.join(dst, member.name)
            mode = stat.S_IMODE(member.mode)
            if member.isdir():
                if not os.path.isdir(target):
                    os.makedirs(target, mode=DEFAULT_DIR_PERMS, exist_ok=True)
                    os.chmod(target, mode)
                continue

            os.makedirs(os.path.dirname(target), mode=DEFAULT_DIR_PERMS, exist_ok=True)
            extracted = tar.extractfile(member)
            with extracted, open(target, 'wb') as fh:
                shutil.copyfileobj(extracted, fh)
            os.chmod(target, mode)
            logger.debug(f"Extracted {member.name} to {target}")

    os.remove(src)
