"""
Installers for the components that make up a hybrid node.

Every component module exposes ``install``, ``uninstall`` and, where it makes
sense, ``upgrade``. Paths are resolved against an install root so the same
code can target a scratch directory.
"""
import os
import shutil
from contextlib import contextmanager

from ..artifact.checksum import new_checksum_error
from ..artifact.install import install_file
from ..artifact.source import Source
from ..errors import ChecksumError, ComponentError, NodeadmError

DEFAULT_INSTALL_ROOT = "/"
BINARY_PERMS = 0o755
CONFIG_PERMS = 0o644


def rooted(install_root: str, path: str) -> str:
    """Resolve an absolute host path against ``install_root``."""
    return os.path.join(install_root, path.lstrip("/"))


def remove_path(path: str) -> None:
    """Remove a file or directory tree; missing paths are fine."""
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    elif os.path.lexists(path):
        os.remove(path)


def install_verified(path: str, source: Source, perms: int = BINARY_PERMS) -> None:
    """Replace ``path`` with the content of ``source`` and verify its checksum.

    Raises:
        ChecksumError: If the downloaded content does not match
    """
    with source:
        remove_path(path)
        install_file(path, source, perms)
        if not source.verify_checksum():
            raise new_checksum_error(source)


@contextmanager
def component_errors(name: str):
    """Prefix failures inside the block with the component name.

    Checksum mismatches pass through unchanged so both digests can be reported.
    """
    try:
        yield
    except (ChecksumError, ComponentError):
        raise
    except (NodeadmError, OSError, ValueError) as e:
        raise ComponentError(name, str(e)) from e
