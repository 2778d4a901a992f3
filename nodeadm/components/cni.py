"""CNI plugins, delivered as a tarball and extracted to /opt/cni/bin."""
import logging
from abc import ABC, abstractmethod
from typing import Optional

from ..artifact import names
from ..artifact.install import install_tar_gz
from ..artifact.source import Source
from ..tracker import Tracker
from . import BINARY_PERMS, DEFAULT_INSTALL_ROOT, component_errors, install_verified, remove_path, rooted

logger = logging.getLogger("nodeadm.components.cni")

BIN_PATH = "/opt/cni/bin"
TGZ_PATH = "/opt/cni/plugins/cni-plugins.tgz"


class CniPluginsSource(ABC):
    @abstractmethod
    def get_cni_plugins(self) -> Source:
        ...


def _install(source: CniPluginsSource, install_root: str) -> None:
    install_verified(rooted(install_root, TGZ_PATH), source.get_cni_plugins(), BINARY_PERMS)
    install_tar_gz(rooted(install_root, BIN_PATH), rooted(install_root, TGZ_PATH))


def install(tracker: Tracker, source: CniPluginsSource, install_root: str = DEFAULT_INSTALL_ROOT) -> None:
    """Download the plugin tarball, verify it and extract it into the bin directory."""
    with component_errors(names.CNI_PLUGINS):
        _install(source, install_root)
    tracker.add(names.CNI_PLUGINS)


def upgrade(source: CniPluginsSource, install_root: str = DEFAULT_INSTALL_ROOT,
            log: Optional[logging.Logger] = None) -> bool:
    """Re-extract the plugins from the release tarball.

    The tarball is deleted after extraction, so there is no installed file to
    compare checksums against and the plugins are always replaced.
    """
    log = log or logger
    with component_errors(names.CNI_PLUGINS):
        _install(source, install_root)
    log.info(f"Upgraded {names.CNI_PLUGINS}")
    return True


def uninstall(install_root: str = DEFAULT_INSTALL_ROOT) -> None:
    with component_errors(names.CNI_PLUGINS):
        remove_path(rooted(install_root, BIN_PATH))
