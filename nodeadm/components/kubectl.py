"""kubectl binary."""
import logging
from abc import ABC, abstractmethod
from typing import Optional

from ..artifact import names
from ..artifact.source import Source
from ..artifact.upgrade import upgrade as upgrade_artifact
from ..tracker import Tracker
from . import BINARY_PERMS, DEFAULT_INSTALL_ROOT, component_errors, install_verified, remove_path, rooted

BIN_PATH = "/usr/local/bin/kubectl"


class KubectlSource(ABC):
    @abstractmethod
    def get_kubectl(self) -> Source:
        ...


def install(tracker: Tracker, source: KubectlSource, install_root: str = DEFAULT_INSTALL_ROOT) -> None:
    with component_errors(names.KUBECTL):
        install_verified(rooted(install_root, BIN_PATH), source.get_kubectl(), BINARY_PERMS)
    tracker.add(names.KUBECTL)


def upgrade(source: KubectlSource, install_root: str = DEFAULT_INSTALL_ROOT,
            log: Optional[logging.Logger] = None) -> bool:
    with component_errors(names.KUBECTL):
        with source.get_kubectl() as src:
            return upgrade_artifact(names.KUBECTL, rooted(install_root, BIN_PATH), src, BINARY_PERMS, log)


def uninstall(install_root: str = DEFAULT_INSTALL_ROOT) -> None:
    with component_errors(names.KUBECTL):
        remove_path(rooted(install_root, BIN_PATH))
