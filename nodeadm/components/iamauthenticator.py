"""aws-iam-authenticator binary."""
import logging
from abc import ABC, abstractmethod
from typing import Optional

from ..artifact import names
from ..artifact.source import Source
from ..artifact.upgrade import upgrade as upgrade_artifact
from ..tracker import Tracker
from . import BINARY_PERMS, DEFAULT_INSTALL_ROOT, component_errors, install_verified, remove_path, rooted

BIN_PATH = "/usr/local/bin/aws-iam-authenticator"


class IAMAuthenticatorSource(ABC):
    @abstractmethod
    def get_iam_authenticator(self) -> Source:
        ...


def install(tracker: Tracker, source: IAMAuthenticatorSource, install_root: str = DEFAULT_INSTALL_ROOT) -> None:
    with component_errors(names.IAM_AUTHENTICATOR):
        install_verified(rooted(install_root, BIN_PATH), source.get_iam_authenticator(), BINARY_PERMS)
    tracker.add(names.IAM_AUTHENTICATOR)


def upgrade(source: IAMAuthenticatorSource, install_root: str = DEFAULT_INSTALL_ROOT,
            log: Optional[logging.Logger] = None) -> bool:
    with component_errors(names.IAM_AUTHENTICATOR):
        with source.get_iam_authenticator() as src:
            return upgrade_artifact(names.IAM_AUTHENTICATOR, rooted(install_root, BIN_PATH), src,
                                    BINARY_PERMS, log)


def uninstall(install_root: str = DEFAULT_INSTALL_ROOT) -> None:
    with component_errors(names.IAM_AUTHENTICATOR):
        remove_path(rooted(install_root, BIN_PATH))
