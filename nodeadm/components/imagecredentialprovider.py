"""ECR image credential provider used by the kubelet."""
import logging
from abc import ABC, abstractmethod
from typing import Optional

from ..artifact import names
from ..artifact.source import Source
from ..artifact.upgrade import upgrade as upgrade_artifact
from ..tracker import Tracker
from . import BINARY_PERMS, DEFAULT_INSTALL_ROOT, component_errors, install_verified, remove_path, rooted

BIN_PATH = "/etc/eks/image-credential-provider/ecr-credential-provider"


class ImageCredentialProviderSource(ABC):
    @abstractmethod
    def get_image_credential_provider(self) -> Source:
        ...


def install(tracker: Tracker, source: ImageCredentialProviderSource,
            install_root: str = DEFAULT_INSTALL_ROOT) -> None:
    with component_errors(names.IMAGE_CREDENTIAL_PROVIDER):
        install_verified(rooted(install_root, BIN_PATH), source.get_image_credential_provider(), BINARY_PERMS)
    tracker.add(names.IMAGE_CREDENTIAL_PROVIDER)


def upgrade(source: ImageCredentialProviderSource, install_root: str = DEFAULT_INSTALL_ROOT,
            log: Optional[logging.Logger] = None) -> bool:
    with component_errors(names.IMAGE_CREDENTIAL_PROVIDER):
        with source.get_image_credential_provider() as src:
            return upgrade_artifact(names.IMAGE_CREDENTIAL_PROVIDER, rooted(install_root, BIN_PATH), src,
                                    BINARY_PERMS, log)


def uninstall(install_root: str = DEFAULT_INSTALL_ROOT) -> None:
    with component_errors(names.IMAGE_CREDENTIAL_PROVIDER):
        remove_path(rooted(install_root, BIN_PATH))
