"""Install flow."""
import logging
from typing import Optional

from ..components import (
    DEFAULT_INSTALL_ROOT,
    cni,
    containerd,
    iamauthenticator,
    iamrolesanywhere,
    imagecredentialprovider,
    iptables,
    kubectl,
    kubelet,
    ssm,
)
from ..creds import CredentialProvider
from ..errors import NodeadmError
from ..packagemanager import DistroPackageManager
from ..tracker import ContainerdSource, Tracker
from ..utils.cmd import DEFAULT_BACKOFF
from ..utils.deadline import Deadline

logger = logging.getLogger("nodeadm.flows.install")


class Installer:
    """Installs every hybrid node component in dependency order.

    The tracker is saved once, after the last component succeeded. A failed
    run therefore leaves the tracker as the previous run wrote it.

    Args:
        tracker: Current installed state
        source: Provides the kubelet, kubectl, CNI plugins, image credential
            provider, IAM authenticator and signing helper artifacts
        package_manager: Distro package manager
        credential_provider: Which credential provider to install
        containerd_source: Where containerd comes from
        ssm_installer: Serves the SSM installer, required for SSM
        region: Region the SSM agent is installed for
        install_root: Prefix for every file written
        backoff: Seconds between retried package commands
        log: Logger for progress messages
    """

    def __init__(
        self,
        tracker: Tracker,
        source,
        package_manager: DistroPackageManager,
        credential_provider: CredentialProvider,
        containerd_source: ContainerdSource = ContainerdSource.DISTRO,
        ssm_installer: Optional[ssm.SSMInstallerSource] = None,
        region: str = "",
        install_root: str = DEFAULT_INSTALL_ROOT,
        backoff: float = DEFAULT_BACKOFF,
        log: Optional[logging.Logger] = None,
    ):
        self.tracker = tracker
        self.source = source
        self.package_manager = package_manager
        self.credential_provider = credential_provider
        self.containerd_source = containerd_source
        self.ssm_installer = ssm_installer
        self.region = region
        self.install_root = install_root
        self.backoff = backoff
        self.logger = log or logger

    def run(self, deadline: Deadline) -> None:
        self.logger.info("Configuring package manager...")
        self.package_manager.configure(deadline)

        self.logger.info("Installing containerd...")
        containerd.install(deadline, self.tracker, self.package_manager, self.containerd_source,
                           self.backoff, self.logger)

        self.logger.info("Installing iptables...")
        iptables.install(deadline, self.tracker, self.package_manager, self.backoff, self.logger)

        self._install_credential_provider(deadline)

        self.logger.info("Installing kubelet...")
        kubelet.install(self.tracker, self.source, self.install_root)

        self.logger.info("Installing kubectl...")
        kubectl.install(self.tracker, self.source, self.install_root)

        self.logger.info("Installing cni-plugins...")
        cni.install(self.tracker, self.source, self.install_root)

        self.logger.info("Installing image credential provider...")
        imagecredentialprovider.install(self.tracker, self.source, self.install_root)

        self.logger.info("Installing IAM authenticator...")
        iamauthenticator.install(self.tracker, self.source, self.install_root)

        self.tracker.save()
        self.logger.info("Finished installing components")

    def _install_credential_provider(self, deadline: Deadline) -> None:
        if self.credential_provider == CredentialProvider.IAM_ROLES_ANYWHERE:
            self.logger.info("Installing AWS signing helper...")
            iamrolesanywhere.install(self.tracker, self.source, self.install_root)
        elif self.credential_provider == CredentialProvider.SSM:
            if self.ssm_installer is None:
                raise NodeadmError("an SSM installer source is required to install SSM")
            self.logger.info("Installing SSM agent installer...")
            ssm.install(deadline, self.tracker, self.ssm_installer, self.region, self.install_root,
                        self.backoff, self.logger)
        else:
            raise NodeadmError(f"unhandled credential provider: {self.credential_provider}")
