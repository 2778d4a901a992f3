"""Upgrade flow."""
import logging
from typing import Optional, Sequence

from ..artifact import names
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
from ..daemon import Daemon, DaemonManager, DaemonStatus
from ..errors import NodeadmError, PreconditionError
from ..node import INIT_VALIDATION, check_initialized
from ..nodeconfig import NodeConfig
from ..packagemanager import DistroPackageManager
from ..tracker import ContainerdSource, Tracker
from ..utils.cmd import DEFAULT_BACKOFF
from ..utils.deadline import Deadline
from .init import Initializer

logger = logging.getLogger("nodeadm.flows.upgrade")


class Upgrader:
    """Upgrades installed components in place and restarts the daemons.

    Upgraded components are recorded in a fresh tracker which replaces the
    old tracker file only after the daemons came up again.

    Args:
        tracker: Installed state
        source: Artifact source of the target release
        package_manager: Distro package manager
        daemon_manager: Used to check whether the kubelet runs
        config: Node configuration
        daemons: Daemons re-initialized after the upgrade
        ssm_installer: Serves the SSM installer, required for SSM
        validator: Pre-flight checks, run when the kubelet is up
        skip: Skipped init phases, the init validation and pre-flight checks
        install_root: Prefix for every file written
        backoff: Seconds between retried package commands
        log: Logger for progress messages
    """

    def __init__(
        self,
        tracker: Tracker,
        source,
        package_manager: DistroPackageManager,
        daemon_manager: DaemonManager,
        config: NodeConfig,
        daemons: Sequence[Daemon],
        ssm_installer: Optional[ssm.SSMInstallerSource] = None,
        validator=None,
        skip: Sequence[str] = (),
        install_root: str = DEFAULT_INSTALL_ROOT,
        backoff: float = DEFAULT_BACKOFF,
        log: Optional[logging.Logger] = None,
    ):
        self.tracker = tracker
        self.source = source
        self.package_manager = package_manager
        self.daemon_manager = daemon_manager
        self.config = config
        self.daemons = list(daemons)
        self.ssm_installer = ssm_installer
        self.validator = validator
        self.skip = list(skip)
        self.install_root = install_root
        self.backoff = backoff
        self.logger = log or logger

    def run(self, deadline: Deadline) -> None:
        if INIT_VALIDATION not in self.skip:
            self.logger.info("Validating if node has initialized")
            check_initialized(self.install_root)
        self.check_credential_provider()
        self._preflight()

        fresh = Tracker(path=self.tracker.path)
        self._upgrade_distro_packages(deadline, fresh)
        self._upgrade_credential_provider(deadline, fresh)
        self._upgrade_eks_artifacts(fresh)

        Initializer(self.daemons, self.skip, self.logger).run(deadline)

        self.tracker.clear()
        fresh.save()
        self.tracker = fresh
        self.logger.info("Finished upgrading components")

    def check_credential_provider(self) -> None:
        """Fail before touching anything when the credential provider changes.

        Raises:
            PreconditionError: If the configured provider differs from the installed one
        """
        installed = self.tracker.credential_provider()
        if installed != self.config.credential_provider:
            raise PreconditionError(
                "upgrade does not support changing credential providers. "
                "Please uninstall and install with new credential provider"
            )

    def _preflight(self) -> None:
        if self.validator is None or not self.tracker.artifacts.kubelet:
            return
        if self.daemon_manager.get_daemon_status(kubelet.DAEMON_NAME) != DaemonStatus.RUNNING:
            self.logger.info("kubelet is not running, skipping node validations")
            return
        self.validator.run(self.skip)

    def _upgrade_distro_packages(self, deadline: Deadline, fresh: Tracker) -> None:
        self.logger.info("Refreshing package manager metadata cache...")
        self.package_manager.refresh_metadata_cache(deadline)

        source = self.tracker.artifacts.containerd
        if source != ContainerdSource.NONE:
            self.logger.info("Upgrading containerd...")
            containerd.upgrade(deadline, self.package_manager, self.backoff, self.logger)
        fresh.mark_containerd(source)

        if self.tracker.artifacts.iptables:
            self.logger.info("Upgrading iptables...")
            iptables.upgrade(deadline, self.package_manager, self.backoff, self.logger)
            fresh.add(names.IPTABLES)

    def _upgrade_credential_provider(self, deadline: Deadline, fresh: Tracker) -> None:
        provider = self.config.credential_provider
        if provider == CredentialProvider.IAM_ROLES_ANYWHERE:
            self.logger.info("Upgrading AWS signing helper...")
            iamrolesanywhere.upgrade(self.source, self.install_root, self.logger)
            fresh.add(names.IAM_ROLES_ANYWHERE)
        elif provider == CredentialProvider.SSM:
            if self.ssm_installer is None:
                raise NodeadmError("an SSM installer source is required to upgrade SSM")
            self.logger.info("Upgrading SSM agent installer...")
            ssm.upgrade(deadline, self.ssm_installer, self.config.spec.cluster.region, self.install_root,
                        self.backoff, self.logger)
            fresh.add(names.SSM)
        else:
            raise NodeadmError(f"installed credential provider {provider} is not supported for upgrade")

    def _upgrade_eks_artifacts(self, fresh: Tracker) -> None:
        root = self.install_root

        self.logger.info("Upgrading kubelet...")
        kubelet.upgrade(self.source, root, self.logger)
        fresh.add(names.KUBELET)

        self.logger.info("Upgrading kubectl...")
        kubectl.upgrade(self.source, root, self.logger)
        fresh.add(names.KUBECTL)

        self.logger.info("Upgrading image credential provider...")
        imagecredentialprovider.upgrade(self.source, root, self.logger)
        fresh.add(names.IMAGE_CREDENTIAL_PROVIDER)

        self.logger.info("Upgrading IAM authenticator...")
        iamauthenticator.upgrade(self.source, root, self.logger)
        fresh.add(names.IAM_AUTHENTICATOR)

        self.logger.info("Upgrading cni-plugins...")
        cni.upgrade(self.source, root, self.logger)
        fresh.add(names.CNI_PLUGINS)
