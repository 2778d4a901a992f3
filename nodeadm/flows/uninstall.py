"""Uninstall flow."""
import logging
from typing import Callable, Optional

from .. import system
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
    remove_path,
    rooted,
    ssm,
)
from ..daemon import DaemonManager, DaemonStatus
from ..errors import NodeadmError
from ..packagemanager import DistroPackageManager
from ..tracker import ContainerdSource, Tracker
from ..utils.cmd import DEFAULT_BACKOFF
from ..utils.deadline import Deadline

logger = logging.getLogger("nodeadm.flows.uninstall")

EKS_CONFIG_DIR = "/etc/eks"


class Uninstaller:
    """Removes what the tracker says was installed.

    Every removed component is cleared from the tracker and the tracker is
    saved right away, so an interrupted run can simply be repeated.

    Args:
        tracker: Installed state to unwind
        daemon_manager: Stops the running services
        package_manager: Removes distro packages and added repositories
        os_name: Host OS, used to name the SSM unit
        install_root: Prefix for every file removed
        backoff: Seconds between retried package commands
        log: Logger for progress messages
    """

    def __init__(
        self,
        tracker: Tracker,
        daemon_manager: DaemonManager,
        package_manager: DistroPackageManager,
        os_name: Optional[system.OSName] = None,
        install_root: str = DEFAULT_INSTALL_ROOT,
        backoff: float = DEFAULT_BACKOFF,
        log: Optional[logging.Logger] = None,
    ):
        self.tracker = tracker
        self.daemon_manager = daemon_manager
        self.package_manager = package_manager
        self.os_name = os_name
        self.install_root = install_root
        self.backoff = backoff
        self.logger = log or logger

    def run(self, deadline: Deadline) -> None:
        self._stop_daemons()
        self._uninstall_components(deadline)
        self._cleanup()
        self.logger.info("Finished uninstallation tasks...")
        self.tracker.clear()

    def _stop_daemons(self) -> None:
        artifacts = self.tracker.artifacts
        if artifacts.kubelet:
            self.logger.info("Stopping kubelet daemon...")
            self.daemon_manager.stop_daemon(kubelet.DAEMON_NAME)
        if artifacts.ssm:
            self.logger.info("Stopping SSM daemon...")
            self.daemon_manager.stop_daemon(ssm.daemon_name(self.os_name))
        if artifacts.iam_roles_anywhere:
            # The unit only exists once init ran
            if self.daemon_manager.get_daemon_status(iamrolesanywhere.DAEMON_NAME) != DaemonStatus.UNKNOWN:
                self.logger.info("Stopping aws_signing_helper_update daemon...")
                self.daemon_manager.stop_daemon(iamrolesanywhere.DAEMON_NAME)
        if artifacts.containerd != ContainerdSource.NONE:
            self.logger.info("Stopping containerd daemon...")
            self.daemon_manager.stop_daemon(containerd.DAEMON_NAME)

    def _remove(self, name: str, remove: Callable[[], None]) -> None:
        remove()
        self.tracker.remove(name)
        self.tracker.save()

    def _uninstall_components(self, deadline: Deadline) -> None:
        artifacts = self.tracker.artifacts
        root = self.install_root

        if artifacts.kubelet:
            self.logger.info("Uninstalling kubelet...")
            self._remove(names.KUBELET, lambda: kubelet.uninstall(root))
        if artifacts.ssm:
            self._remove(names.SSM, lambda: ssm.uninstall(deadline, self.package_manager, root,
                                                          self.backoff, self.logger))
        if artifacts.iam_roles_anywhere:
            self.logger.info("Uninstalling AWS signing helper...")
            self._remove(names.IAM_ROLES_ANYWHERE, lambda: iamrolesanywhere.uninstall(root))
        if artifacts.kubectl:
            self.logger.info("Uninstalling kubectl...")
            self._remove(names.KUBECTL, lambda: kubectl.uninstall(root))
        if artifacts.cni_plugins:
            self.logger.info("Uninstalling cni-plugins...")
            self._remove(names.CNI_PLUGINS, lambda: cni.uninstall(root))
        if artifacts.iam_authenticator:
            self.logger.info("Uninstalling IAM authenticator...")
            self._remove(names.IAM_AUTHENTICATOR, lambda: iamauthenticator.uninstall(root))
        if artifacts.image_credential_provider:
            self.logger.info("Uninstalling image credential provider...")
            self._remove(names.IMAGE_CREDENTIAL_PROVIDER, lambda: imagecredentialprovider.uninstall(root))
        if artifacts.iptables:
            self.logger.info("Uninstalling iptables...")
            self._remove(names.IPTABLES, lambda: iptables.uninstall(deadline, self.package_manager,
                                                                    self.backoff, self.logger))
        if artifacts.containerd != ContainerdSource.NONE:
            self.logger.info("Uninstalling containerd...")
            self._remove(names.CONTAINERD, lambda: containerd.uninstall(deadline, self.package_manager, root,
                                                                        self.backoff, self.logger))

    def _cleanup(self) -> None:
        """Remove what no single component owns."""
        self.package_manager.cleanup()
        try:
            remove_path(rooted(self.install_root, EKS_CONFIG_DIR))
        except OSError as e:
            raise NodeadmError(f"removing {EKS_CONFIG_DIR}: {e}") from e
