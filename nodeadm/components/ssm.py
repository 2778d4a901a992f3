"""AWS Systems Manager agent: installer, hybrid activation and daemon."""
import json
import logging
import os
from abc import ABC, abstractmethod
from typing import BinaryIO, Optional

import requests
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt

from .. import system
from ..artifact import names
from ..artifact.install import install_file
from ..artifact.package import Package, new_cmd
from ..daemon import Daemon, DaemonManager, DaemonStatus, retry_operation, wait_for_status
from ..errors import NodeadmError
from ..nodeconfig import NodeConfig
from ..tracker import Tracker
from ..utils.cmd import DEFAULT_BACKOFF, retry
from ..utils.deadline import Deadline
from . import BINARY_PERMS, DEFAULT_INSTALL_ROOT, component_errors, remove_path, rooted

logger = logging.getLogger("nodeadm.components.ssm")

INSTALLER_PATH = "/opt/ssm/ssm-setup-cli"
REGISTRATION_PATH = "/var/lib/amazon/ssm/registration"
DAEMON_NAME = "amazon-ssm-agent"
SNAP_DAEMON_NAME = "snap.amazon-ssm-agent.amazon-ssm-agent"
AGENT_PATHS = [
    "/usr/bin/amazon-ssm-agent",
    "/snap/amazon-ssm-agent/current/amazon-ssm-agent",
]

AWS_CONFIG_PATH = "/root/.aws"
EKS_HYBRID_PATH = "/eks-hybrid"
SYMLINKED_AWS_CONFIG_PATH = "/eks-hybrid/.aws"

# The installer is always fetched from one region; it installs the agent for
# the region given on the command line.
INSTALLER_REGION = "us-west-2"
INSTALLER_URL = "https://amazon-ssm-{region}.s3.{region}.amazonaws.com/latest/{platform}/ssm-setup-cli"
DOWNLOAD_ATTEMPTS = 3
HTTP_TIMEOUT = 120

REGISTRATION_TIMEOUT = 60
REGISTRATION_BACKOFF = 10
RESTART_TIMEOUT = 5 * 60
RESTART_BACKOFF = 20
RUNNING_TIMEOUT = 5 * 60
RUNNING_BACKOFF = 5

_PLATFORM_VARIANTS = {"apt": "debian", "dnf": "linux", "yum": "linux"}


class SSMInstallerSource(ABC):
    """Serves the ``ssm-setup-cli`` installer."""

    @abstractmethod
    def get_ssm_installer(self) -> BinaryIO:
        ...


class SSMPackageSource(ABC):
    """Provides the package commands managing the agent."""

    @abstractmethod
    def get_ssm_package(self) -> Package:
        ...


def installer_url(variant: str, arch: system.Arch) -> str:
    return INSTALLER_URL.format(region=INSTALLER_REGION, platform=f"{variant}_{arch.value}")


def detect_platform_variant() -> str:
    """Installer flavor for the package manager found on the host."""
    for manager, variant in _PLATFORM_VARIANTS.items():
        if system.command_exists(manager):
            return variant
    raise NodeadmError("unsupported platform")


class HttpSSMInstallerSource(SSMInstallerSource):
    """Downloads the installer from the official release bucket."""

    def __init__(self, variant: Optional[str] = None, arch: Optional[system.Arch] = None):
        self.variant = variant
        self.arch = arch

    def get_ssm_installer(self) -> BinaryIO:
        url = installer_url(self.variant or detect_platform_variant(), self.arch or system.get_arch())
        try:
            response = requests.get(url, timeout=HTTP_TIMEOUT, stream=True)
        except requests.RequestException as e:
            raise NodeadmError(f"getting ssm-setup-cli: {e}") from e
        if response.status_code != 200:
            response.close()
            raise NodeadmError(f"getting ssm-setup-cli: unexpected status code {response.status_code}")
        response.raw.decode_content = True
        return response.raw


def _download_installer(source: SSMInstallerSource, path: str, log: logging.Logger) -> None:
    def download() -> None:
        remove_path(path)
        with source.get_ssm_installer() as installer:
            install_file(path, installer, BINARY_PERMS)

    def log_failure(retry_state) -> None:
        log.error(f"Downloading ssm-setup-cli failed. Retrying...: {retry_state.outcome.exception()}")

    retrying = Retrying(
        stop=stop_after_attempt(DOWNLOAD_ATTEMPTS),
        retry=retry_if_exception_type((NodeadmError, OSError)),
        before_sleep=log_failure,
        reraise=True,
    )
    try:
        retrying(download)
    except (NodeadmError, OSError) as e:
        raise NodeadmError(f"failed to install ssm installer: {e}") from e


def _install_from_source(deadline: Deadline, source: SSMInstallerSource, region: str, install_root: str,
                         backoff: float, log: logging.Logger) -> None:
    installer_path = rooted(install_root, INSTALLER_PATH)
    _download_installer(source, installer_path, log)

    # Installs can collide with other package operations running at boot
    def install_cmd():
        return new_cmd(installer_path, "-install", "-region", region, "-version", "latest")

    try:
        retry(deadline, install_cmd, backoff, log)
    except NodeadmError as e:
        raise NodeadmError(f"failed to install ssm agent: {e}") from e


def install(deadline: Deadline, tracker: Tracker, source: SSMInstallerSource, region: str,
            install_root: str = DEFAULT_INSTALL_ROOT, backoff: float = DEFAULT_BACKOFF,
            log: Optional[logging.Logger] = None) -> None:
    """Download ``ssm-setup-cli`` and install the agent for ``region``."""
    log = log or logger
    with component_errors(names.SSM):
        _install_from_source(deadline, source, region, install_root, backoff, log)
    tracker.add(names.SSM)


def upgrade(deadline: Deadline, source: SSMInstallerSource, region: str,
            install_root: str = DEFAULT_INSTALL_ROOT, backoff: float = DEFAULT_BACKOFF,
            log: Optional[logging.Logger] = None) -> None:
    log = log or logger
    with component_errors(names.SSM):
        _install_from_source(deadline, source, region, install_root, backoff, log)
    log.info(f"Upgraded {names.SSM}")


def uninstall(deadline: Deadline, package_source: SSMPackageSource, install_root: str = DEFAULT_INSTALL_ROOT,
              backoff: float = DEFAULT_BACKOFF, log: Optional[logging.Logger] = None) -> None:
    """Remove the agent package and the installer.

    The registration and credentials files are left in place.
    """
    log = log or logger
    log.info("Uninstalling SSM agent...")
    with component_errors(names.SSM):
        package = package_source.get_ssm_package()
        try:
            retry(deadline, package.uninstall_cmd, backoff, log)
        except NodeadmError as e:
            raise NodeadmError(f"uninstalling ssm: {e}") from e
        remove_path(rooted(install_root, INSTALLER_PATH))


def registered_instance_id(install_root: str = DEFAULT_INSTALL_ROOT) -> str:
    """The managed instance id the agent registered as.

    Raises:
        FileNotFoundError: If the machine is not registered
        NodeadmError: If the registration file cannot be parsed
    """
    path = rooted(install_root, REGISTRATION_PATH)
    with open(path, 'r', encoding='utf-8') as f:
        try:
            registration = json.load(f)
        except ValueError as e:
            raise NodeadmError(f"reading ssm registration file: {e}") from e
    instance_id = registration.get("ManagedInstanceID", "") if isinstance(registration, dict) else ""
    if not instance_id:
        raise NodeadmError("reading ssm registration file: ManagedInstanceID is missing")
    return instance_id


def daemon_name(os_name: Optional[system.OSName]) -> str:
    """Ubuntu installs the agent from snap, which names the unit differently."""
    if os_name == system.OSName.UBUNTU:
        return SNAP_DAEMON_NAME
    return DAEMON_NAME


class SsmDaemon(Daemon):
    """Registers the machine as a hybrid managed instance and runs the agent.

    Args:
        manager: Daemon manager controlling the agent unit
        config: Node configuration carrying the activation
        os_name: Host OS, detected when omitted
        install_root: Prefix for every file read or written
        log: Logger for progress messages
    """

    def __init__(self, manager: DaemonManager, config: NodeConfig, os_name: Optional[system.OSName] = None,
                 install_root: str = DEFAULT_INSTALL_ROOT, log: Optional[logging.Logger] = None):
        self.manager = manager
        self.config = config
        self.install_root = install_root
        self.logger = log or logger
        self._name = daemon_name(os_name if os_name is not None else system.get_os_name())

    @property
    def name(self) -> str:
        return self._name

    def configure(self, deadline: Deadline) -> None:
        try:
            self._register(deadline)
        except NodeadmError as e:
            message = str(e)
            if "ActivationExpired" in message:
                raise NodeadmError("SSM activation expired. Please use a valid activation") from e
            if "InvalidActivation" in message:
                raise NodeadmError(
                    "invalid SSM activation. Please use a valid activation code, activation id and region"
                ) from e
            raise

    def _agent_path(self) -> str:
        for path in AGENT_PATHS:
            candidate = rooted(self.install_root, path)
            if os.path.exists(candidate):
                return candidate
        raise NodeadmError(
            f"can't register without ssm agent installed: ssm agent binary not found in any of "
            f"the well known paths {AGENT_PATHS}"
        )

    def _register(self, deadline: Deadline) -> None:
        if os.path.exists(rooted(self.install_root, REGISTRATION_PATH)):
            self.logger.info("SSM agent already registered, skipping registration")
            return

        agent_path = self._agent_path()
        ssm = self.config.spec.hybrid.ssm
        region = self.config.spec.cluster.region

        def register():
            return new_cmd(agent_path, "-register", "-y", "-region", region,
                           "-code", ssm.activation_code, "-id", ssm.activation_id)

        self.logger.info("Registering machine with SSM agent")
        try:
            retry(deadline.child(REGISTRATION_TIMEOUT), register, REGISTRATION_BACKOFF, self.logger)
        except NodeadmError as e:
            raise NodeadmError(f"failed to register machine with SSM after multiple attempts: {e}") from e

    def ensure_running(self, deadline: Deadline) -> None:
        self.manager.enable_daemon(self._name)

        self.logger.info("Restarting SSM agent...")
        # Restarts mostly fail when the unit is rate limited, so back off for longer
        try:
            retry_operation(deadline.child(RESTART_TIMEOUT), self.manager.restart_daemon, self._name,
                            RESTART_BACKOFF, self.logger)
        except NodeadmError as e:
            raise NodeadmError(f"restarting SSM agent: {e}") from e

        self.logger.info("Waiting for SSM agent to be running...")
        try:
            wait_for_status(deadline.child(RUNNING_TIMEOUT), self.manager, self._name, DaemonStatus.RUNNING,
                            RUNNING_BACKOFF, self.logger)
        except NodeadmError as e:
            raise NodeadmError(f"waiting for SSM agent to be running: {e}") from e
        self.logger.info("SSM agent is running")

    def post_launch(self, deadline: Deadline) -> None:
        """Expose the agent's credentials under /eks-hybrid when requested."""
        if not self.config.spec.hybrid.enable_credentials_file:
            return

        link = rooted(self.install_root, SYMLINKED_AWS_CONFIG_PATH)
        self.logger.info(f"Creating symlink for AWS credentials at {SYMLINKED_AWS_CONFIG_PATH}")
        try:
            os.makedirs(rooted(self.install_root, EKS_HYBRID_PATH), mode=0o755, exist_ok=True)
            remove_path(link)
            os.symlink(AWS_CONFIG_PATH, link)
        except OSError as e:
            raise NodeadmError(f"creating symlink: {e}") from e

    def stop(self) -> None:
        self.manager.stop_daemon(self._name)
