"""Container runtime: containerd package, configuration and daemon."""
import logging
import re
from abc import ABC, abstractmethod
from typing import Optional

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .. import system
from ..artifact import names
from ..artifact.package import Package, new_cmd
from ..daemon import Daemon, DaemonManager, DaemonStatus, wait_for_status
from ..errors import CommandError, NodeadmError, PreconditionError
from ..nodeconfig import NodeConfig
from ..tracker import ContainerdSource, Tracker
from ..utils import cmd, templates, write_file_with_dir
from ..utils.cmd import DEFAULT_BACKOFF, retry
from ..utils.deadline import Deadline
from . import CONFIG_PERMS, DEFAULT_INSTALL_ROOT, component_errors, remove_path, rooted

logger = logging.getLogger("nodeadm.components.containerd")

# Pinned to the 1.x series
CONTAINERD_VERSION = "1.*"
CONTAINERD_BIN = "containerd"
RUNC_BIN = "runc"
DAEMON_NAME = "containerd"
KERNEL_MODULES_UNIT = "systemd-modules-load"

CONTAINER_RUNTIME_ENDPOINT = "unix:///run/containerd/containerd.sock"
CONFIG_DIR = "/etc/containerd"
CONFIG_PATH = "/etc/containerd/config.toml"
CONFIG_IMPORT_DIR = "/etc/containerd/config.d"
USER_CONFIG_PATH = "/etc/containerd/config.d/00-nodeadm.toml"
KERNEL_MODULES_PATH = "/etc/modules-load.d/containerd.conf"

RUNNING_TIMEOUT = 5 * 60
RUNNING_BACKOFF = 5
PULL_ATTEMPTS = 3

KERNEL_MODULES = "overlay\nbr_netfilter\n"

_CONFIG_VERSION = re.compile(r'version = (\d+)')
_SANDBOX_IMAGE_V2 = re.compile(r'sandbox_image = [\'"]([^\'"]*)[\'"]')
_SANDBOX_IMAGE_V3 = re.compile(r'sandbox = [\'"]([^\'"]*)[\'"]')


class ContainerdPackageSource(ABC):
    @abstractmethod
    def get_containerd(self, version: str = CONTAINERD_VERSION) -> Package:
        ...


def containerd_and_runc_installed() -> bool:
    return system.command_exists(CONTAINERD_BIN) and system.command_exists(RUNC_BIN)


def install(deadline: Deadline, tracker: Tracker, source: ContainerdPackageSource,
            containerd_source: ContainerdSource, backoff: float = DEFAULT_BACKOFF,
            log: Optional[logging.Logger] = None) -> None:
    """Install containerd from the requested source.

    A runtime that is already on the host is left alone and recorded as
    ``none``, which keeps it out of later upgrades and uninstalls.
    """
    log = log or logger
    if containerd_source == ContainerdSource.NONE or containerd_and_runc_installed():
        log.info("Skipping containerd install, using the runtime already on the host")
        tracker.mark_containerd(ContainerdSource.NONE)
        return

    package = source.get_containerd(CONTAINERD_VERSION)
    # Package installs can collide with other package operations at boot
    with component_errors(names.CONTAINERD):
        try:
            retry(deadline, package.install_cmd, backoff, log)
        except NodeadmError as e:
            raise NodeadmError(f"installing containerd: {e}") from e
    tracker.mark_containerd(containerd_source)


def upgrade(deadline: Deadline, source: ContainerdPackageSource, backoff: float = DEFAULT_BACKOFF,
            log: Optional[logging.Logger] = None) -> None:
    log = log or logger
    package = source.get_containerd(CONTAINERD_VERSION)
    with component_errors(names.CONTAINERD):
        try:
            retry(deadline, package.upgrade_cmd, backoff, log)
        except NodeadmError as e:
            raise NodeadmError(f"upgrading containerd: {e}") from e


def uninstall(deadline: Deadline, source: ContainerdPackageSource, install_root: str = DEFAULT_INSTALL_ROOT,
              backoff: float = DEFAULT_BACKOFF, log: Optional[logging.Logger] = None) -> None:
    log = log or logger
    if not system.command_exists(CONTAINERD_BIN):
        return
    package = source.get_containerd(CONTAINERD_VERSION)
    with component_errors(names.CONTAINERD):
        try:
            retry(deadline, package.uninstall_cmd, backoff, log)
        except NodeadmError as e:
            raise NodeadmError(f"uninstalling containerd: {e}") from e
        try:
            remove_path(rooted(install_root, CONFIG_DIR))
        except OSError as e:
            raise NodeadmError(f"removing containerd config files: {e}") from e


def validate_containerd_source(source: ContainerdSource, os_name: Optional[system.OSName]) -> None:
    """Reject runtime sources the host OS cannot provide.

    Raises:
        PreconditionError: For docker on Amazon Linux and distro on RHEL
    """
    if source == ContainerdSource.DOCKER and os_name == system.OSName.AMAZON_LINUX:
        raise PreconditionError(
            "docker source for containerd is not supported on AL2023. "
            "Please provide `none` or `distro` to the --containerd-source flag"
        )
    if source == ContainerdSource.DISTRO and os_name == system.OSName.RHEL:
        raise PreconditionError(
            "distro source for containerd is not supported on RHEL. "
            "Please provide `none` or `docker` to the --containerd-source flag"
        )


def render_config(config: NodeConfig) -> str:
    return templates.render("containerd-config.toml.j2", import_dir=CONFIG_IMPORT_DIR,
                            sandbox_image=config.spec.containerd.sandbox_image)


def parse_sandbox_image(dump: str) -> str:
    """Find the sandbox image in ``containerd config dump`` output.

    Raises:
        NodeadmError: If the config version is unknown or no image is set
    """
    match = _CONFIG_VERSION.search(dump)
    if match is None:
        raise NodeadmError("failed to parse containerd config version: config version not found in containerd config dump")
    version = int(match.group(1))

    if version == 2:
        pattern = _SANDBOX_IMAGE_V2
    elif version == 3:
        pattern = _SANDBOX_IMAGE_V3
    else:
        raise NodeadmError(f"unsupported containerd config version: {version}")

    image = pattern.search(dump)
    if image is None:
        raise NodeadmError(f"sandbox image could not be found in containerd config (version {version} format)")
    return image.group(1)


class ContainerdDaemon(Daemon):
    """Configures containerd and pre-caches the sandbox image."""

    def __init__(self, manager: DaemonManager, config: NodeConfig,
                 install_root: str = DEFAULT_INSTALL_ROOT, log: Optional[logging.Logger] = None):
        self.manager = manager
        self.config = config
        self.install_root = install_root
        self.logger = log or logger

    @property
    def name(self) -> str:
        return DAEMON_NAME

    def configure(self, deadline: Deadline) -> None:
        self.logger.info(f"Writing containerd config to {CONFIG_PATH}")
        write_file_with_dir(rooted(self.install_root, CONFIG_PATH), render_config(self.config).encode(),
                            CONFIG_PERMS)
        if self.config.spec.containerd.config:
            self.logger.info(f"Writing user containerd config to drop-in file {USER_CONFIG_PATH}")
            write_file_with_dir(rooted(self.install_root, USER_CONFIG_PATH),
                                self.config.spec.containerd.config.encode(), CONFIG_PERMS)
        write_file_with_dir(rooted(self.install_root, KERNEL_MODULES_PATH), KERNEL_MODULES.encode(),
                            CONFIG_PERMS)

    def ensure_running(self, deadline: Deadline) -> None:
        """Load kernel modules, then enable and (re)start containerd."""
        self.manager.restart_daemon(deadline, KERNEL_MODULES_UNIT)
        self.manager.enable_daemon(DAEMON_NAME)
        self.manager.restart_daemon(deadline, DAEMON_NAME)

        self.logger.info("Waiting for containerd to be running...")
        try:
            wait_for_status(deadline.child(RUNNING_TIMEOUT), self.manager, DAEMON_NAME, DaemonStatus.RUNNING,
                            RUNNING_BACKOFF, self.logger)
        except NodeadmError as e:
            raise NodeadmError(f"waiting for containerd to be running: {e}") from e
        self.logger.info("containerd is running")

    def post_launch(self, deadline: Deadline) -> None:
        self.cache_sandbox_image(deadline)

    def cache_sandbox_image(self, deadline: Deadline) -> None:
        """Pull the sandbox image so the first pod does not wait on it."""
        self.logger.info("Looking up current sandbox image in containerd config...")
        dump = cmd.run(new_cmd(CONTAINERD_BIN, "config", "dump"), deadline).stdout
        image = parse_sandbox_image(dump)
        self.logger.info(f"Found sandbox image {image}")

        def pull():
            self.logger.info(f"Pulling sandbox image {image}...")
            cmd.run(new_cmd("ctr", "-n", "k8s.io", "images", "pull", image), deadline)

        retrying = Retrying(
            stop=stop_after_attempt(PULL_ATTEMPTS),
            wait=wait_exponential(multiplier=2, min=2, max=8),
            sleep=deadline.sleep,
            retry=retry_if_exception_type(CommandError),
            reraise=True,
        )
        retrying(pull)
        self.logger.info(f"Finished pulling sandbox image {image}")

    def stop(self) -> None:
        self.manager.stop_daemon(DAEMON_NAME)
