"""IAM Roles Anywhere signing helper and the service keeping credentials fresh."""
import logging
import os
from abc import ABC, abstractmethod
from typing import Optional

from ..artifact import names
from ..artifact.source import Source
from ..artifact.upgrade import upgrade as upgrade_artifact
from ..daemon import Daemon, DaemonManager
from ..errors import NodeadmError
from ..nodeconfig import NodeConfig
from ..tracker import Tracker
from ..utils import templates, write_file_with_dir
from ..utils.deadline import Deadline
from . import (
    BINARY_PERMS,
    CONFIG_PERMS,
    DEFAULT_INSTALL_ROOT,
    component_errors,
    install_verified,
    remove_path,
    rooted,
)

logger = logging.getLogger("nodeadm.components.iamrolesanywhere")

BIN_PATH = "/usr/local/bin/aws_signing_helper"
DAEMON_NAME = "aws_signing_helper_update"
UNIT_PATH = "/etc/systemd/system/aws_signing_helper_update.service"
CREDENTIALS_PATH = "/eks-hybrid/.aws/credentials"

CREDENTIALS_TIMEOUT = 2 * 60
CREDENTIALS_POLL_INTERVAL = 2


class SigningHelperSource(ABC):
    @abstractmethod
    def get_signing_helper(self) -> Source:
        ...


def install(tracker: Tracker, source: SigningHelperSource, install_root: str = DEFAULT_INSTALL_ROOT) -> None:
    with component_errors(names.IAM_ROLES_ANYWHERE):
        install_verified(rooted(install_root, BIN_PATH), source.get_signing_helper(), BINARY_PERMS)
    tracker.add(names.IAM_ROLES_ANYWHERE)


def upgrade(source: SigningHelperSource, install_root: str = DEFAULT_INSTALL_ROOT,
            log: Optional[logging.Logger] = None) -> bool:
    with component_errors(names.IAM_ROLES_ANYWHERE):
        with source.get_signing_helper() as src:
            return upgrade_artifact(names.IAM_ROLES_ANYWHERE, rooted(install_root, BIN_PATH), src,
                                    BINARY_PERMS, log)


def uninstall(install_root: str = DEFAULT_INSTALL_ROOT) -> None:
    """Remove the helper, its unit and the generated credentials."""
    with component_errors(names.IAM_ROLES_ANYWHERE):
        remove_path(rooted(install_root, UNIT_PATH))
        remove_path(rooted(install_root, os.path.dirname(CREDENTIALS_PATH)))
        remove_path(rooted(install_root, BIN_PATH))


def render_unit(config: NodeConfig) -> str:
    """Render the systemd unit refreshing IAM Roles Anywhere credentials."""
    ira = config.spec.hybrid.iam_roles_anywhere
    if ira is None:
        raise NodeadmError("iam roles anywhere configuration is missing")
    return templates.render("aws_signing_helper_update.service.j2", credentials_path=CREDENTIALS_PATH,
                            bin_path=BIN_PATH, ira=ira, region=config.spec.cluster.region)


class SigningHelperDaemon(Daemon):
    """Runs ``aws_signing_helper update`` as a systemd service."""

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
        try:
            write_file_with_dir(rooted(self.install_root, UNIT_PATH), render_unit(self.config).encode(),
                                CONFIG_PERMS)
        except OSError as e:
            raise NodeadmError(f"writing {DAEMON_NAME} service file {UNIT_PATH}: {e}") from e
        try:
            self.manager.daemon_reload()
        except NodeadmError as e:
            raise NodeadmError(f"reloading systemd daemon: {e}") from e

    def ensure_running(self, deadline: Deadline) -> None:
        self.manager.enable_daemon(DAEMON_NAME)
        self.manager.restart_daemon(deadline, DAEMON_NAME)

    def post_launch(self, deadline: Deadline) -> None:
        """Wait for the service to write the credentials file, if one was requested."""
        if not self.config.spec.hybrid.enable_credentials_file:
            return

        self.logger.info("Waiting for AWS credentials file to be created by iam-ra service")
        wait_for_credentials(deadline.child(CREDENTIALS_TIMEOUT), CREDENTIALS_POLL_INTERVAL,
                             rooted(self.install_root, CREDENTIALS_PATH))
        self.logger.info("AWS credentials file created successfully")

    def stop(self) -> None:
        self.manager.stop_daemon(DAEMON_NAME)


def wait_for_credentials(deadline: Deadline, backoff: float, path: str) -> None:
    """Block until ``path`` exists.

    Raises:
        NodeadmError: If the file is not created before the deadline
    """
    while not os.path.exists(path):
        if deadline.expired():
            raise NodeadmError(
                f"waiting for AWS credentials file: iam-roles-anywhere AWS creds file {path} "
                f"hasn't been created on time: {deadline.reason()}"
            )
        deadline.sleep(backoff)
