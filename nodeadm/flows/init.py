"""Daemon configuration and start-up."""
import logging
from typing import List, Optional, Sequence

from .. import system
from ..components.containerd import ContainerdDaemon
from ..components.iamrolesanywhere import SigningHelperDaemon
from ..components.kubelet import KubeletDaemon
from ..components.ssm import SsmDaemon
from ..creds import CredentialProvider
from ..daemon import Daemon, DaemonManager
from ..errors import NodeadmError
from ..nodeconfig import NodeConfig
from ..utils.deadline import Deadline

logger = logging.getLogger("nodeadm.flows.init")

CONFIG_PHASE = "config"
RUN_PHASE = "run"


def hybrid_daemons(manager: DaemonManager, config: NodeConfig, install_root: str = "/",
                   os_name: Optional[system.OSName] = None,
                   log: Optional[logging.Logger] = None) -> List[Daemon]:
    """The daemons of a hybrid node, in start-up order.

    The credential daemon comes first: the SSM registration decides the node
    name the kubelet is configured with.
    """
    provider = config.credential_provider
    if provider == CredentialProvider.SSM:
        credentials: Daemon = SsmDaemon(manager, config, os_name=os_name, install_root=install_root, log=log)
    elif provider == CredentialProvider.IAM_ROLES_ANYWHERE:
        credentials = SigningHelperDaemon(manager, config, install_root=install_root, log=log)
    else:
        raise NodeadmError(f"unhandled credential provider: {provider}")
    return [
        credentials,
        ContainerdDaemon(manager, config, install_root=install_root, log=log),
        KubeletDaemon(manager, config, install_root=install_root, log=log),
    ]


class Initializer:
    """Configures and starts daemons in two skippable phases.

    Args:
        daemons: Daemons in the order they must be brought up
        skip: Phases to skip, ``config`` and/or ``run``
        log: Logger for progress messages
    """

    def __init__(self, daemons: Sequence[Daemon], skip: Sequence[str] = (),
                 log: Optional[logging.Logger] = None):
        self.daemons = list(daemons)
        self.skip = list(skip)
        self.logger = log or logger

    def run(self, deadline: Deadline) -> None:
        if CONFIG_PHASE not in self.skip:
            self.logger.info("Configuring daemons...")
            for daemon in self.daemons:
                self.logger.info(f"Configuring daemon {daemon.name}...")
                daemon.configure(deadline)
                self.logger.info(f"Configured daemon {daemon.name}")

        if RUN_PHASE not in self.skip:
            for daemon in self.daemons:
                self.logger.info(f"Ensuring daemon {daemon.name} is running...")
                daemon.ensure_running(deadline)
                self.logger.info(f"Daemon {daemon.name} is running")

                self.logger.info(f"Running post-launch tasks for {daemon.name}...")
                daemon.post_launch(deadline)
                self.logger.info(f"Finished post-launch tasks for {daemon.name}")
