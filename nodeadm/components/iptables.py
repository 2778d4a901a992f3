"""iptables, required by the kubelet unit."""
import logging
from abc import ABC, abstractmethod
from typing import Optional

from .. import system
from ..artifact import names
from ..artifact.package import Package
from ..errors import NodeadmError
from ..tracker import Tracker
from ..utils.cmd import DEFAULT_BACKOFF, retry
from ..utils.deadline import Deadline
from . import component_errors

logger = logging.getLogger("nodeadm.components.iptables")

BIN_NAME = "iptables"


class IptablesPackageSource(ABC):
    @abstractmethod
    def get_iptables(self) -> Package:
        ...


def install(deadline: Deadline, tracker: Tracker, source: IptablesPackageSource,
            backoff: float = DEFAULT_BACKOFF, log: Optional[logging.Logger] = None) -> None:
    """Install iptables unless the host already has it.

    A pre-existing iptables is not tracked, so it is never removed.
    """
    log = log or logger
    if system.command_exists(BIN_NAME):
        log.info("iptables already installed, skipping")
        return
    with component_errors(names.IPTABLES):
        try:
            retry(deadline, source.get_iptables().install_cmd, backoff, log)
        except NodeadmError as e:
            raise NodeadmError(f"failed to install iptables: {e}") from e
    tracker.add(names.IPTABLES)


def upgrade(deadline: Deadline, source: IptablesPackageSource, backoff: float = DEFAULT_BACKOFF,
            log: Optional[logging.Logger] = None) -> None:
    with component_errors(names.IPTABLES):
        try:
            retry(deadline, source.get_iptables().upgrade_cmd, backoff, log or logger)
        except NodeadmError as e:
            raise NodeadmError(f"failed to upgrade iptables: {e}") from e


def uninstall(deadline: Deadline, source: IptablesPackageSource, backoff: float = DEFAULT_BACKOFF,
              log: Optional[logging.Logger] = None) -> None:
    if not system.command_exists(BIN_NAME):
        return
    with component_errors(names.IPTABLES):
        try:
            retry(deadline, source.get_iptables().uninstall_cmd, backoff, log or logger)
        except NodeadmError as e:
            raise NodeadmError(f"failed to uninstall iptables: {e}") from e
