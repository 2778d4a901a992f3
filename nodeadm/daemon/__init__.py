"""
OS service management.
"""
import logging

from ..system import command_exists
from .manager import Daemon, DaemonManager, DaemonStatus, OperationOptions, OperationResult
from .noop import NoopDaemonManager
from .systemd import SYSTEMCTL, SystemdDaemonManager
from .wait import retry_operation, wait_for_operation, wait_for_status

logger = logging.getLogger("nodeadm.daemon")


def new_daemon_manager() -> DaemonManager:
    """Pick the daemon manager for this host."""
    if command_exists(SYSTEMCTL):
        return SystemdDaemonManager()
    logger.warning("systemctl not found, daemon operations will be skipped")
    return NoopDaemonManager()


__all__ = [
    'Daemon',
    'DaemonManager',
    'DaemonStatus',
    'NoopDaemonManager',
    'OperationOptions',
    'OperationResult',
    'SystemdDaemonManager',
    'new_daemon_manager',
    'retry_operation',
    'wait_for_operation',
    'wait_for_status',
]
