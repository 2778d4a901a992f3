"""Daemon manager for hosts without a service manager."""
from typing import Optional

from ..utils.deadline import Deadline
from .manager import DaemonManager, DaemonStatus, OperationOptions, OperationResult


class NoopDaemonManager(DaemonManager):
    """Succeeds at everything and reports every daemon as unknown."""

    def start_daemon(self, name: str) -> None:
        pass

    def stop_daemon(self, name: str) -> None:
        pass

    def restart_daemon(self, deadline: Deadline, name: str,
                       options: Optional[OperationOptions] = None) -> None:
        if options is not None and options.result is not None:
            if options.result.set_running_or_notify_cancel():
                options.result.set_result(OperationResult.DONE)

    def get_daemon_status(self, name: str) -> DaemonStatus:
        return DaemonStatus.UNKNOWN

    def enable_daemon(self, name: str) -> None:
        pass

    def disable_daemon(self, name: str) -> None:
        pass

    def daemon_reload(self) -> None:
        pass

    def close(self) -> None:
        pass
