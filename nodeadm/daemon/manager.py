"""Daemon manager and daemon contracts."""
from abc import ABC, abstractmethod
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..utils.deadline import Deadline


class DaemonStatus(str, Enum):
    """Observed state of an OS service."""
    RUNNING = 'running'
    STOPPED = 'stopped'
    UNKNOWN = 'unknown'


class OperationResult(str, Enum):
    """Outcome of an asynchronous service job."""
    DONE = 'done'
    CANCELED = 'canceled'
    TIMEOUT = 'timeout'
    FAILED = 'failed'
    DEPENDENCY = 'dependency'
    SKIPPED = 'skipped'


@dataclass
class OperationOptions:
    """Customizes an asynchronous daemon operation.

    Attributes:
        result: Future completed with the OperationResult once the job ends
        mode: Job mode passed to the service manager (e.g. ``replace``)
    """
    result: Optional[Future] = None
    mode: str = 'replace'


class DaemonManager(ABC):
    """Controls OS services. Every mutating call is idempotent."""

    @abstractmethod
    def start_daemon(self, name: str) -> None:
        """Start the daemon; a no-op if it is already running."""

    @abstractmethod
    def stop_daemon(self, name: str) -> None:
        """Stop the daemon; a no-op if it is not running."""

    @abstractmethod
    def restart_daemon(self, deadline: Deadline, name: str,
                       options: Optional[OperationOptions] = None) -> None:
        """Restart the daemon, starting it if it is not running.

        The restart may complete in the background; pass ``options.result``
        to be told how it ended.
        """

    @abstractmethod
    def get_daemon_status(self, name: str) -> DaemonStatus:
        ...

    @abstractmethod
    def enable_daemon(self, name: str) -> None:
        """Enable the daemon; a no-op if it is already enabled."""

    @abstractmethod
    def disable_daemon(self, name: str) -> None:
        """Disable the daemon; a no-op if it is not enabled."""

    @abstractmethod
    def daemon_reload(self) -> None:
        """Reload the service manager's unit definitions."""

    @abstractmethod
    def close(self) -> None:
        """Release resources held by the manager."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class Daemon(ABC):
    """A service nodeadm configures and runs."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def configure(self, deadline: Deadline) -> None:
        """Write the configuration the service needs."""

    @abstractmethod
    def ensure_running(self, deadline: Deadline) -> None:
        """Enable and (re)start the service."""

    @abstractmethod
    def post_launch(self, deadline: Deadline) -> None:
        """Work that needs the service up."""

    @abstractmethod
    def stop(self) -> None:
        ...
