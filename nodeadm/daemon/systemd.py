"""systemd backed daemon manager."""
import logging
import subprocess
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Optional

from ..errors import CommandError
from ..utils.cmd import Command
from ..utils.deadline import Deadline
from .manager import DaemonManager, DaemonStatus, OperationOptions, OperationResult

logger = logging.getLogger("nodeadm.daemon.systemd")

SYSTEMCTL = "systemctl"

_RUNNING_STATES = ("active", "activating", "reloading")
_ENABLED_STATES = ("enabled", "enabled-runtime", "static", "alias", "linked", "linked-runtime")

# Runs a command to completion, raising CommandError on failure
Runner = Callable[[Command, Optional[float]], subprocess.CompletedProcess]


def _run(command: Command, timeout: Optional[float] = None) -> subprocess.CompletedProcess:
    return command.run(timeout=timeout)


class SystemdDaemonManager(DaemonManager):
    """Drives systemd units through ``systemctl``.

    Restarts requested with a result future run on a worker thread owned by the
    manager; :meth:`close` waits for them and shuts the pool down.

    Args:
        runner: Executes systemctl commands
        max_workers: Size of the pool running asynchronous restarts
    """

    def __init__(self, runner: Runner = _run, max_workers: int = 2):
        self._runner = runner
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="systemd-job")

    def _systemctl(self, *args: str, timeout: Optional[float] = None) -> subprocess.CompletedProcess:
        return self._runner(Command(SYSTEMCTL, list(args)), timeout)

    def _show(self, name: str) -> Dict[str, str]:
        result = self._systemctl("show", name, "--property=LoadState,ActiveState,UnitFileState")
        properties = {}
        for line in (result.stdout or "").splitlines():
            key, sep, value = line.partition("=")
            if sep:
                properties[key.strip()] = value.strip()
        return properties

    def get_daemon_status(self, name: str) -> DaemonStatus:
        properties = self._show(name)
        if properties.get("LoadState", "not-found") == "not-found":
            return DaemonStatus.UNKNOWN
        if properties.get("ActiveState") in _RUNNING_STATES:
            return DaemonStatus.RUNNING
        return DaemonStatus.STOPPED

    def start_daemon(self, name: str) -> None:
        if self.get_daemon_status(name) == DaemonStatus.RUNNING:
            logger.debug(f"Daemon {name} already running")
            return
        self._systemctl("start", name)

    def stop_daemon(self, name: str) -> None:
        if self.get_daemon_status(name) != DaemonStatus.RUNNING:
            logger.debug(f"Daemon {name} is not running, nothing to stop")
            return
        self._systemctl("stop", name)

    def restart_daemon(self, deadline: Deadline, name: str,
                       options: Optional[OperationOptions] = None) -> None:
        options = options or OperationOptions()
        args = ("restart", f"--job-mode={options.mode}", name)

        if options.result is None:
            self._systemctl(*args, timeout=deadline.remaining())
            return

        future = options.result
        self._executor.submit(self._restart_job, deadline, args, future)

    def _restart_job(self, deadline: Deadline, args, future) -> None:
        try:
            self._systemctl(*args, timeout=deadline.remaining())
        except CommandError as e:
            logger.debug(f"systemctl {' '.join(args)} failed: {e}")
            result = OperationResult.TIMEOUT if deadline.expired() else OperationResult.FAILED
        except Exception:
            logger.exception(f"systemctl {' '.join(args)} raised unexpectedly")
            result = OperationResult.FAILED
        else:
            result = OperationResult.DONE
        if future.set_running_or_notify_cancel():
            future.set_result(result)

    def _unit_file_state(self, name: str) -> str:
        return self._show(name).get("UnitFileState", "")

    def enable_daemon(self, name: str) -> None:
        if self._unit_file_state(name) in _ENABLED_STATES:
            logger.debug(f"Daemon {name} already enabled")
            return
        self._systemctl("enable", name)

    def disable_daemon(self, name: str) -> None:
        if self._unit_file_state(name) not in _ENABLED_STATES:
            logger.debug(f"Daemon {name} is not enabled, nothing to disable")
            return
        self._systemctl("disable", name)

    def daemon_reload(self) -> None:
        self._systemctl("daemon-reload")

    def close(self) -> None:
        self._executor.shutdown(wait=True)
