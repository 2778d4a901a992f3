"""Helpers to wait on daemon state and asynchronous daemon operations."""
import concurrent.futures
import logging
from concurrent.futures import Future
from typing import Callable, Optional

from tenacity import Retrying, retry_if_exception_type, wait_fixed

from ..errors import NodeadmError
from ..utils.deadline import Deadline
from .manager import DaemonManager, DaemonStatus, OperationOptions, OperationResult

logger = logging.getLogger("nodeadm.daemon.wait")

# Longest single wait before the deadline is checked again
_POLL_INTERVAL = 0.5

# An operation such as DaemonManager.restart_daemon
AsyncOperation = Callable[[Deadline, str, Optional[OperationOptions]], None]


def wait_for_status(
    deadline: Deadline,
    manager: DaemonManager,
    name: str,
    desired: DaemonStatus,
    backoff: float,
    log: Optional[logging.Logger] = None,
) -> None:
    """Poll a daemon until it reaches ``desired``.

    Errors while reading the status are logged and polling continues. Without
    a time limit on ``deadline`` this only returns once the status matches or
    the deadline is canceled.

    Raises:
        NodeadmError: If the deadline expires first
    """
    log = log or logger
    status = DaemonStatus.UNKNOWN
    while True:
        try:
            status = manager.get_daemon_status(name)
        except (NodeadmError, OSError) as e:
            log.error(f"Failed to get daemon status for {name}: {e}")
        else:
            if status == desired:
                return
            log.info(f"Daemon {name} is not in the desired state yet, status: {status.value}")

        log.debug(f"Waiting {backoff}s before next status check")
        deadline.sleep(backoff)
        if deadline.expired():
            raise NodeadmError(f"daemon {name} still has status {status.value}: {deadline.reason()}")


def wait_for_operation(
    deadline: Deadline,
    op: AsyncOperation,
    name: str,
    options: Optional[OperationOptions] = None,
) -> None:
    """Run an asynchronous operation and block until it reports a result.

    Failed and timed out jobs are errors; every other result is a success.

    Raises:
        ValueError: If ``options`` already carries a result future
        NodeadmError: If the job fails or the deadline expires first
    """
    options = options or OperationOptions()
    if options.result is not None:
        raise ValueError("cannot specify a result channel when waiting for an operation")

    future: Future = Future()
    op(deadline, name, OperationOptions(result=future, mode=options.mode))

    while not future.done():
        if deadline.expired():
            raise NodeadmError(
                f"operation for daemon {name} did not complete in time, result is unknown: {deadline.reason()}"
            )
        remaining = deadline.remaining()
        timeout = _POLL_INTERVAL if remaining is None else min(_POLL_INTERVAL, remaining)
        concurrent.futures.wait([future], timeout=timeout)

    result = future.result()
    if result in (OperationResult.FAILED, OperationResult.TIMEOUT):
        raise NodeadmError(f"operation for daemon {name} failed with result [{result.value}]")


def retry_operation(
    deadline: Deadline,
    op: AsyncOperation,
    name: str,
    backoff: float,
    log: Optional[logging.Logger] = None,
) -> None:
    """Re-issue an asynchronous operation until it succeeds or the deadline ends.

    Raises:
        NodeadmError: The last failure once the deadline expires
    """
    log = log or logger

    def log_failure(retry_state) -> None:
        log.info(f"Operation for daemon {name} failed, retrying in {backoff}s: {retry_state.outcome.exception()}")

    retrying = Retrying(
        stop=lambda retry_state: deadline.expired(),
        wait=wait_fixed(backoff),
        sleep=deadline.sleep,
        retry=retry_if_exception_type(NodeadmError),
        before_sleep=log_failure,
        reraise=True,
    )
    retrying(wait_for_operation, deadline, op, name)
