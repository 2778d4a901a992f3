"""Shell-out helpers with bounded retry."""
import logging
import shlex
import subprocess
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from tenacity import RetryError, Retrying, retry_if_exception_type, wait_fixed

from ..errors import CommandError, CommandRetryError
from .deadline import Deadline

logger = logging.getLogger("nodeadm.utils.cmd")

DEFAULT_BACKOFF = 5.0


@dataclass
class Command:
    """An executable plus its arguments."""
    path: str
    args: List[str] = field(default_factory=list)
    env: Optional[Dict[str, str]] = None

    @property
    def argv(self) -> List[str]:
        return [self.path, *self.args]

    def __str__(self) -> str:
        return ' '.join(shlex.quote(a) for a in self.argv)

    def run(self, timeout: Optional[float] = None) -> subprocess.CompletedProcess:
        """Run the command to completion.

        Args:
            timeout: Seconds before the process is killed

        Returns:
            The completed process with captured output

        Raises:
            CommandError: If the process exits non-zero, times out or cannot start
        """
        logger.debug(f"Running {self}")
        try:
            result = subprocess.run(
                self.argv,
                capture_output=True,
                text=True,
                timeout=timeout,
                env=self.env,
            )
        except subprocess.TimeoutExpired as e:
            raise CommandError(self.argv, "", f"timed out after {e.timeout}s") from e
        except OSError as e:
            raise CommandError(self.argv, "", str(e)) from e

        if result.returncode != 0:
            output = (result.stdout or "") + (result.stderr or "")
            raise CommandError(self.argv, output, f"exit status {result.returncode}")
        return result


# Builds a fresh Command for every attempt.
CommandBuilder = Callable[[], Command]


def run(command: Command, deadline: Optional[Deadline] = None) -> subprocess.CompletedProcess:
    """Run a command once, bounded by the deadline if one is given."""
    timeout = deadline.remaining() if deadline is not None else None
    return command.run(timeout=timeout)


def retry(
    deadline: Deadline,
    builder: CommandBuilder,
    backoff: float = DEFAULT_BACKOFF,
    log: Optional[logging.Logger] = None,
) -> subprocess.CompletedProcess:
    """Run a command until it succeeds or the deadline expires.

    Each attempt runs a freshly built command. Between attempts the caller's
    deadline is re-checked and ``backoff`` seconds are slept.

    Args:
        deadline: Overall deadline for all attempts
        builder: Returns a new Command for each attempt
        backoff: Seconds to wait between attempts
        log: Logger used to report failed attempts

    Returns:
        The completed process of the successful attempt

    Raises:
        CommandRetryError: When the deadline expires, wrapping the last failure
    """
    log = log or logger
    last_error: Optional[CommandError] = None

    def attempt() -> subprocess.CompletedProcess:
        nonlocal last_error
        if last_error is not None and deadline.expired():
            raise last_error
        try:
            return run(builder(), deadline)
        except CommandError as e:
            last_error = e
            raise

    def log_failure(retry_state) -> None:
        log.info(f"Command failed, retrying in {backoff}s: {retry_state.outcome.exception()}")

    retrying = Retrying(
        stop=lambda retry_state: deadline.expired(),
        wait=wait_fixed(backoff),
        sleep=deadline.sleep,
        retry=retry_if_exception_type(CommandError),
        before_sleep=log_failure,
    )
    try:
        return retrying(attempt)
    except RetryError as e:
        raise CommandRetryError(deadline.reason(), e.last_attempt.attempt_number, last_error) from last_error
