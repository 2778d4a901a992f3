"""Cancellable deadlines bounding long running flows."""
import threading
import time
from typing import Optional

DEADLINE_EXCEEDED = "context deadline exceeded"
CANCELED = "context canceled"


class Deadline:
    """An absolute point in time after which work should stop.

    A deadline may be derived from a parent; it then expires no later than the
    parent and is canceled whenever the parent is.

    Args:
        timeout: Seconds from now until expiry, or None for no time limit
        parent: Optional deadline this one is derived from
    """

    def __init__(self, timeout: Optional[float] = None, parent: Optional['Deadline'] = None):
        self._parent = parent
        self._canceled = threading.Event()
        self._expires_at: Optional[float] = None
        if timeout is not None:
            self._expires_at = time.monotonic() + timeout
        if parent is not None and parent._expires_at is not None:
            if self._expires_at is None or parent._expires_at < self._expires_at:
                self._expires_at = parent._expires_at

    def child(self, timeout: Optional[float] = None) -> 'Deadline':
        """Derive a deadline that expires after ``timeout`` or with this one."""
        return Deadline(timeout, parent=self)

    def cancel(self) -> None:
        self._canceled.set()

    @property
    def canceled(self) -> bool:
        if self._canceled.is_set():
            return True
        return self._parent is not None and self._parent.canceled

    def remaining(self) -> Optional[float]:
        """Seconds left before expiry, None when there is no time limit."""
        if self._expires_at is None:
            return None
        return max(self._expires_at - time.monotonic(), 0.0)

    def expired(self) -> bool:
        if self.canceled:
            return True
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def reason(self) -> str:
        """Describe why the deadline is done."""
        return CANCELED if self.canceled else DEADLINE_EXCEEDED

    def sleep(self, seconds: float) -> None:
        """Sleep up to ``seconds``, waking early on expiry or cancellation."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        if seconds > 0:
            self._canceled.wait(seconds)
