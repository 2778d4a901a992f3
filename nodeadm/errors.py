"""Exception hierarchy for nodeadm.

Every error raised on purpose by nodeadm derives from :class:`NodeadmError`
so the CLI can report it without a traceback.
"""


class NodeadmError(Exception):
    """Base class for nodeadm errors."""
    pass


class CommandError(NodeadmError):
    """A shell-out exited with a non-zero status or could not be started."""

    def __init__(self, argv, output: str, err: str):
        self.argv = list(argv)
        self.output = output
        super().__init__(f"running command {self.argv}: {output.strip()} [Err {err}]")


class CommandRetryError(NodeadmError):
    """A retried shell-out never succeeded before the deadline."""

    def __init__(self, reason: str, attempts: int, cause: BaseException):
        self.reason = reason
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"{reason}: {cause} (after {attempts} attempts)")


class ChecksumError(NodeadmError):
    """The digest of a fully read artifact did not match the expected one."""

    def __init__(self, expect: bytes, actual: bytes):
        self.expect = expect or b''
        self.actual = actual or b''
        super().__init__(
            f"checksum mismatch (expect != actual): {self.expect.hex()} != {self.actual.hex()}"
        )


class PreconditionError(NodeadmError):
    """The host is not in a state that allows the requested operation."""
    pass


class ComponentError(NodeadmError):
    """A component install, upgrade or removal failed."""

    def __init__(self, component: str, message: str):
        self.component = component
        super().__init__(f"{component}: {message}")


class TrackerNotFoundError(NodeadmError, FileNotFoundError):
    """No install has ever been recorded on this host."""
    pass
