"""Packages installed through an external package manager."""
from dataclasses import dataclass, replace

from ..utils.cmd import Command


def new_cmd(path: str, *args: str) -> Command:
    """Build a command specification from an executable and its arguments."""
    return Command(path=path, args=list(args))


@dataclass(frozen=True)
class Package:
    """Install, uninstall and upgrade commands of a single package.

    Every accessor returns a new Command so a retried command never shares
    state with a previous attempt.
    """
    install: Command
    uninstall: Command
    upgrade: Command

    @staticmethod
    def _fresh(command: Command) -> Command:
        return replace(command, args=list(command.args))

    def install_cmd(self) -> Command:
        return self._fresh(self.install)

    def uninstall_cmd(self) -> Command:
        return self._fresh(self.uninstall)

    def upgrade_cmd(self) -> Command:
        return self._fresh(self.upgrade)
