import logging
import subprocess

import pytest

from nodeadm import system
from nodeadm.config import set_settings
from nodeadm.errors import CommandError
from nodeadm.nodeconfig import NodeConfig
from nodeadm.utils import cmd

from .fakes import IRA_CONFIG, SSM_CONFIG, FakeReleaseSource, RecordingDaemonManager


class RecordedCommands:
    """Shell-outs captured by the ``commands`` fixture."""

    def __init__(self):
        self.argvs = []
        # executable -> number of upcoming runs that fail
        self.failures = {}

    def lines(self):
        return [" ".join(argv) for argv in self.argvs]


@pytest.fixture
def commands(monkeypatch):
    """Record shell-outs instead of running them."""
    recorded = RecordedCommands()

    def fake_run(command, deadline=None):
        recorded.argvs.append(command.argv)
        if recorded.failures.get(command.path, 0) > 0:
            recorded.failures[command.path] -= 1
            raise CommandError(command.argv, "boom", "exit status 1")
        return subprocess.CompletedProcess(command.argv, 0, stdout="", stderr="")

    monkeypatch.setattr(cmd, "run", fake_run)
    return recorded


@pytest.fixture
def host_commands(monkeypatch):
    """Executables that appear to be on PATH."""
    present = set()
    monkeypatch.setattr(system, "command_exists", lambda name: name in present)
    return present


@pytest.fixture
def release_source():
    return FakeReleaseSource()


@pytest.fixture
def daemon_manager():
    return RecordingDaemonManager()


@pytest.fixture
def ira_config():
    return NodeConfig.model_validate(IRA_CONFIG)


@pytest.fixture
def ssm_config():
    return NodeConfig.model_validate(SSM_CONFIG)


@pytest.fixture(autouse=True)
def reset_settings():
    set_settings(None)
    yield
    set_settings(None)


@pytest.fixture(autouse=True)
def reset_logger():
    """CLI runs attach handlers to streams that are closed afterwards."""
    yield
    logger = logging.getLogger("nodeadm")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
