import time

import pytest

from nodeadm.artifact.package import Package, new_cmd
from nodeadm.errors import CommandError, CommandRetryError, NodeadmError
from nodeadm.utils import templates
from nodeadm.utils.cmd import Command, retry
from nodeadm.utils.deadline import CANCELED, DEADLINE_EXCEEDED, Deadline


def test_command_captures_output():
    result = Command("echo", ["hello"]).run()
    assert result.stdout.strip() == "hello"


def test_command_failure_carries_output():
    with pytest.raises(CommandError) as exc:
        Command("sh", ["-c", "echo broken >&2; exit 3"]).run()
    assert "broken" in str(exc.value)
    assert "exit status 3" in str(exc.value)


def test_command_missing_executable():
    with pytest.raises(CommandError):
        Command("/nonexistent/nodeadm-test-binary").run()


def test_command_str_is_shell_quoted():
    assert str(Command("echo", ["a b"])) == "echo 'a b'"


def test_retry_until_success(commands):
    commands.failures["apt"] = 2
    built = []

    def builder():
        command = new_cmd("apt", "install", "containerd", "-y")
        built.append(command)
        return command

    retry(Deadline(10), builder, backoff=0)

    assert len(commands.argvs) == 3
    # A fresh command for every attempt
    assert len({id(c) for c in built}) == 3


def test_retry_stops_at_deadline(commands):
    commands.failures["yum"] = 1000
    deadline = Deadline(0.3)

    with pytest.raises(CommandRetryError) as exc:
        retry(deadline, lambda: new_cmd("yum", "install", "iptables", "-y"), backoff=0.05)

    assert exc.value.reason == DEADLINE_EXCEEDED
    assert isinstance(exc.value.cause, CommandError)
    assert exc.value.attempts >= 1


def test_package_commands_are_independent():
    package = Package(
        install=new_cmd("apt", "install", "iptables", "-y"),
        uninstall=new_cmd("apt", "autoremove", "iptables", "-y"),
        upgrade=new_cmd("apt", "upgrade", "iptables", "-y"),
    )
    first = package.install_cmd()
    first.args.append("--mutated")
    assert package.install_cmd().args == ["install", "iptables", "-y"]


def test_child_deadline_bounded_by_parent():
    parent = Deadline(0.05)
    child = parent.child(60)
    assert child.remaining() <= 0.05
    time.sleep(0.06)
    assert child.expired()
    assert child.reason() == DEADLINE_EXCEEDED


def test_cancel_propagates_to_children():
    parent = Deadline()
    child = parent.child()
    assert child.remaining() is None
    assert not child.expired()
    parent.cancel()
    assert child.expired()
    assert child.reason() == CANCELED


def test_sleep_wakes_on_cancel():
    deadline = Deadline()
    deadline.cancel()
    start = time.monotonic()
    deadline.sleep(5)
    assert time.monotonic() - start < 1


def test_render_template():
    unit = templates.render("kubelet.service.j2", bin_path="/usr/bin/kubelet",
                            environment_path="/etc/eks/kubelet/environment")
    assert "ExecStart=/usr/bin/kubelet $NODEADM_KUBELET_ARGS" in unit
    assert "EnvironmentFile=-/etc/eks/kubelet/environment" in unit


def test_render_template_missing_variable():
    with pytest.raises(NodeadmError, match="missing template variable"):
        templates.render("kubelet.service.j2", bin_path="/usr/bin/kubelet")


def test_render_unknown_template():
    with pytest.raises(NodeadmError, match="template not found"):
        templates.render("nope.j2")
