from types import SimpleNamespace

import pytest
import yaml
from typer.testing import CliRunner

from nodeadm import __version__, system
from nodeadm.artifact import names
from nodeadm.cli import app
from nodeadm.commands import upgrade as upgrade_command
from nodeadm.config import NodeadmSettings, PathsConfig, set_settings
from nodeadm.tracker import ContainerdSource, Tracker

from .fakes import IRA_CONFIG, SSM_CONFIG, RecordingDaemonManager

runner = CliRunner()


@pytest.fixture
def tracker_path(tmp_path):
    path = str(tmp_path / "nodeadm" / "tracker")
    set_settings(NodeadmSettings(paths=PathsConfig(tracker=path)))
    return path


@pytest.fixture
def as_root(monkeypatch):
    monkeypatch.setattr(system, "is_running_as_root", lambda: True)


def test_help():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("install", "uninstall", "upgrade", "init", "status", "check"):
        assert command in result.output


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_install_help():
    result = runner.invoke(app, ["install", "--help"])
    assert "--credential-provider" in result.output
    assert "--containerd-source" in result.output


def test_install_requires_root(monkeypatch, tracker_path):
    monkeypatch.setattr(system, "is_running_as_root", lambda: False)
    result = runner.invoke(app, ["install", "1.31", "--credential-provider", "ssm"])
    assert result.exit_code == 1
    assert "this command must be run as root" in result.output


def test_install_rejects_unknown_credential_provider():
    result = runner.invoke(app, ["install", "1.31", "--credential-provider", "kerberos"])
    assert result.exit_code == 2


def test_install_rejects_docker_on_amazon_linux(monkeypatch, as_root, tracker_path):
    monkeypatch.setattr(system, "get_os_name", lambda: system.OSName.AMAZON_LINUX)
    result = runner.invoke(app, ["install", "1.31", "-p", "ssm", "--containerd-source", "docker"])
    assert result.exit_code == 1
    assert "not supported on AL2023" in result.output


def test_uninstall_without_tracker(as_root, tracker_path):
    result = runner.invoke(app, ["uninstall"])
    assert result.exit_code == 0
    assert "Nodeadm components are already uninstalled" in result.output


def test_status(host_commands, tracker_path):
    tracker = Tracker(path=tracker_path)
    tracker.add(names.KUBELET)
    tracker.mark_containerd(ContainerdSource.DISTRO)
    tracker.save()

    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0
    assert "kubelet" in result.output
    assert "distro" in result.output


def test_status_not_installed(tracker_path):
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0
    assert "not installed" in result.output


def test_check_valid_config(tmp_path):
    path = tmp_path / "nodeConfig.yaml"
    path.write_text(yaml.safe_dump(SSM_CONFIG))
    result = runner.invoke(app, ["check", "--config-source", f"file://{path}"])
    assert result.exit_code == 0
    assert "credential provider: ssm" in result.output


def test_check_invalid_config(tmp_path):
    path = tmp_path / "nodeConfig.yaml"
    path.write_text("apiVersion: node.eks.aws/v1alpha1\nkind: NodeConfig\nspec: {}\n")
    result = runner.invoke(app, ["check", "-c", f"file://{path}"])
    assert result.exit_code == 1
    assert "Name is missing in cluster configuration" in result.output


@pytest.fixture
def node_config_uri(tmp_path):
    path = tmp_path / "node.yaml"
    path.write_text(yaml.safe_dump(IRA_CONFIG))
    return f"file://{path}"


def test_upgrade_without_tracker(as_root, tracker_path, node_config_uri):
    result = runner.invoke(app, ["upgrade", "1.31", "-c", node_config_uri])
    assert result.exit_code == 0
    assert "No nodeadm components installed" in result.output


class FakeUpgrader:
    created = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.deadline = None
        FakeUpgrader.created.append(self)

    def run(self, deadline):
        self.deadline = deadline


def test_upgrade_runs_upgrade_flow(monkeypatch, as_root, tracker_path, node_config_uri, host_commands):
    host_commands.add("apt")
    tracker = Tracker(path=tracker_path)
    tracker.add(names.KUBELET)
    tracker.add(names.IAM_ROLES_ANYWHERE)
    tracker.mark_containerd(ContainerdSource.DISTRO)
    tracker.save()

    FakeUpgrader.created.clear()
    monkeypatch.setattr(upgrade_command, "Upgrader", FakeUpgrader)
    monkeypatch.setattr(upgrade_command, "new_daemon_manager", RecordingDaemonManager)
    monkeypatch.setattr(upgrade_command.ManifestSource, "from_url",
                        classmethod(lambda cls, url, version: SimpleNamespace(version="v1.31.4")))

    result = runner.invoke(app, ["upgrade", "1.31", "-c", node_config_uri,
                                 "--skip", "init-validation,pod-validation", "--timeout", "5"])

    assert result.exit_code == 0, result.output
    assert "Upgraded to Kubernetes v1.31.4" in result.output
    flow = FakeUpgrader.created[0]
    assert flow.kwargs["skip"] == ["init-validation", "pod-validation"]
    assert flow.kwargs["tracker"].artifacts.iam_roles_anywhere
    assert flow.kwargs["package_manager"].manager == "apt"
    assert [d.name for d in flow.kwargs["daemons"]] == ["aws_signing_helper_update", "containerd", "kubelet"]
    assert 0 < flow.deadline.remaining() <= 300
