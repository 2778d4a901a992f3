import os

import pytest
import yaml

from nodeadm.artifact import names
from nodeadm.components import cni, iamauthenticator, imagecredentialprovider, kubectl, kubelet
from nodeadm.creds import CredentialProvider
from nodeadm.daemon import Daemon, DaemonStatus
from nodeadm.errors import ChecksumError, ComponentError, NodeadmError, PreconditionError
from nodeadm.flows import Initializer, Installer, Uninstaller, Upgrader
from nodeadm.node import INIT_VALIDATION
from nodeadm.packagemanager import DistroPackageManager
from nodeadm.tracker import ContainerdSource, Tracker, get_installed_artifacts
from nodeadm.utils.deadline import Deadline

from .fakes import FakeReleaseSource, FakeSSMInstaller


def rooted(root, path):
    return os.path.join(str(root), path.lstrip("/"))


class RecordingDaemon(Daemon):
    def __init__(self, name, events):
        self._name = name
        self.events = events

    @property
    def name(self):
        return self._name

    def configure(self, deadline):
        self.events.append(("configure", self._name))

    def ensure_running(self, deadline):
        self.events.append(("ensure_running", self._name))

    def post_launch(self, deadline):
        self.events.append(("post_launch", self._name))

    def stop(self):
        self.events.append(("stop", self._name))


@pytest.fixture
def tracker_path(tmp_path):
    return str(tmp_path / "opt" / "nodeadm" / "tracker")


def install(tmp_path, tracker_path, source, provider=CredentialProvider.IAM_ROLES_ANYWHERE):
    installer = Installer(
        tracker=Tracker(path=tracker_path),
        source=source,
        package_manager=DistroPackageManager(ContainerdSource.DISTRO, manager="apt", backoff=0),
        credential_provider=provider,
        containerd_source=ContainerdSource.DISTRO,
        ssm_installer=FakeSSMInstaller(),
        region="us-west-2",
        install_root=str(tmp_path),
        backoff=0,
    )
    installer.run(Deadline(30))
    return installer


def test_fresh_install(tmp_path, tracker_path, commands, host_commands, release_source):
    install(tmp_path, tracker_path, release_source)

    assert commands.lines() == ["apt install containerd=1.* -y", "apt install iptables -y"]
    assert release_source.served == [
        "aws_signing_helper",
        "kubelet",
        "kubectl",
        "cni-plugins",
        "ecr-credential-provider",
        "aws-iam-authenticator",
    ]
    for path in (kubelet.BIN_PATH, kubectl.BIN_PATH, imagecredentialprovider.BIN_PATH,
                 iamauthenticator.BIN_PATH):
        assert os.path.exists(rooted(tmp_path, path))
    assert os.path.exists(rooted(tmp_path, cni.BIN_PATH + "/bridge"))

    with open(tracker_path) as f:
        artifacts = yaml.safe_load(f)["Artifacts"]
    assert artifacts == {
        "Containerd": "distro",
        "CniPlugins": True,
        "IamAuthenticator": True,
        "IamRolesAnywhere": True,
        "ImageCredentialProvider": True,
        "Kubectl": True,
        "Kubelet": True,
        "Ssm": False,
        "Iptables": True,
    }


def test_fresh_install_with_ssm(tmp_path, tracker_path, commands, host_commands, release_source):
    install(tmp_path, tracker_path, release_source, CredentialProvider.SSM)

    installer = rooted(tmp_path, "/opt/ssm/ssm-setup-cli")
    assert commands.lines() == [
        "apt install containerd=1.* -y",
        "apt install iptables -y",
        f"{installer} -install -region us-west-2 -version latest",
    ]
    assert release_source.served[0] == "kubelet"
    assert "aws_signing_helper" not in release_source.served

    tracker = get_installed_artifacts(tracker_path)
    assert tracker.credential_provider() == CredentialProvider.SSM
    assert tracker.artifacts.ssm and tracker.artifacts.kubelet
    assert tracker.artifacts.containerd == ContainerdSource.DISTRO


def test_install_keeps_existing_runtime(tmp_path, tracker_path, commands, host_commands, release_source):
    host_commands.update({"containerd", "runc", "iptables"})
    install(tmp_path, tracker_path, release_source)

    assert commands.argvs == []
    tracker = get_installed_artifacts(tracker_path)
    assert tracker.artifacts.containerd == ContainerdSource.NONE
    assert not tracker.artifacts.iptables


def test_failed_install_does_not_save_tracker(tmp_path, tracker_path, commands, host_commands):
    source = FakeReleaseSource(corrupt={"cni-plugins"})
    with pytest.raises(ChecksumError):
        install(tmp_path, tracker_path, source)
    assert not os.path.exists(tracker_path)


def initialize(root):
    for path in (kubelet.CONFIG_PATH, kubelet.KUBECONFIG_PATH):
        os.makedirs(os.path.dirname(rooted(root, path)), exist_ok=True)
        with open(rooted(root, path), "w") as f:
            f.write("{}")


def upgrader(tmp_path, tracker, config, daemons, manager, validator=None, skip=()):
    return Upgrader(
        tracker=tracker,
        source=FakeReleaseSource("v1.31.4"),
        package_manager=DistroPackageManager(tracker.artifacts.containerd, manager="apt", backoff=0),
        daemon_manager=manager,
        config=config,
        daemons=daemons,
        ssm_installer=FakeSSMInstaller(),
        validator=validator,
        skip=skip,
        install_root=str(tmp_path),
        backoff=0,
    )


def test_upgrade_refuses_credential_provider_change(tmp_path, tracker_path, commands, host_commands,
                                                    release_source, daemon_manager, ssm_config):
    install(tmp_path, tracker_path, release_source)
    initialize(tmp_path)
    with open(rooted(tmp_path, kubelet.BIN_PATH), "rb") as f:
        before = f.read()
    commands.argvs.clear()
    events = []

    flow = upgrader(tmp_path, get_installed_artifacts(tracker_path), ssm_config,
                    [RecordingDaemon("kubelet", events)], daemon_manager)
    with pytest.raises(PreconditionError, match="upgrade does not support changing credential providers"):
        flow.run(Deadline(30))

    assert commands.argvs == []
    assert events == []
    with open(rooted(tmp_path, kubelet.BIN_PATH), "rb") as f:
        assert f.read() == before
    assert get_installed_artifacts(tracker_path).artifacts.iam_roles_anywhere


def test_upgrade(tmp_path, tracker_path, commands, host_commands, release_source, daemon_manager,
                 ira_config):
    install(tmp_path, tracker_path, release_source)
    initialize(tmp_path)
    commands.argvs.clear()
    events = []
    daemons = [RecordingDaemon("aws_signing_helper_update", events), RecordingDaemon("kubelet", events)]

    upgrader(tmp_path, get_installed_artifacts(tracker_path), ira_config, daemons, daemon_manager).run(Deadline(30))

    assert commands.lines() == ["apt update", "apt upgrade containerd=1.* -y", "apt upgrade iptables -y"]
    with open(rooted(tmp_path, kubelet.BIN_PATH), "rb") as f:
        assert f.read() == b"kubelet v1.31.4"
    assert events == [
        ("configure", "aws_signing_helper_update"),
        ("configure", "kubelet"),
        ("ensure_running", "aws_signing_helper_update"),
        ("post_launch", "aws_signing_helper_update"),
        ("ensure_running", "kubelet"),
        ("post_launch", "kubelet"),
    ]
    tracker = get_installed_artifacts(tracker_path)
    assert tracker.artifacts.kubelet and tracker.artifacts.iam_roles_anywhere
    assert tracker.artifacts.containerd == ContainerdSource.DISTRO


class RefusingValidator:
    def __init__(self):
        self.skip = None

    def run(self, skip):
        self.skip = skip
        raise PreconditionError("please drain or cordon node")


def test_upgrade_validates_running_node(tmp_path, tracker_path, commands, host_commands, release_source,
                                        daemon_manager, ira_config):
    install(tmp_path, tracker_path, release_source)
    initialize(tmp_path)
    validator = RefusingValidator()
    flow = upgrader(tmp_path, get_installed_artifacts(tracker_path), ira_config, [], daemon_manager, validator)

    # Not running: no checks
    daemon_manager.statuses[kubelet.DAEMON_NAME] = DaemonStatus.STOPPED
    flow.run(Deadline(30))
    assert validator.skip is None

    daemon_manager.statuses[kubelet.DAEMON_NAME] = DaemonStatus.RUNNING
    flow = upgrader(tmp_path, get_installed_artifacts(tracker_path), ira_config, [], daemon_manager, validator)
    with pytest.raises(PreconditionError):
        flow.run(Deadline(30))
    assert validator.skip == []


def test_upgrade_requires_initialized_node(tmp_path, tracker_path, commands, host_commands, release_source,
                                           daemon_manager, ira_config):
    install(tmp_path, tracker_path, release_source)
    commands.argvs.clear()
    tracker = get_installed_artifacts(tracker_path)

    with pytest.raises(PreconditionError, match="node not initialized"):
        upgrader(tmp_path, tracker, ira_config, [], daemon_manager).run(Deadline(30))
    assert commands.argvs == []

    upgrader(tmp_path, tracker, ira_config, [], daemon_manager, skip=[INIT_VALIDATION]).run(Deadline(30))
    assert commands.lines()[0] == "apt update"


def uninstaller(tmp_path, tracker, manager):
    return Uninstaller(
        tracker=tracker,
        daemon_manager=manager,
        package_manager=DistroPackageManager(tracker.artifacts.containerd, manager="apt", backoff=0),
        install_root=str(tmp_path),
        backoff=0,
    )


def test_uninstall(tmp_path, tracker_path, commands, host_commands, release_source, daemon_manager):
    install(tmp_path, tracker_path, release_source)
    host_commands.update({"containerd", "iptables"})
    daemon_manager.statuses.update({
        "kubelet": DaemonStatus.RUNNING,
        "containerd": DaemonStatus.RUNNING,
        "aws_signing_helper_update": DaemonStatus.RUNNING,
    })
    commands.argvs.clear()

    uninstaller(tmp_path, get_installed_artifacts(tracker_path), daemon_manager).run(Deadline(30))

    assert [c for c in daemon_manager.calls if c[0] == "stop"] == [
        ("stop", "kubelet"),
        ("stop", "aws_signing_helper_update"),
        ("stop", "containerd"),
    ]
    assert commands.lines() == ["apt autoremove iptables -y", "apt autoremove containerd=1.* -y"]
    for path in (kubelet.BIN_PATH, kubectl.BIN_PATH, cni.BIN_PATH, iamauthenticator.BIN_PATH):
        assert not os.path.exists(rooted(tmp_path, path))
    assert not os.path.exists(tracker_path)


def test_interrupted_uninstall_can_be_repeated(tmp_path, tracker_path, commands, host_commands,
                                               release_source, daemon_manager):
    install(tmp_path, tracker_path, release_source)
    host_commands.update({"containerd", "iptables"})
    commands.failures["apt"] = 1000

    with pytest.raises(ComponentError):
        uninstaller(tmp_path, get_installed_artifacts(tracker_path), daemon_manager).run(Deadline(0.5))

    # Everything before iptables is gone and recorded as such
    partial = get_installed_artifacts(tracker_path).artifacts
    assert not partial.kubelet and not partial.kubectl and not partial.cni_plugins
    assert partial.iptables
    assert partial.containerd == ContainerdSource.DISTRO

    commands.failures["apt"] = 0
    commands.argvs.clear()
    uninstaller(tmp_path, get_installed_artifacts(tracker_path), daemon_manager).run(Deadline(30))

    assert commands.lines() == ["apt autoremove iptables -y", "apt autoremove containerd=1.* -y"]
    assert not os.path.exists(tracker_path)


def test_initializer_phases():
    events = []
    daemons = [RecordingDaemon("containerd", events), RecordingDaemon("kubelet", events)]

    Initializer(daemons).run(Deadline(5))
    assert events == [
        ("configure", "containerd"),
        ("configure", "kubelet"),
        ("ensure_running", "containerd"),
        ("post_launch", "containerd"),
        ("ensure_running", "kubelet"),
        ("post_launch", "kubelet"),
    ]

    events.clear()
    Initializer(daemons, skip=["run"]).run(Deadline(5))
    assert events == [("configure", "containerd"), ("configure", "kubelet")]

    events.clear()
    Initializer(daemons, skip=["config"]).run(Deadline(5))
    assert ("configure", "containerd") not in events


def test_initializer_stops_on_failure():
    events = []

    class Broken(RecordingDaemon):
        def configure(self, deadline):
            raise NodeadmError("bad config")

    with pytest.raises(NodeadmError):
        Initializer([Broken("containerd", events), RecordingDaemon("kubelet", events)]).run(Deadline(5))
    assert events == []


def test_tracker_names_round_trip():
    tracker = Tracker()
    tracker.add(names.IMAGE_CREDENTIAL_PROVIDER)
    assert tracker.artifacts.image_credential_provider
