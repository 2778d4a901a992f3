import pytest

from nodeadm.errors import NodeadmError
from nodeadm.packagemanager import (
    APT_DOCKER_REPO_SOURCE_PATH,
    UBUNTU_DOCKER_GPG_KEY_PATH,
    YUM_DOCKER_REPO_SOURCE_PATH,
    DistroPackageManager,
    detect_package_manager,
)
from nodeadm.tracker import ContainerdSource
from nodeadm.utils.deadline import Deadline


def test_detect_prefers_yum(host_commands):
    host_commands.update({"apt", "yum"})
    assert detect_package_manager() == "yum"


def test_detect_unsupported(host_commands):
    with pytest.raises(NodeadmError, match="unsupported package manager"):
        detect_package_manager()


def test_apt_commands():
    pm = DistroPackageManager(ContainerdSource.DISTRO, manager="apt")
    containerd = pm.get_containerd()
    assert containerd.install_cmd().argv == ["apt", "install", "containerd=1.*", "-y"]
    assert containerd.uninstall_cmd().argv == ["apt", "autoremove", "containerd=1.*", "-y"]
    assert containerd.upgrade_cmd().argv == ["apt", "upgrade", "containerd=1.*", "-y"]


def test_yum_docker_containerd():
    pm = DistroPackageManager(ContainerdSource.DOCKER, manager="yum")
    assert pm.get_containerd().install_cmd().argv == ["yum", "install", "containerd.io-1.*", "-y"]
    assert pm.get_iptables().uninstall_cmd().argv == ["yum", "remove", "iptables", "-y"]


def test_ssm_package_from_snap_on_apt():
    pm = DistroPackageManager(manager="apt")
    package = pm.get_ssm_package()
    assert package.install_cmd().argv == ["snap", "install", "amazon-ssm-agent"]
    assert package.uninstall_cmd().argv == ["snap", "remove", "amazon-ssm-agent"]

    yum = DistroPackageManager(manager="yum")
    assert yum.get_ssm_package().uninstall_cmd().argv == ["yum", "remove", "amazon-ssm-agent", "-y"]


def test_refresh_metadata_cache(commands):
    DistroPackageManager(manager="yum", backoff=0).refresh_metadata_cache(Deadline(5))
    assert commands.lines() == ["yum makecache"]


def test_configure_without_docker_is_noop(commands):
    DistroPackageManager(ContainerdSource.DISTRO, manager="apt").configure(Deadline(5))
    assert commands.argvs == []


def test_configure_yum_docker_repo(commands, host_commands):
    host_commands.add("runc")

    DistroPackageManager(ContainerdSource.DOCKER, manager="yum", backoff=0).configure(Deadline(5))

    assert commands.lines() == [
        "yum remove runc -y",
        "yum install yum-utils -y",
        "yum-config-manager --add-repo https://download.docker.com/linux/centos/docker-ce.repo",
    ]


def test_cleanup_removes_docker_repo_files(tmp_path):
    for path in (UBUNTU_DOCKER_GPG_KEY_PATH, APT_DOCKER_REPO_SOURCE_PATH, YUM_DOCKER_REPO_SOURCE_PATH):
        target = tmp_path / path.lstrip("/")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text("repo")

    DistroPackageManager(ContainerdSource.DOCKER, manager="apt", install_root=str(tmp_path)).cleanup()

    assert not (tmp_path / UBUNTU_DOCKER_GPG_KEY_PATH.lstrip("/")).exists()
    assert not (tmp_path / APT_DOCKER_REPO_SOURCE_PATH.lstrip("/")).exists()
    assert (tmp_path / YUM_DOCKER_REPO_SOURCE_PATH.lstrip("/")).exists()

    # Already removed
    DistroPackageManager(ContainerdSource.DOCKER, manager="apt", install_root=str(tmp_path)).cleanup()


def test_unknown_manager():
    with pytest.raises(NodeadmError):
        DistroPackageManager(manager="pacman")
