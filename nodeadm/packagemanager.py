"""Distro package manager abstraction over apt and yum.

Every package returned here carries the detected manager's verbs; shell-outs
that can collide with other package operations on the host (unattended
upgrades, cloud-init) are retried with a fixed backoff until the caller's
deadline.
"""
import logging
import os
from typing import Optional

import requests

from . import system
from .artifact.package import Package, new_cmd
from .components.containerd import ContainerdPackageSource
from .components.iptables import IptablesPackageSource
from .components.ssm import SSMPackageSource
from .errors import NodeadmError
from .tracker import ContainerdSource
from .utils import cmd, write_file_with_dir
from .utils.cmd import DEFAULT_BACKOFF, retry
from .utils.deadline import Deadline

logger = logging.getLogger("nodeadm.packagemanager")

APT = "apt"
YUM = "yum"
SNAP = "snap"

YUM_UTILS_MANAGER = "yum-config-manager"
YUM_UTILS_PACKAGE = "yum-utils"
CENTOS_DOCKER_REPO = "https://download.docker.com/linux/centos/docker-ce.repo"
UBUNTU_DOCKER_REPO = "https://download.docker.com/linux/ubuntu"
UBUNTU_DOCKER_GPG_KEY = "https://download.docker.com/linux/ubuntu/gpg"
UBUNTU_DOCKER_GPG_KEY_PATH = "/etc/apt/keyrings/docker.asc"
APT_DOCKER_REPO_SOURCE_PATH = "/etc/apt/sources.list.d/docker.list"
YUM_DOCKER_REPO_SOURCE_PATH = "/etc/yum.repos.d/docker-ce.repo"
DOCKER_REPO_FILE_PERMS = 0o644

CONTAINERD_DISTRO_PACKAGE = "containerd"
CONTAINERD_DOCKER_PACKAGE = "containerd.io"
CONTAINERD_VERSION = "1.*"
RUNC_PACKAGE = "runc"
CA_CERTS_PACKAGE = "ca-certificates"
IPTABLES_PACKAGE = "iptables"
SSM_PACKAGE = "amazon-ssm-agent"

_INSTALL_VERBS = {APT: "install", YUM: "install"}
_UPDATE_VERBS = {APT: "upgrade", YUM: "update"}
_DELETE_VERBS = {APT: "autoremove", YUM: "remove"}
_REFRESH_VERBS = {APT: "update", YUM: "makecache"}
_DOCKER_REPOS = {YUM: CENTOS_DOCKER_REPO, APT: UBUNTU_DOCKER_REPO}


def detect_package_manager() -> str:
    """Find the package manager on PATH, yum first.

    Raises:
        NodeadmError: If neither apt nor yum is available
    """
    for manager in (YUM, APT):
        if system.command_exists(manager):
            return manager
    raise NodeadmError("unsupported package manager encountered. Please run nodeadm from a supported os")


class DistroPackageManager(ContainerdPackageSource, IptablesPackageSource, SSMPackageSource):
    """Builds package commands for the host's apt or yum.

    Args:
        containerd_source: Where containerd comes from; ``docker`` adds the
            docker repositories on :meth:`configure`
        manager: Package manager to use, detected when omitted
        log: Logger for progress messages
        backoff: Seconds between retried commands
        install_root: Prefix for every file this manager writes or removes
    """

    def __init__(
        self,
        containerd_source: ContainerdSource = ContainerdSource.NONE,
        manager: Optional[str] = None,
        log: Optional[logging.Logger] = None,
        backoff: float = DEFAULT_BACKOFF,
        install_root: str = "/",
    ):
        self.manager = manager or detect_package_manager()
        if self.manager not in _INSTALL_VERBS:
            raise NodeadmError(f"unsupported package manager {self.manager}")
        self.install_verb = _INSTALL_VERBS[self.manager]
        self.update_verb = _UPDATE_VERBS[self.manager]
        self.delete_verb = _DELETE_VERBS[self.manager]
        self.refresh_metadata_verb = _REFRESH_VERBS[self.manager]
        self.docker_repo = _DOCKER_REPOS[self.manager] if containerd_source == ContainerdSource.DOCKER else ""
        self.logger = log or logger
        self.backoff = backoff
        self.install_root = install_root

    def _path(self, path: str) -> str:
        return os.path.join(self.install_root, path.lstrip("/"))

    def configure(self, deadline: Deadline) -> None:
        """Add the docker repositories when containerd comes from docker."""
        if not self.docker_repo:
            return
        if self.manager == YUM:
            self._configure_yum_docker_repo(deadline)
        elif self.manager == APT:
            self._configure_apt_docker_repo(deadline)

    def _configure_yum_docker_repo(self, deadline: Deadline) -> None:
        if system.command_exists(RUNC_PACKAGE):
            self.logger.info("Removing runc to avoid package conflicts from docker repos...")
            try:
                retry(deadline, self._package(RUNC_PACKAGE).uninstall_cmd, self.backoff, self.logger)
            except NodeadmError as e:
                raise NodeadmError(f"failed to remove runc using package manager: {e}") from e

        try:
            retry(deadline, self._package(YUM_UTILS_PACKAGE).install_cmd, self.backoff, self.logger)
        except NodeadmError as e:
            raise NodeadmError(f"failed to install {YUM_UTILS_PACKAGE} using package manager: {e}") from e

        self.logger.info("Adding docker repo to package manager...")
        try:
            cmd.run(new_cmd(YUM_UTILS_MANAGER, "--add-repo", CENTOS_DOCKER_REPO), deadline)
        except NodeadmError as e:
            raise NodeadmError(f"failed adding docker repo to package manager: {e}") from e

    def _configure_apt_docker_repo(self, deadline: Deadline) -> None:
        try:
            retry(deadline, self._package(CA_CERTS_PACKAGE).install_cmd, self.backoff, self.logger)
        except NodeadmError as e:
            raise NodeadmError(f"failed running commands to configure package manager: {e}") from e

        self.logger.info("Downloading docker repo signing key...")
        try:
            response = requests.get(UBUNTU_DOCKER_GPG_KEY, timeout=60)
            response.raise_for_status()
        except requests.RequestException as e:
            raise NodeadmError(f"downloading docker gpg key: {e}") from e
        key_path = self._path(UBUNTU_DOCKER_GPG_KEY_PATH)
        write_file_with_dir(key_path, response.content, DOCKER_REPO_FILE_PERMS)

        repo_config = (
            f"deb [arch={system.get_arch().value} signed-by={UBUNTU_DOCKER_GPG_KEY_PATH}] "
            f"{UBUNTU_DOCKER_REPO} {system.get_version_codename()} stable\n"
        )
        write_file_with_dir(self._path(APT_DOCKER_REPO_SOURCE_PATH), repo_config.encode(), DOCKER_REPO_FILE_PERMS)

        self.logger.info("Updating packages to refresh docker repo metadata...")
        def refresh():
            return new_cmd(
                APT, self.refresh_metadata_verb,
                "-o", f"Dir::Etc::sourcelist={APT_DOCKER_REPO_SOURCE_PATH}",
                "-o", "Dir::Etc::sourceparts=-",
                "-o", "APT::Get::List-Cleanup=0",
            )

        try:
            retry(deadline, refresh, self.backoff, self.logger)
        except NodeadmError as e:
            raise NodeadmError(f"failed running commands to configure package manager: {e}") from e

    def refresh_metadata_cache(self, deadline: Deadline) -> None:
        """Refresh the complete package index."""
        retry(deadline, lambda: new_cmd(self.manager, self.refresh_metadata_verb), self.backoff, self.logger)

    def _with_version(self, name: str, version: str) -> str:
        if not version:
            return name
        if self.manager == YUM:
            return f"{name}-{version}"
        elif self.manager == APT:
            return f"{name}={version}"
        return name

    def _package(self, name: str) -> Package:
        return Package(
            install=new_cmd(self.manager, self.install_verb, name, "-y"),
            uninstall=new_cmd(self.manager, self.delete_verb, name, "-y"),
            upgrade=new_cmd(self.manager, self.update_verb, name, "-y"),
        )

    def get_containerd(self, version: str = CONTAINERD_VERSION) -> Package:
        name = CONTAINERD_DOCKER_PACKAGE if self.docker_repo else CONTAINERD_DISTRO_PACKAGE
        return self._package(self._with_version(name, version))

    def get_iptables(self) -> Package:
        return self._package(IPTABLES_PACKAGE)

    def get_ssm_package(self) -> Package:
        # apt hosts get the agent from snap
        if self.manager == APT:
            return Package(
                install=new_cmd(SNAP, "install", SSM_PACKAGE),
                uninstall=new_cmd(SNAP, "remove", SSM_PACKAGE),
                upgrade=new_cmd(SNAP, "refresh", SSM_PACKAGE),
            )
        return self._package(SSM_PACKAGE)

    def cleanup(self) -> None:
        """Remove repository configuration added by :meth:`configure`."""
        if not self.docker_repo:
            return
        if self.manager == YUM:
            self._remove_repo_file(YUM_DOCKER_REPO_SOURCE_PATH)
        elif self.manager == APT:
            self._remove_repo_file(UBUNTU_DOCKER_GPG_KEY_PATH)
            self._remove_repo_file(APT_DOCKER_REPO_SOURCE_PATH)

    def _remove_repo_file(self, path: str) -> None:
        try:
            os.remove(self._path(path))
            self.logger.info(f"Removed {self.manager} docker repo file {path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            raise NodeadmError(f"failed to remove {self.manager} docker repo file {path}: {e}") from e
