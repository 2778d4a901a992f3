"""Installed-artifacts tracker.

The tracker file is the single record of what nodeadm installed on this host.
Its absence means nothing is installed.
"""
import logging
import os
import shutil
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import yaml

from .artifact import names
from .creds import CredentialProvider
from .errors import NodeadmError, TrackerNotFoundError
from .utils import read_yaml_file, write_yaml_file

logger = logging.getLogger("nodeadm.tracker")

TRACKER_PATH = "/opt/nodeadm/tracker"


class ContainerdSource(str, Enum):
    """Where the container runtime on this host came from."""
    NONE = 'none'
    DISTRO = 'distro'
    DOCKER = 'docker'

    @classmethod
    def parse(cls, value: Optional[str]) -> 'ContainerdSource':
        """Parse a source name; an empty value means ``none``."""
        if value in (None, "", "none"):
            return cls.NONE
        if value == cls.DISTRO.value:
            return cls.DISTRO
        if value == cls.DOCKER.value:
            return cls.DOCKER
        raise ValueError(f"invalid containerd source: {value}")


# Flag attribute for every tracked boolean component
_FLAGS = {
    names.CNI_PLUGINS: 'cni_plugins',
    names.IAM_AUTHENTICATOR: 'iam_authenticator',
    names.IAM_ROLES_ANYWHERE: 'iam_roles_anywhere',
    names.IMAGE_CREDENTIAL_PROVIDER: 'image_credential_provider',
    names.KUBECTL: 'kubectl',
    names.KUBELET: 'kubelet',
    names.SSM: 'ssm',
    names.IPTABLES: 'iptables',
}

# Attribute to key mapping of the on-disk format
_KEYS = {
    'containerd': 'Containerd',
    'cni_plugins': 'CniPlugins',
    'iam_authenticator': 'IamAuthenticator',
    'iam_roles_anywhere': 'IamRolesAnywhere',
    'image_credential_provider': 'ImageCredentialProvider',
    'kubectl': 'Kubectl',
    'kubelet': 'Kubelet',
    'ssm': 'Ssm',
    'iptables': 'Iptables',
}


@dataclass
class InstalledArtifacts:
    """What is currently installed on the host."""
    containerd: ContainerdSource = ContainerdSource.NONE
    cni_plugins: bool = False
    iam_authenticator: bool = False
    iam_roles_anywhere: bool = False
    image_credential_provider: bool = False
    kubectl: bool = False
    kubelet: bool = False
    ssm: bool = False
    iptables: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = {key: getattr(self, attr) for attr, key in _KEYS.items()}
        data['Containerd'] = self.containerd.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InstalledArtifacts':
        values = {}
        for attr, key in _KEYS.items():
            if attr == 'containerd':
                values[attr] = ContainerdSource.parse(data.get(key))
            else:
                values[attr] = bool(data.get(key, False))
        return cls(**values)


class Tracker:
    """Records installed components and persists them as YAML.

    Args:
        artifacts: Initial state, empty if omitted
        path: Location of the tracker file
    """

    def __init__(self, artifacts: Optional[InstalledArtifacts] = None, path: str = TRACKER_PATH):
        self.artifacts = artifacts or InstalledArtifacts()
        self.path = path

    def add(self, component: str) -> None:
        """Mark a component as installed.

        Raises:
            ValueError: If the component is not tracked
        """
        attr = _FLAGS.get(component)
        if attr is None:
            raise ValueError(f"invalid artifact to track: {component}")
        setattr(self.artifacts, attr, True)

    def remove(self, component: str) -> None:
        """Mark a component as no longer installed."""
        if component == names.CONTAINERD:
            self.artifacts.containerd = ContainerdSource.NONE
            return
        attr = _FLAGS.get(component)
        if attr is None:
            raise ValueError(f"invalid artifact to track: {component}")
        setattr(self.artifacts, attr, False)

    def mark_containerd(self, source: ContainerdSource) -> None:
        self.artifacts.containerd = ContainerdSource(source)

    def credential_provider(self) -> CredentialProvider:
        """The credential provider recorded at install time."""
        if self.artifacts.ssm:
            return CredentialProvider.SSM
        if self.artifacts.iam_roles_anywhere:
            return CredentialProvider.IAM_ROLES_ANYWHERE
        raise NodeadmError("no credential provider found in the installed artifacts")

    def save(self) -> None:
        """Write the tracker file, creating its directory if needed."""
        write_yaml_file(self.path, {'Artifacts': self.artifacts.to_dict()}, mode=0o644)
        logger.debug(f"Saved tracker to {self.path}")

    def clear(self) -> None:
        clear(self.path)


def clear(path: str = TRACKER_PATH) -> None:
    """Delete the tracker directory; a missing directory is fine.

    Raises:
        NodeadmError: If the directory cannot be removed
    """
    try:
        shutil.rmtree(os.path.dirname(path))
    except FileNotFoundError:
        pass
    except OSError as e:
        raise NodeadmError(f"removing tracker: {e}") from e


def get_installed_artifacts(path: str = TRACKER_PATH) -> Tracker:
    """Load the tracker written by a previous install.

    Raises:
        TrackerNotFoundError: If no tracker file exists
        NodeadmError: If the tracker file is not valid
    """
    try:
        data = read_yaml_file(path)
    except FileNotFoundError as e:
        raise TrackerNotFoundError(f"tracker file {path} not found") from e
    except yaml.YAMLError as e:
        raise NodeadmError(f"invalid yaml data in tracker: {e}") from e

    if not isinstance(data, dict):
        raise NodeadmError("invalid yaml data in tracker: expected a mapping")
    artifacts = data.get('Artifacts') or {}
    if not isinstance(artifacts, dict):
        raise NodeadmError("invalid yaml data in tracker: Artifacts must be a mapping")

    try:
        return Tracker(InstalledArtifacts.from_dict(artifacts), path=path)
    except ValueError as e:
        raise NodeadmError(str(e)) from e


def get_current_state(path: str = TRACKER_PATH) -> Tracker:
    """Load the tracker, or return an empty one if nothing was installed."""
    try:
        return get_installed_artifacts(path)
    except TrackerNotFoundError:
        return Tracker(path=path)
