"""kubelet binary, systemd unit and daemon."""
import base64
import json
import logging
import os
import re
from abc import ABC, abstractmethod
from typing import Dict, Optional

from ..artifact import names
from ..artifact.source import Source
from ..artifact.upgrade import upgrade as upgrade_artifact
from ..creds import CredentialProvider
from ..daemon import Daemon, DaemonManager, DaemonStatus, wait_for_status
from ..errors import NodeadmError
from ..nodeconfig import NodeConfig
from ..tracker import Tracker
from ..utils import templates, write_file_with_dir
from ..utils.deadline import Deadline
from . import (
    BINARY_PERMS,
    CONFIG_PERMS,
    DEFAULT_INSTALL_ROOT,
    component_errors,
    install_verified,
    remove_path,
    rooted,
    ssm,
)
from .containerd import CONTAINER_RUNTIME_ENDPOINT
from .imagecredentialprovider import BIN_PATH as IMAGE_CREDENTIAL_PROVIDER_BIN_PATH

logger = logging.getLogger("nodeadm.components.kubelet")

BIN_PATH = "/usr/bin/kubelet"
UNIT_PATH = "/etc/systemd/system/kubelet.service"
DAEMON_NAME = "kubelet"

CONFIG_ROOT = "/etc/kubernetes/kubelet"
CONFIG_PATH = "/etc/kubernetes/kubelet/config.json"
KUBECONFIG_PATH = "/var/lib/kubelet/kubeconfig"
CA_CERT_PATH = "/etc/kubernetes/pki/ca.crt"
ENVIRONMENT_PATH = "/etc/eks/kubelet/environment"
IMAGE_CREDENTIAL_PROVIDER_CONFIG_PATH = "/etc/eks/image-credential-provider/config.json"

HYBRID_PROVIDER_ID_PREFIX = "eks-hybrid"
# Shared by the ssm and iam-roles-anywhere credential writers
CREDENTIALS_FILE = "/eks-hybrid/.aws/credentials"


class KubeletSource(ABC):
    """Serves a kubelet binary."""

    @abstractmethod
    def get_kubelet(self) -> Source:
        ...


def render_unit() -> str:
    return templates.render("kubelet.service.j2", bin_path=BIN_PATH, environment_path=ENVIRONMENT_PATH)


def install(tracker: Tracker, source: KubeletSource, install_root: str = DEFAULT_INSTALL_ROOT) -> None:
    """Install the kubelet binary and its systemd unit."""
    with component_errors(names.KUBELET):
        install_verified(rooted(install_root, BIN_PATH), source.get_kubelet(), BINARY_PERMS)
        write_file_with_dir(rooted(install_root, UNIT_PATH), render_unit().encode(), CONFIG_PERMS)
    tracker.add(names.KUBELET)


def upgrade(source: KubeletSource, install_root: str = DEFAULT_INSTALL_ROOT,
            log: Optional[logging.Logger] = None) -> bool:
    with component_errors(names.KUBELET):
        with source.get_kubelet() as src:
            return upgrade_artifact(names.KUBELET, rooted(install_root, BIN_PATH), src, BINARY_PERMS, log)


def uninstall(install_root: str = DEFAULT_INSTALL_ROOT) -> None:
    with component_errors(names.KUBELET):
        for path in (BIN_PATH, UNIT_PATH, KUBECONFIG_PATH, CONFIG_ROOT):
            remove_path(rooted(install_root, path))


def provider_id(config: NodeConfig, node_name: str) -> str:
    cluster = config.spec.cluster
    return f"{HYBRID_PROVIDER_ID_PREFIX}:///{cluster.region}/{cluster.name}/{node_name}"


_PROVIDER_ID = re.compile(rf'^{HYBRID_PROVIDER_ID_PREFIX}:///[^/]+/[^/]+/(.+)$')


def node_name_from_provider_id(value: str) -> str:
    match = _PROVIDER_ID.match(value or "")
    if match is None:
        raise NodeadmError(f"invalid hybrid provider id: {value!r}")
    return match.group(1)


def get_node_name(install_root: str = DEFAULT_INSTALL_ROOT) -> str:
    """Name of the node as configured in the written kubelet config.

    Raises:
        NodeadmError: If the kubelet config is missing or has no hybrid provider id
    """
    path = rooted(install_root, CONFIG_PATH)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            kubelet = json.load(f)
    except (OSError, ValueError) as e:
        raise NodeadmError(f"reading kubelet config {path}: {e}") from e
    return node_name_from_provider_id(kubelet.get("providerID", "") if isinstance(kubelet, dict) else "")


def resolve_node_name(config: NodeConfig, install_root: str = DEFAULT_INSTALL_ROOT) -> str:
    """The node name, which depends on the credential provider.

    SSM nodes are named after their managed instance id, available only once
    the agent registered.
    """
    provider = config.credential_provider
    if provider == CredentialProvider.IAM_ROLES_ANYWHERE:
        return config.spec.hybrid.iam_roles_anywhere.node_name
    elif provider == CredentialProvider.SSM:
        try:
            return ssm.registered_instance_id(install_root)
        except FileNotFoundError as e:
            raise NodeadmError(f"reading ssm registration file: {e}") from e
    raise NodeadmError(f"unhandled credential provider: {provider}")


def kubelet_config(config: NodeConfig, node_name: str) -> Dict:
    """The KubeletConfiguration written for a hybrid node."""
    kubelet = {
        "apiVersion": "kubelet.config.k8s.io/v1beta1",
        "kind": "KubeletConfiguration",
        "address": "0.0.0.0",
        "authentication": {
            "anonymous": {"enabled": False},
            "webhook": {"enabled": True, "cacheTTL": "2m0s"},
            "x509": {"clientCAFile": CA_CERT_PATH},
        },
        "authorization": {
            "mode": "Webhook",
            "webhook": {"cacheAuthorizedTTL": "5m0s", "cacheUnauthorizedTTL": "30s"},
        },
        "cgroupDriver": "systemd",
        "cgroupRoot": "/",
        "clusterDomain": "cluster.local",
        "containerRuntimeEndpoint": CONTAINER_RUNTIME_ENDPOINT,
        "evictionHard": {
            "memory.available": "100Mi",
            "nodefs.available": "10%",
            "nodefs.inodesFree": "5%",
        },
        "featureGates": {"RotateKubeletServerCertificate": True},
        "hairpinMode": "hairpin-veth",
        "protectKernelDefaults": True,
        "readOnlyPort": 0,
        "logging": {"verbosity": 2},
        "serializeImagePulls": False,
        "serverTLSBootstrap": True,
        "providerID": provider_id(config, node_name),
    }
    kubelet.update(config.spec.kubelet.config)
    return kubelet


class KubeletDaemon(Daemon):
    """Writes kubelet configuration and keeps the kubelet unit running.

    Args:
        manager: Daemon manager controlling the unit
        config: Node configuration
        node_name: Name the node registers with, resolved from the
            credential provider on configure when omitted
        install_root: Prefix for every file written
        log: Logger for progress messages
    """

    def __init__(self, manager: DaemonManager, config: NodeConfig, node_name: Optional[str] = None,
                 install_root: str = DEFAULT_INSTALL_ROOT, log: Optional[logging.Logger] = None):
        self.manager = manager
        self.config = config
        self.node_name = node_name
        self.install_root = install_root
        self.logger = log or logger

    @property
    def name(self) -> str:
        return DAEMON_NAME

    def _write(self, path: str, data: bytes, perms: int = CONFIG_PERMS) -> None:
        self.logger.info(f"Writing {path}...")
        write_file_with_dir(rooted(self.install_root, path), data, perms)

    def configure(self, deadline: Deadline) -> None:
        if not self.node_name:
            self.node_name = resolve_node_name(self.config, self.install_root)
            self.logger.info(f"Using node name {self.node_name}")
        config = kubelet_config(self.config, self.node_name)
        self._write(CONFIG_PATH, json.dumps(config, indent=2).encode())
        self._write(KUBECONFIG_PATH, self._kubeconfig().encode(), 0o600)
        self._write(IMAGE_CREDENTIAL_PROVIDER_CONFIG_PATH, self._image_credential_provider_config().encode())
        self._write(CA_CERT_PATH, self._ca_cert())
        self._write(ENVIRONMENT_PATH, self._environment().encode())

    def _kubeconfig(self) -> str:
        credentials_file = None
        if self.config.spec.hybrid.enable_credentials_file:
            credentials_file = CREDENTIALS_FILE
        return templates.render("kubeconfig.yaml.j2", cluster=self.config.spec.cluster,
                                ca_cert_path=CA_CERT_PATH, credentials_file=credentials_file)

    def _image_credential_provider_config(self) -> str:
        provider = {
            "apiVersion": "kubelet.config.k8s.io/v1",
            "kind": "CredentialProviderConfig",
            "providers": [{
                "name": os.path.basename(IMAGE_CREDENTIAL_PROVIDER_BIN_PATH),
                "matchImages": [
                    "*.dkr.ecr.*.amazonaws.com",
                    "*.dkr.ecr.*.amazonaws.com.cn",
                ],
                "defaultCacheDuration": "12h",
                "apiVersion": "credentialprovider.kubelet.k8s.io/v1",
            }],
        }
        return json.dumps(provider, indent=2)

    def _ca_cert(self) -> bytes:
        ca = self.config.spec.cluster.certificate_authority
        try:
            return base64.b64decode(ca, validate=True)
        except ValueError:
            # Already PEM encoded
            return ca.encode()

    def _environment(self) -> str:
        flags = [
            f"--config={CONFIG_PATH}",
            f"--kubeconfig={KUBECONFIG_PATH}",
            f"--image-credential-provider-bin-dir={os.path.dirname(IMAGE_CREDENTIAL_PROVIDER_BIN_PATH)}",
            f"--image-credential-provider-config={IMAGE_CREDENTIAL_PROVIDER_CONFIG_PATH}",
            f"--hostname-override={self.node_name}",
            "--node-labels=eks.amazonaws.com/compute-type=hybrid",
        ]
        flags.extend(self.config.spec.kubelet.flags)
        return f"NODEADM_KUBELET_ARGS=\"{' '.join(flags)}\"\n"

    def ensure_running(self, deadline: Deadline) -> None:
        self.manager.daemon_reload()
        self.manager.enable_daemon(DAEMON_NAME)
        self.manager.restart_daemon(deadline, DAEMON_NAME)
        wait_for_status(deadline.child(5 * 60), self.manager, DAEMON_NAME, DaemonStatus.RUNNING, 5, self.logger)

    def post_launch(self, deadline: Deadline) -> None:
        pass

    def stop(self) -> None:
        self.manager.stop_daemon(DAEMON_NAME)
