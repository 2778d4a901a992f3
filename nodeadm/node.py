"""Pre-flight checks against the Kubernetes API before disruptive operations."""
import logging
import os
from typing import Callable, List, Optional

import yaml
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from .components import DEFAULT_INSTALL_ROOT, kubelet, rooted
from .errors import NodeadmError, PreconditionError

logger = logging.getLogger("nodeadm.node")

STATIC_POD_MANIFEST_PATH = "/etc/kubernetes/manifest"
LIST_PODS_ATTEMPTS = 5
LIST_PODS_INTERVAL = 5

POD_VALIDATION = "pod-validation"
NODE_VALIDATION = "node-validation"
INIT_VALIDATION = "init-validation"


def new_core_api(kubeconfig: str = kubelet.KUBECONFIG_PATH) -> client.CoreV1Api:
    """Build a CoreV1 client authenticating like the kubelet does."""
    try:
        config.load_kube_config(config_file=kubeconfig)
    except (ConfigException, OSError) as e:
        raise NodeadmError(f"loading kubeconfig {kubeconfig}: {e}") from e
    return client.CoreV1Api()


def static_pod_names(manifest_dir: str = STATIC_POD_MANIFEST_PATH) -> List[str]:
    """Names of the static pods defined on this host.

    A missing manifest directory means there are none.
    """
    try:
        entries = sorted(os.listdir(manifest_dir))
    except FileNotFoundError:
        return []
    except OSError as e:
        raise NodeadmError(f"failed to read static manifest directory: {e}") from e

    pod_names = []
    for entry in entries:
        if os.path.splitext(entry)[1] not in ('.yaml', '.yml'):
            continue
        try:
            with open(os.path.join(manifest_dir, entry), 'r', encoding='utf-8') as f:
                manifest = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise NodeadmError(f"failed to unmarshal static pod manifest file: {entry}: {e}") from e
        name = (manifest.get('metadata') or {}).get('name') if isinstance(manifest, dict) else None
        if name:
            pod_names.append(name)
    return pod_names


def check_initialized(install_root: str = DEFAULT_INSTALL_ROOT) -> None:
    """Fail unless the kubelet configuration written by ``nodeadm init`` exists.

    Raises:
        PreconditionError: If the node was never initialized
    """
    missing = [p for p in (kubelet.CONFIG_PATH, kubelet.KUBECONFIG_PATH)
               if not os.path.exists(rooted(install_root, p))]
    if missing:
        raise PreconditionError(
            "node not initialized. Please use nodeadm init command to bootstrap a node "
            f"or use --skip {INIT_VALIDATION}. Missing: {', '.join(missing)}"
        )


def _is_daemonset_pod(pod) -> bool:
    for ref in pod.metadata.owner_references or []:
        if ref.controller and ref.kind == "DaemonSet":
            return True
    return False


class NodeValidator:
    """Checks that a node was drained and cordoned.

    Args:
        node_name: Node to inspect, read from the kubelet config when omitted
        api: CoreV1 client, built from the kubelet kubeconfig when omitted
        install_root: Prefix for host paths
        list_interval: Seconds between pod list attempts
        log: Logger for progress messages
    """

    def __init__(self, node_name: Optional[str] = None, api: Optional[client.CoreV1Api] = None,
                 install_root: str = DEFAULT_INSTALL_ROOT, list_interval: float = LIST_PODS_INTERVAL,
                 log: Optional[logging.Logger] = None,
                 api_factory: Callable[[str], client.CoreV1Api] = new_core_api):
        self._node_name = node_name
        self._api = api
        self._api_factory = api_factory
        self.install_root = install_root
        self.list_interval = list_interval
        self.logger = log or logger

    @property
    def node_name(self) -> str:
        if self._node_name is None:
            self._node_name = kubelet.get_node_name(self.install_root)
        return self._node_name

    @property
    def api(self) -> client.CoreV1Api:
        if self._api is None:
            self._api = self._api_factory(rooted(self.install_root, kubelet.KUBECONFIG_PATH))
        return self._api

    def pods_on_node(self) -> list:
        """List every pod scheduled to the node, retrying failed requests."""
        def list_pods():
            return self.api.list_pod_for_all_namespaces(field_selector=f"spec.nodeName={self.node_name}")

        retrying = Retrying(
            stop=stop_after_attempt(LIST_PODS_ATTEMPTS),
            wait=wait_fixed(self.list_interval),
            retry=retry_if_exception_type((ApiException, OSError)),
            reraise=True,
        )
        try:
            return retrying(list_pods).items
        except (ApiException, OSError) as e:
            raise NodeadmError(f"failed to list all pods running on the node: {e}") from e

    def is_drained(self) -> None:
        """Fail unless only daemonset and static pods are left on the node.

        Raises:
            PreconditionError: If workload pods are still running
        """
        pods = [p for p in self.pods_on_node() if not _is_daemonset_pod(p)]

        static = set(static_pod_names(rooted(self.install_root, STATIC_POD_MANIFEST_PATH)))
        if static:
            mirrored = {f"{name}-{self.node_name}" for name in static}
            pods = [p for p in pods if p.metadata.name not in static and p.metadata.name not in mirrored]

        if pods:
            self.logger.debug(f"Pods still running on node: {[p.metadata.name for p in pods]}")
            raise PreconditionError(
                "only static pods and pods controlled by daemon-sets can be running on the node. "
                f"Please move pods to different node or use --skip {POD_VALIDATION}"
            )

    def is_unschedulable(self) -> None:
        """Fail unless the node is cordoned.

        Raises:
            PreconditionError: If the node still accepts pods
        """
        try:
            node = self.api.read_node(self.node_name)
        except ApiException as e:
            raise NodeadmError(f"getting node {self.node_name}: {e.reason}") from e
        if not node.spec.unschedulable:
            raise PreconditionError(
                f"please drain or cordon node to mark it unschedulable or use --skip {NODE_VALIDATION}"
            )

    def run(self, skip: List[str]) -> None:
        """Run the checks not listed in ``skip``."""
        if POD_VALIDATION not in skip:
            self.logger.info("Validating that the node is drained...")
            self.is_drained()
        if NODE_VALIDATION not in skip:
            self.logger.info("Validating that the node is unschedulable...")
            self.is_unschedulable()
