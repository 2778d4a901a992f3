"""Node configuration document passed with ``--config-source``."""
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .creds import CredentialProvider
from .errors import NodeadmError

logger = logging.getLogger("nodeadm.nodeconfig")

DEFAULT_SANDBOX_IMAGE = "registry.k8s.io/pause:3.10"


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ClusterDetails(_Model):
    """The cluster the node joins."""
    name: str = ""
    region: str = ""
    api_server_endpoint: str = Field(default="", alias="apiServerEndpoint")
    # base64 encoded PEM bundle
    certificate_authority: str = Field(default="", alias="certificateAuthority")
    cidr: str = ""


class SSMOptions(_Model):
    activation_code: str = Field(default="", alias="activationCode")
    activation_id: str = Field(default="", alias="activationId")


class IAMRolesAnywhereOptions(_Model):
    node_name: str = Field(default="", alias="nodeName")
    trust_anchor_arn: str = Field(default="", alias="trustAnchorArn")
    profile_arn: str = Field(default="", alias="profileArn")
    role_arn: str = Field(default="", alias="roleArn")
    certificate_path: str = Field(default="/etc/iam/pki/server.pem", alias="certificatePath")
    private_key_path: str = Field(default="/etc/iam/pki/server.key", alias="privateKeyPath")


class HybridOptions(_Model):
    enable_credentials_file: bool = Field(default=False, alias="enableCredentialsFile")
    ssm: Optional[SSMOptions] = None
    iam_roles_anywhere: Optional[IAMRolesAnywhereOptions] = Field(default=None, alias="iamRolesAnywhere")


class KubeletOptions(_Model):
    config: Dict[str, Any] = Field(default_factory=dict)
    flags: List[str] = Field(default_factory=list)


class ContainerdOptions(_Model):
    config: str = ""
    sandbox_image: str = Field(default=DEFAULT_SANDBOX_IMAGE, alias="sandboxImage")


class NodeConfigSpec(_Model):
    cluster: ClusterDetails = Field(default_factory=ClusterDetails)
    hybrid: HybridOptions = Field(default_factory=HybridOptions)
    kubelet: KubeletOptions = Field(default_factory=KubeletOptions)
    containerd: ContainerdOptions = Field(default_factory=ContainerdOptions)


class NodeConfig(_Model):
    """A ``node.eks.aws/v1alpha1`` NodeConfig document."""
    api_version: str = Field(default="node.eks.aws/v1alpha1", alias="apiVersion")
    kind: str = "NodeConfig"
    spec: NodeConfigSpec = Field(default_factory=NodeConfigSpec)

    @model_validator(mode='after')
    def check_required(self) -> 'NodeConfig':
        cluster = self.spec.cluster
        if not cluster.name:
            raise ValueError("Name is missing in cluster configuration")
        if not cluster.region:
            raise ValueError("Region is missing in hybrid configuration")

        hybrid = self.spec.hybrid
        if hybrid.ssm is None and hybrid.iam_roles_anywhere is None:
            raise ValueError("Either IAMRolesAnywhere or SSM must be provided for hybrid node configuration")
        if hybrid.ssm is not None and hybrid.iam_roles_anywhere is not None:
            raise ValueError("Only one of IAMRolesAnywhere or SSM must be provided for hybrid node configuration")

        if hybrid.iam_roles_anywhere is not None:
            ira = hybrid.iam_roles_anywhere
            if not ira.node_name:
                raise ValueError("NodeName is missing in hybrid iam roles anywhere configuration")
            if not ira.role_arn:
                raise ValueError("RoleARN is missing in hybrid iam roles anywhere configuration")
            if not ira.profile_arn:
                raise ValueError("ProfileARN is missing in hybrid iam roles anywhere configuration")
            if not ira.trust_anchor_arn:
                raise ValueError("TrustAnchorARN is missing in hybrid iam roles anywhere configuration")
        else:
            if not hybrid.ssm.activation_code:
                raise ValueError("ActivationCode is missing in hybrid ssm configuration")
            if not hybrid.ssm.activation_id:
                raise ValueError("ActivationID is missing in hybrid ssm configuration")
        return self

    @property
    def credential_provider(self) -> CredentialProvider:
        if self.spec.hybrid.ssm is not None:
            return CredentialProvider.SSM
        return CredentialProvider.IAM_ROLES_ANYWHERE


def load_node_config(source: str) -> NodeConfig:
    """Load a NodeConfig from a ``file://`` URI.

    Args:
        source: Location of the configuration, e.g. ``file:///etc/nodeadm/node.yaml``

    Returns:
        NodeConfig: The validated configuration

    Raises:
        NodeadmError: If the source cannot be read or the document is invalid
    """
    parsed = urlparse(source)
    if parsed.scheme != "file":
        raise NodeadmError(f"unsupported config source {source}: only file:// is supported")
    path = parsed.netloc + parsed.path

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise NodeadmError(f"reading node config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise NodeadmError(f"invalid yaml data in node config {path}: {e}") from e

    try:
        config = NodeConfig.model_validate(data)
    except ValidationError as e:
        raise NodeadmError(f"validating node config: {e}") from e

    logger.debug(f"Loaded node config for cluster {config.spec.cluster.name}")
    return config
