"""Names of the components nodeadm installs and tracks."""

CONTAINERD = "containerd"
CNI_PLUGINS = "cni-plugins"
IAM_AUTHENTICATOR = "iam-authenticator"
IAM_ROLES_ANYWHERE = "iam-roles-anywhere"
IMAGE_CREDENTIAL_PROVIDER = "image-credential-provider"
KUBECTL = "kubectl"
KUBELET = "kubelet"
SSM = "ssm"
IPTABLES = "iptables"
