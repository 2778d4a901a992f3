"""In-memory stand-ins for artifact sources and the daemon manager."""
import hashlib
import io
import tarfile

from nodeadm.artifact.source import with_checksum
from nodeadm.components.cni import CniPluginsSource
from nodeadm.components.iamauthenticator import IAMAuthenticatorSource
from nodeadm.components.iamrolesanywhere import SigningHelperSource
from nodeadm.components.imagecredentialprovider import ImageCredentialProviderSource
from nodeadm.components.kubectl import KubectlSource
from nodeadm.components.kubelet import KubeletSource
from nodeadm.components.ssm import SSMInstallerSource
from nodeadm.daemon import DaemonManager, DaemonStatus, OperationResult


def checksum_file(data: bytes, name: str = "artifact") -> str:
    return f"{hashlib.sha256(data).hexdigest()}  {name}\n"


def make_tgz(files) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for name, content in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            info.mode = 0o755
            tar.addfile(info, io.BytesIO(content))
    return buf.getvalue()


class FakeReleaseSource(KubeletSource, KubectlSource, CniPluginsSource, ImageCredentialProviderSource,
                        IAMAuthenticatorSource, SigningHelperSource):
    """Serves in-memory artifacts; ``corrupt`` names get a wrong checksum."""

    def __init__(self, version: str = "v1.31.0", corrupt=()):
        self.version = version
        self.corrupt = set(corrupt)
        self.served = []
        self.artifacts = {
            "kubelet": f"kubelet {version}".encode(),
            "kubectl": f"kubectl {version}".encode(),
            "cni-plugins": make_tgz({"bridge": b"bridge", "loopback": b"loopback"}),
            "ecr-credential-provider": f"ecr-credential-provider {version}".encode(),
            "aws-iam-authenticator": f"aws-iam-authenticator {version}".encode(),
            "aws_signing_helper": b"aws_signing_helper 1.2.0",
        }

    def _source(self, name):
        self.served.append(name)
        data = self.artifacts[name]
        checksum = checksum_file(b"tampered" if name in self.corrupt else data, name)
        return with_checksum(io.BytesIO(data), hashlib.sha256(), checksum)

    def get_kubelet(self):
        return self._source("kubelet")

    def get_kubectl(self):
        return self._source("kubectl")

    def get_cni_plugins(self):
        return self._source("cni-plugins")

    def get_image_credential_provider(self):
        return self._source("ecr-credential-provider")

    def get_iam_authenticator(self):
        return self._source("aws-iam-authenticator")

    def get_signing_helper(self):
        return self._source("aws_signing_helper")


class FakeSSMInstaller(SSMInstallerSource):
    def get_ssm_installer(self):
        return io.BytesIO(b"#!/bin/sh\n")


class RecordingDaemonManager(DaemonManager):
    """Keeps daemon state in memory and records every call."""

    def __init__(self, statuses=None):
        self.statuses = dict(statuses or {})
        self.enabled = set()
        self.calls = []

    def start_daemon(self, name):
        self.calls.append(("start", name))
        self.statuses[name] = DaemonStatus.RUNNING

    def stop_daemon(self, name):
        self.calls.append(("stop", name))
        if self.statuses.get(name) == DaemonStatus.RUNNING:
            self.statuses[name] = DaemonStatus.STOPPED

    def restart_daemon(self, deadline, name, options=None):
        self.calls.append(("restart", name))
        self.statuses[name] = DaemonStatus.RUNNING
        if options is not None and options.result is not None:
            options.result.set_running_or_notify_cancel()
            options.result.set_result(OperationResult.DONE)

    def get_daemon_status(self, name):
        return self.statuses.get(name, DaemonStatus.UNKNOWN)

    def enable_daemon(self, name):
        self.calls.append(("enable", name))
        self.enabled.add(name)

    def disable_daemon(self, name):
        self.calls.append(("disable", name))
        self.enabled.discard(name)

    def daemon_reload(self):
        self.calls.append(("daemon-reload",))

    def close(self):
        pass


IRA_CONFIG = {
    "apiVersion": "node.eks.aws/v1alpha1",
    "kind": "NodeConfig",
    "spec": {
        "cluster": {
            "name": "hybrid-cluster",
            "region": "us-west-2",
            "apiServerEndpoint": "https://example.eks.amazonaws.com",
            "certificateAuthority": "LS0tLS1CRUdJTiBDRVJUSUZJQ0FURS0tLS0tCg==",
        },
        "hybrid": {
            "iamRolesAnywhere": {
                "nodeName": "node-a",
                "trustAnchorArn": "arn:aws:rolesanywhere:us-west-2:123456789012:trust-anchor/ta",
                "profileArn": "arn:aws:rolesanywhere:us-west-2:123456789012:profile/p",
                "roleArn": "arn:aws:iam::123456789012:role/hybrid",
            },
        },
    },
}

SSM_CONFIG = {
    "apiVersion": "node.eks.aws/v1alpha1",
    "kind": "NodeConfig",
    "spec": {
        "cluster": {
            "name": "hybrid-cluster",
            "region": "us-west-2",
            "apiServerEndpoint": "https://example.eks.amazonaws.com",
            "certificateAuthority": "LS0tLS1CRUdJTiBDRVJUSUZJQ0FURS0tLS0tCg==",
        },
        "hybrid": {
            "ssm": {"activationCode": "code", "activationId": "id"},
        },
    },
}


