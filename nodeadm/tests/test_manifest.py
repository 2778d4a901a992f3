import gzip
import hashlib
import io

import pytest

from nodeadm import manifest
from nodeadm.errors import NodeadmError
from nodeadm.manifest import (
    ManifestSource,
    get_eks_release,
    get_latest_iam_roles_anywhere_release,
    parse_manifest,
)
from nodeadm.system import Arch

from .fakes import checksum_file

MANIFEST = b"""
supported_eks_releases:
- major_minor_version: "1.30"
  latest_patch_version: "4"
  patch_releases:
  - version: "1.30.4"
    patch_version: "4"
    release_date: "2024-09-01"
    artifacts:
    - name: kubelet
      arch: amd64
      os: linux
      uri: https://example.com/1.30.4/kubelet
      checksum_uri: https://example.com/1.30.4/kubelet.sha256
    - name: kubectl
      arch: amd64
      os: linux
      uri: https://example.com/1.30.4/kubectl
      gzip_uri: https://example.com/1.30.4/kubectl.gz
      checksum_uri: https://example.com/1.30.4/kubectl.sha256
  - version: "1.30.2"
    patch_version: "2"
    release_date: "2024-06-01"
  - version: "1.30.2"
    patch_version: "2"
    release_date: "2024-07-15"
- major_minor_version: "1.31"
  latest_patch_version: "0"
  patch_releases:
  - version: "1.31.0"
    patch_version: "0"
    release_date: "2024-10-01"
iam_roles_anywhere_releases:
- version: "1.1.1"
- version: "1.10.0"
- version: "1.2.0"
"""


@pytest.fixture
def parsed():
    return parse_manifest(MANIFEST)


def test_major_minor_picks_latest_patch(parsed):
    assert get_eks_release("1.30", parsed).version == "1.30.4"
    assert get_eks_release("v1.31", parsed).version == "1.31.0"


def test_exact_patch(parsed):
    assert get_eks_release("1.30.4", parsed).patch_version == "4"


def test_duplicate_patch_prefers_newest_release_date(parsed):
    assert get_eks_release("1.30.2", parsed).release_date == "2024-07-15"


def test_unknown_patch(parsed):
    with pytest.raises(NodeadmError, match="Try again with major.minor version"):
        get_eks_release("1.30.9", parsed)


def test_unknown_minor(parsed):
    with pytest.raises(NodeadmError, match="did not match with any available releases"):
        get_eks_release("1.12", parsed)


@pytest.mark.parametrize("version", ["", "1", "1.x", "1.30.4.1"])
def test_invalid_version(parsed, version):
    with pytest.raises(NodeadmError):
        get_eks_release(version, parsed)


def test_latest_iam_roles_anywhere_release(parsed):
    assert get_latest_iam_roles_anywhere_release(parsed).version == "1.10.0"


def test_invalid_manifest():
    with pytest.raises(NodeadmError, match="invalid yaml data in release manifest"):
        parse_manifest(b"supported_eks_releases: {")


@pytest.fixture
def served(monkeypatch):
    files = {
        "https://example.com/1.30.4/kubelet": b"kubelet-binary",
        "https://example.com/1.30.4/kubelet.sha256": checksum_file(b"kubelet-binary", "kubelet").encode(),
        "https://example.com/1.30.4/kubectl.gz": gzip.compress(b"kubectl-binary"),
        "https://example.com/1.30.4/kubectl.sha256": checksum_file(b"kubectl-binary", "kubectl").encode(),
    }
    monkeypatch.setattr(manifest, "get_http_file", lambda url: files[url])
    monkeypatch.setattr(manifest, "open_http_stream", lambda url: io.BytesIO(files[url]))
    return files


def test_manifest_source_serves_verified_artifacts(parsed, served):
    source = ManifestSource(get_eks_release("1.30", parsed), arch=Arch.AMD64)

    with source.get_kubelet() as kubelet:
        assert kubelet.read() == b"kubelet-binary"
        assert kubelet.verify_checksum()

    with source.get_kubectl() as kubectl:
        assert kubectl.read() == b"kubectl-binary"
        assert kubectl.expected_checksum() == hashlib.sha256(b"kubectl-binary").digest()
        assert kubectl.verify_checksum()


def test_manifest_source_missing_artifact(parsed, served):
    source = ManifestSource(get_eks_release("1.30", parsed), arch=Arch.ARM64)
    with pytest.raises(NodeadmError, match="could not find artifact kubelet for arm64"):
        source.get_kubelet()


def test_signing_helper_requires_release(parsed):
    source = ManifestSource(get_eks_release("1.30", parsed), arch=Arch.AMD64)
    with pytest.raises(NodeadmError, match="no iam signer helper releases found"):
        source.get_signing_helper()
