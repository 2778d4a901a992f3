"""Release manifest and the manifest-backed artifact source.

The manifest lists, per Kubernetes patch release and per signing helper
release, where each binary and its GNU checksum file can be downloaded.
"""
import hashlib
import logging
from datetime import date
from typing import List, Optional

import requests
import yaml
from pydantic import BaseModel, Field, ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from . import system
from .artifact.source import Source, gzipped_with_checksum, with_checksum
from .components.cni import CniPluginsSource
from .components.iamauthenticator import IAMAuthenticatorSource
from .components.iamrolesanywhere import SigningHelperSource
from .components.imagecredentialprovider import ImageCredentialProviderSource
from .components.kubectl import KubectlSource
from .components.kubelet import KubeletSource
from .errors import NodeadmError

logger = logging.getLogger("nodeadm.manifest")

HTTP_TIMEOUT = 120


class Artifact(BaseModel):
    name: str
    arch: str
    os: str
    uri: str
    checksum_uri: str = ""
    gzip_uri: str = ""


class EksPatchRelease(BaseModel):
    version: str
    patch_version: str
    release_date: str = ""
    artifacts: List[Artifact] = Field(default_factory=list)


class SupportedEksRelease(BaseModel):
    major_minor_version: str
    latest_patch_version: str
    patch_releases: List[EksPatchRelease] = Field(default_factory=list)


class IamRolesAnywhereRelease(BaseModel):
    version: str
    artifacts: List[Artifact] = Field(default_factory=list)


class Manifest(BaseModel):
    supported_eks_releases: List[SupportedEksRelease] = Field(default_factory=list)
    iam_roles_anywhere_releases: List[IamRolesAnywhereRelease] = Field(default_factory=list)


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    retry=retry_if_exception_type(requests.ConnectionError),
    reraise=True,
)
def _http_get(url: str, stream: bool = False) -> requests.Response:
    response = requests.get(url, timeout=HTTP_TIMEOUT, stream=stream)
    if response.status_code != 200:
        response.close()
        raise NodeadmError(f"unexpected status code {response.status_code} downloading {url}")
    return response


def get_http_file(url: str) -> bytes:
    """Download a small file into memory."""
    try:
        return _http_get(url).content
    except requests.RequestException as e:
        raise NodeadmError(f"downloading {url}: {e}") from e


def open_http_stream(url: str):
    """Open a streaming download; the caller must close it."""
    try:
        response = _http_get(url, stream=True)
    except requests.RequestException as e:
        raise NodeadmError(f"downloading {url}: {e}") from e
    response.raw.decode_content = True
    return response.raw


def parse_manifest(data: bytes) -> Manifest:
    try:
        return Manifest.model_validate(yaml.safe_load(data) or {})
    except (yaml.YAMLError, ValidationError) as e:
        raise NodeadmError(f"invalid yaml data in release manifest: {e}") from e


def get_release_manifest(url: str) -> Manifest:
    return parse_manifest(get_http_file(url))


def _version_key(version: str):
    parts = []
    for part in version.lstrip("v").split("."):
        digits = "".join(c for c in part if c.isdigit())
        parts.append(int(digits) if digits else 0)
    return tuple(parts)


def _release_date(release: EksPatchRelease) -> date:
    try:
        return date.fromisoformat(release.release_date)
    except ValueError as e:
        raise NodeadmError(f"invalid release date {release.release_date!r} for {release.version}") from e


def get_eks_release(version: str, manifest: Manifest) -> EksPatchRelease:
    """Resolve ``major.minor`` (latest patch) or ``major.minor.patch``.

    Raises:
        NodeadmError: If the version is malformed or not in the manifest
    """
    if not version:
        raise NodeadmError("eks version is empty")
    parts = version.lstrip("v").split(".")
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        raise NodeadmError(f"invalid semantic version: {version}")

    major_minor = ".".join(parts[:2])
    patch = parts[2] if len(parts) == 3 else None

    matched = []
    for supported in manifest.supported_eks_releases:
        if supported.major_minor_version != major_minor:
            continue
        wanted = patch if patch is not None else supported.latest_patch_version
        matched.extend(r for r in supported.patch_releases if r.patch_version == wanted)

    if len(matched) == 1:
        return matched[0]
    if len(matched) > 1:
        return max(matched, key=_release_date)

    if patch is not None:
        raise NodeadmError("input semver did not match with available releases. Try again with major.minor version")
    raise NodeadmError("input semver did not match with any available releases")


def get_latest_iam_roles_anywhere_release(manifest: Manifest) -> IamRolesAnywhereRelease:
    if not manifest.iam_roles_anywhere_releases:
        raise NodeadmError("no iam signer helper releases found")
    return max(manifest.iam_roles_anywhere_releases, key=lambda r: _version_key(r.version))


class ManifestSource(KubeletSource, KubectlSource, CniPluginsSource, ImageCredentialProviderSource,
                     IAMAuthenticatorSource, SigningHelperSource):
    """Serves every downloadable component of one release.

    Args:
        eks: The resolved Kubernetes patch release
        iam: The signing helper release, if one is needed
        arch: Artifact architecture, the host's by default
    """

    def __init__(self, eks: EksPatchRelease, iam: Optional[IamRolesAnywhereRelease] = None,
                 arch: Optional[system.Arch] = None):
        self.eks = eks
        self.iam = iam
        if arch is None:
            try:
                arch = system.get_arch()
            except ValueError as e:
                raise NodeadmError(str(e)) from e
        self.arch = arch

    @classmethod
    def from_url(cls, url: str, eks_version: str) -> 'ManifestSource':
        """Download the manifest and pick the release for ``eks_version``."""
        manifest = get_release_manifest(url)
        try:
            eks = get_eks_release(eks_version, manifest)
        except NodeadmError as e:
            raise NodeadmError(f"getting latest eks release: {e}") from e
        iam = None
        if manifest.iam_roles_anywhere_releases:
            iam = get_latest_iam_roles_anywhere_release(manifest)
        logger.info(f"Using Kubernetes release {eks.version}")
        return cls(eks, iam)

    @property
    def version(self) -> str:
        return self.eks.version

    def _source(self, name: str, artifacts: List[Artifact]) -> Source:
        for candidate in artifacts:
            if candidate.name != name or candidate.arch != self.arch.value or candidate.os != "linux":
                continue
            uri = candidate.gzip_uri or candidate.uri
            checksum = get_http_file(candidate.checksum_uri)
            stream = open_http_stream(uri)
            try:
                # The same checksum covers the decompressed gzip artifact
                if candidate.gzip_uri:
                    return gzipped_with_checksum(stream, hashlib.sha256(), checksum)
                return with_checksum(stream, hashlib.sha256(), checksum)
            except ValueError as e:
                stream.close()
                raise NodeadmError(f"getting artifact with checksum: {e}") from e
        raise NodeadmError(f"could not find artifact {name} for {self.arch.value} arch and linux os")

    def get_kubelet(self) -> Source:
        return self._source("kubelet", self.eks.artifacts)

    def get_kubectl(self) -> Source:
        return self._source("kubectl", self.eks.artifacts)

    def get_cni_plugins(self) -> Source:
        return self._source("cni-plugins", self.eks.artifacts)

    def get_image_credential_provider(self) -> Source:
        return self._source("ecr-credential-provider", self.eks.artifacts)

    def get_iam_authenticator(self) -> Source:
        return self._source("aws-iam-authenticator", self.eks.artifacts)

    def get_signing_helper(self) -> Source:
        if self.iam is None:
            raise NodeadmError("no iam signer helper releases found")
        return self._source("aws_signing_helper", self.iam.artifacts)
