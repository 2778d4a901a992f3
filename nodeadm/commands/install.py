import logging

import typer

from .. import system
from ..components.containerd import validate_containerd_source
from ..components.ssm import HttpSSMInstallerSource
from ..config import get_settings
from ..creds import CredentialProvider
from ..flows import Installer
from ..manifest import ManifestSource
from ..packagemanager import DistroPackageManager
from ..tracker import ContainerdSource, get_current_state
from ..utils.deadline import Deadline
from . import reported, require_root

logger = logging.getLogger("nodeadm.commands.install")

app = typer.Typer()


@app.command("install")
def install(
    kubernetes_version: str = typer.Argument(..., help="Kubernetes version, major.minor or major.minor.patch"),
    credential_provider: CredentialProvider = typer.Option(
        ..., "--credential-provider", "-p", help="Credential process to install"),
    containerd_source: ContainerdSource = typer.Option(
        ContainerdSource.DISTRO, "--containerd-source", "-s", help="Where to install containerd from"),
    region: str = typer.Option("us-west-2", "--region", "-r", help="Region the SSM agent is installed for"),
    timeout: int = typer.Option(20, "--timeout", "-t", help="Minutes before the install is aborted"),
):
    """Install the components needed to join a hybrid node to a cluster."""
    settings = get_settings()
    with reported("install"):
        require_root()
        validate_containerd_source(containerd_source, system.get_os_name())

        logger.info(f"Loading release manifest for Kubernetes {kubernetes_version}...")
        source = ManifestSource.from_url(settings.paths.manifest_url, kubernetes_version)

        logger.info(f"Creating package manager with containerd source {containerd_source.value}...")
        package_manager = DistroPackageManager(containerd_source, backoff=settings.retry.backoff_seconds)

        installer = Installer(
            tracker=get_current_state(settings.paths.tracker),
            source=source,
            package_manager=package_manager,
            credential_provider=credential_provider,
            containerd_source=containerd_source,
            ssm_installer=HttpSSMInstallerSource(),
            region=region,
            backoff=settings.retry.backoff_seconds,
        )
        installer.run(Deadline(timeout * 60))
    typer.echo(f"✅ Installed Kubernetes {source.version} components")
