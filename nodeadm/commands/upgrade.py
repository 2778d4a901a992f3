import logging
from typing import List, Optional

import typer

from .. import system
from ..components.ssm import HttpSSMInstallerSource
from ..config import get_settings
from ..daemon import new_daemon_manager
from ..errors import TrackerNotFoundError
from ..flows import Upgrader, hybrid_daemons
from ..manifest import ManifestSource
from ..node import NodeValidator
from ..nodeconfig import load_node_config
from ..packagemanager import DistroPackageManager
from ..tracker import get_installed_artifacts
from ..utils.deadline import Deadline
from . import parse_skip, reported, require_root

logger = logging.getLogger("nodeadm.commands.upgrade")

app = typer.Typer()


@app.command("upgrade")
def upgrade(
    kubernetes_version: str = typer.Argument(..., help="Kubernetes version to upgrade to"),
    config_source: str = typer.Option(
        ..., "--config-source", "-c", help="Node configuration, e.g. file:///etc/nodeadm/node.yaml"),
    skip: Optional[List[str]] = typer.Option(
        None, "--skip", "-s",
        help="Phases or checks to skip: config, run, init-validation, pod-validation, node-validation"),
    timeout: Optional[int] = typer.Option(
        None, "--timeout", "-t", help="Minutes before the upgrade is aborted"),
):
    """Upgrade installed components to a new Kubernetes version."""
    settings = get_settings()
    skip = parse_skip(skip)
    minutes = timeout if timeout is not None else settings.retry.upgrade_timeout_minutes
    with reported("upgrade"):
        require_root()

        logger.info("Loading installed components")
        try:
            tracker = get_installed_artifacts(settings.paths.tracker)
        except TrackerNotFoundError:
            typer.echo("No nodeadm components installed. Please use nodeadm install and nodeadm init commands "
                       "to bootstrap a node")
            return

        logger.info(f"Loading node configuration from {config_source}")
        node_config = load_node_config(config_source)

        source = ManifestSource.from_url(settings.paths.manifest_url, kubernetes_version)
        package_manager = DistroPackageManager(tracker.artifacts.containerd, backoff=settings.retry.backoff_seconds)

        with new_daemon_manager() as daemon_manager:
            upgrader = Upgrader(
                tracker=tracker,
                source=source,
                package_manager=package_manager,
                daemon_manager=daemon_manager,
                config=node_config,
                daemons=hybrid_daemons(daemon_manager, node_config, os_name=system.get_os_name()),
                ssm_installer=HttpSSMInstallerSource(),
                validator=NodeValidator(),
                skip=skip,
                backoff=settings.retry.backoff_seconds,
            )
            upgrader.run(Deadline(minutes * 60))
    typer.echo(f"✅ Upgraded to Kubernetes {source.version}")
