import logging
from typing import List, Optional

import typer

from .. import system
from ..config import get_settings
from ..daemon import new_daemon_manager
from ..errors import TrackerNotFoundError
from ..flows import Uninstaller
from ..node import NodeValidator
from ..packagemanager import DistroPackageManager
from ..tracker import get_installed_artifacts
from ..utils.deadline import Deadline
from . import parse_skip, reported, require_root

logger = logging.getLogger("nodeadm.commands.uninstall")

app = typer.Typer()


@app.command("uninstall")
def uninstall(
    skip: Optional[List[str]] = typer.Option(
        None, "--skip", "-s", help="Checks to skip: pod-validation, node-validation"),
    timeout: int = typer.Option(20, "--timeout", "-t", help="Minutes before the uninstall is aborted"),
):
    """Uninstall the components installed by the install command."""
    settings = get_settings()
    skip = parse_skip(skip)
    with reported("uninstall"):
        require_root()

        logger.info("Loading installed components")
        try:
            tracker = get_installed_artifacts(settings.paths.tracker)
        except TrackerNotFoundError:
            typer.echo("Nodeadm components are already uninstalled")
            return

        if tracker.artifacts.kubelet:
            NodeValidator().run(skip)

        containerd_source = tracker.artifacts.containerd
        logger.info(f"Creating package manager with containerd source {containerd_source.value}...")
        package_manager = DistroPackageManager(containerd_source, backoff=settings.retry.backoff_seconds)

        with new_daemon_manager() as daemon_manager:
            uninstaller = Uninstaller(
                tracker=tracker,
                daemon_manager=daemon_manager,
                package_manager=package_manager,
                os_name=system.get_os_name(),
                backoff=settings.retry.backoff_seconds,
            )
            uninstaller.run(Deadline(timeout * 60))
    typer.echo("✅ Uninstalled nodeadm components")
