import logging
from dataclasses import fields

import typer
from rich.console import Console
from rich.table import Table

from .. import system
from ..components import containerd, iamrolesanywhere, kubelet, ssm
from ..config import get_settings
from ..daemon import new_daemon_manager
from ..errors import NodeadmError, TrackerNotFoundError
from ..tracker import ContainerdSource, InstalledArtifacts, get_installed_artifacts
from . import reported

logger = logging.getLogger("nodeadm.commands.status")

app = typer.Typer()
console = Console()


def _daemon_names(artifacts: InstalledArtifacts):
    names = []
    if artifacts.containerd != ContainerdSource.NONE:
        names.append(containerd.DAEMON_NAME)
    if artifacts.ssm:
        names.append(ssm.daemon_name(system.get_os_name()))
    if artifacts.iam_roles_anywhere:
        names.append(iamrolesanywhere.DAEMON_NAME)
    if artifacts.kubelet:
        names.append(kubelet.DAEMON_NAME)
    return names


@app.command("status")
def status():
    """Show installed components and the state of their daemons."""
    settings = get_settings()
    with reported("status"):
        try:
            tracker = get_installed_artifacts(settings.paths.tracker)
        except TrackerNotFoundError:
            typer.echo("Nodeadm components are not installed")
            return

        artifacts = tracker.artifacts
        table = Table(title="Installed components")
        table.add_column("Component", style="cyan")
        table.add_column("Installed")
        for field in fields(artifacts):
            value = getattr(artifacts, field.name)
            if field.name == "containerd":
                table.add_row(field.name, value.value)
            else:
                table.add_row(field.name, "[green]yes[/green]" if value else "no")
        console.print(table)

        daemons = Table(title="Daemons")
        daemons.add_column("Daemon", style="cyan")
        daemons.add_column("Status")
        with new_daemon_manager() as manager:
            for name in _daemon_names(artifacts):
                try:
                    state = manager.get_daemon_status(name).value
                except NodeadmError as e:
                    logger.debug(f"Reading status of {name} failed: {e}")
                    state = "unknown"
                daemons.add_row(name, state)
        console.print(daemons)
