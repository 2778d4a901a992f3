import logging

import typer

from ..nodeconfig import load_node_config
from . import reported

logger = logging.getLogger("nodeadm.commands.check")

app = typer.Typer()


@app.command("check")
def check(
    config_source: str = typer.Option(
        ..., "--config-source", "-c", help="Node configuration, e.g. file:///etc/nodeadm/node.yaml"),
):
    """Validate a node configuration without changing the host."""
    with reported("check"):
        logger.info(f"Checking configuration from {config_source}")
        node_config = load_node_config(config_source)
    typer.echo(f"✅ Configuration is valid, credential provider: {node_config.credential_provider.value}")
