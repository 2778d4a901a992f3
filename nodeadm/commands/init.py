import logging
from typing import List, Optional

import typer

from .. import system
from ..daemon import new_daemon_manager
from ..flows import Initializer, hybrid_daemons
from ..nodeconfig import load_node_config
from ..utils.deadline import Deadline
from . import parse_skip, reported, require_root

logger = logging.getLogger("nodeadm.commands.init")

app = typer.Typer()


@app.command("init")
def init(
    config_source: str = typer.Option(
        ..., "--config-source", "-c", help="Node configuration, e.g. file:///etc/nodeadm/node.yaml"),
    skip: Optional[List[str]] = typer.Option(None, "--skip", "-s", help="Phases to skip: config, run"),
):
    """Configure and start the node daemons."""
    skip = parse_skip(skip)
    with reported("init"):
        require_root()

        logger.info(f"Loading node configuration from {config_source}")
        node_config = load_node_config(config_source)

        with new_daemon_manager() as daemon_manager:
            daemons = hybrid_daemons(daemon_manager, node_config, os_name=system.get_os_name())
            Initializer(daemons, skip).run(Deadline())
    typer.echo("✅ Node initialized")
