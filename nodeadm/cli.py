import logging
import sys
from typing import Optional

import typer

from . import __version__
from .commands import check, init, install, status, uninstall, upgrade
from .config import get_settings
from .logging import setup_logger

app = typer.Typer(help="nodeadm - bootstrap hybrid Kubernetes nodes.")

app.add_typer(install.app)
app.add_typer(uninstall.app)
app.add_typer(upgrade.app)
app.add_typer(init.app)
app.add_typer(status.app)
app.add_typer(check.app)


def _version_callback(value: bool):
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
    config: Optional[str] = typer.Option(None, "--config", help="Path to the nodeadm settings file"),
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True,
                                 help="Show the version and exit"),
):
    """nodeadm - bootstrap hybrid Kubernetes nodes."""
    settings = get_settings(config)
    level = logging.DEBUG if debug else settings.log_level
    setup_logger(
        level=level,
        log_file=settings.logging.file,
        max_size_mb=settings.logging.max_size_mb,
        backup_count=settings.logging.backup_count,
    )
    # Keep client libraries quiet unless debugging
    if not debug:
        logging.getLogger('urllib3').setLevel(logging.WARNING)
        logging.getLogger('kubernetes').setLevel(logging.WARNING)
    logging.getLogger("nodeadm").debug("Debug mode enabled")


def run() -> None:
    try:
        app()
    except KeyboardInterrupt:
        logging.getLogger("nodeadm").error("Interrupted")
        sys.exit(130)


if __name__ == "__main__":
    run()
