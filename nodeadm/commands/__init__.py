"""
Sub-commands of the nodeadm CLI.
"""
import logging
from contextlib import contextmanager
from typing import List, Optional

import typer

from .. import system
from ..errors import ChecksumError, NodeadmError, PreconditionError

logger = logging.getLogger("nodeadm.commands")


def require_root() -> None:
    if not system.is_running_as_root():
        raise PreconditionError("this command must be run as root")


def parse_skip(values: Optional[List[str]]) -> List[str]:
    """Accept both repeated ``--skip`` flags and comma separated lists."""
    skip: List[str] = []
    for value in values or []:
        skip.extend(v.strip() for v in value.split(",") if v.strip())
    return skip


@contextmanager
def reported(operation: str):
    """Print nodeadm errors as ``operation: cause`` and exit with status 1."""
    try:
        yield
    except ChecksumError as e:
        logger.debug(f"{operation} failed", exc_info=True)
        typer.echo(f"❌ {operation}: {e}", err=True)
        typer.echo(f"   expected: {e.expect.hex()}", err=True)
        typer.echo(f"   actual:   {e.actual.hex()}", err=True)
        raise typer.Exit(1)
    except NodeadmError as e:
        logger.debug(f"{operation} failed", exc_info=True)
        typer.echo(f"❌ {operation}: {e}", err=True)
        raise typer.Exit(1)
