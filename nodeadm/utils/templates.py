"""Rendering of the configuration files nodeadm writes.

Templates live in ``nodeadm/templates`` and are rendered with strict undefined
handling, so a missing variable fails instead of producing an empty value.
"""
import logging
import os

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateNotFound, TemplateSyntaxError, UndefinedError

from ..errors import NodeadmError

logger = logging.getLogger("nodeadm.utils.templates")


def get_template_path() -> str:
    """Get the absolute path to the templates directory."""
    return os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'templates')


_env = Environment(
    loader=FileSystemLoader(get_template_path()),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
    undefined=StrictUndefined,
)


def render(name: str, **context) -> str:
    """Render a template by file name.

    Raises:
        NodeadmError: If the template is missing, invalid or lacks a variable
    """
    try:
        return _env.get_template(name).render(**context)
    except TemplateNotFound as e:
        raise NodeadmError(f"template not found: {e}") from e
    except TemplateSyntaxError as e:
        raise NodeadmError(f"template syntax error in {name}: {e}") from e
    except UndefinedError as e:
        raise NodeadmError(f"missing template variable in {name}: {e}") from e
