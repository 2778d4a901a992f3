"""Utility functions shared across nodeadm."""

import logging
import os
from typing import Any, Dict

import yaml

logger = logging.getLogger("nodeadm.utils")


def write_file_with_dir(path: str, data: bytes, mode: int = 0o644, dir_mode: int = 0o755) -> None:
    """Write a file, creating missing parent directories.

    Args:
        path: Destination path
        data: Content to write
        mode: File permissions, applied regardless of umask
        dir_mode: Permissions of created parent directories
    """
    os.makedirs(os.path.dirname(os.path.abspath(path)), mode=dir_mode, exist_ok=True)
    with open(path, 'wb') as f:
        f.write(data)
    os.chmod(path, mode)


def write_yaml_file(path: str, data: Dict[str, Any], mode: int = 0o644) -> None:
    """Write a YAML file with the given data.

    Args:
        path: Path to the YAML file
        data: Data to write as YAML
        mode: File permissions (default: 0o644)

    Raises:
        OSError: If the file cannot be written
    """
    try:
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        os.chmod(path, mode)
    except OSError as e:
        logger.error(f"Failed to write YAML file {path}: {e}")
        raise


def read_yaml_file(path: str) -> Dict[str, Any]:
    """Read a YAML file and return its contents as a dictionary.

    Args:
        path: Path to the YAML file

    Returns:
        dict: The parsed YAML data

    Raises:
        FileNotFoundError: If the file does not exist
        yaml.YAMLError: If the file is not valid YAML
    """
    with open(path, 'r', encoding='utf-8') as f:
        return yaml.safe_load(f) or {}
