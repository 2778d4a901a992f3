"""Host inspection helpers."""
import logging
import os
import platform
import shlex
import shutil
from enum import Enum
from typing import Dict, Optional

logger = logging.getLogger("nodeadm.system")

OS_RELEASE_PATH = "/etc/os-release"


class OSName(str, Enum):
    """Operating systems nodeadm supports."""
    UBUNTU = 'ubuntu'
    RHEL = 'rhel'
    AMAZON_LINUX = 'amzn'


class Arch(str, Enum):
    """CPU architectures, named the way release artifacts are."""
    AMD64 = 'amd64'
    ARM64 = 'arm64'


def read_os_release(path: str = OS_RELEASE_PATH) -> Dict[str, str]:
    """Parse an os-release file into a dict, empty if it cannot be read."""
    values: Dict[str, str] = {}
    try:
        with open(path, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith('#') or '=' not in line:
                    continue
                key, _, value = line.partition('=')
                parsed = shlex.split(value)
                values[key] = parsed[0] if parsed else ''
    except OSError as e:
        logger.debug(f"Could not read {path}: {e}")
    return values


def get_os_name(path: str = OS_RELEASE_PATH) -> Optional[OSName]:
    """The host OS, or None when it is not one nodeadm knows."""
    os_id = read_os_release(path).get('ID', '')
    for name in OSName:
        if name.value == os_id:
            return name
    return None


def get_version_codename(path: str = OS_RELEASE_PATH) -> str:
    return read_os_release(path).get('VERSION_CODENAME', '')


def get_arch() -> Arch:
    """Map the machine type to an artifact architecture.

    Raises:
        ValueError: For architectures without release artifacts
    """
    machine = platform.machine().lower()
    if machine in ('x86_64', 'amd64'):
        return Arch.AMD64
    elif machine in ('aarch64', 'arm64'):
        return Arch.ARM64
    raise ValueError(f"unhandled architecture: {machine}")


def command_exists(name: str) -> bool:
    return shutil.which(name) is not None


def is_running_as_root() -> bool:
    return os.geteuid() == 0
