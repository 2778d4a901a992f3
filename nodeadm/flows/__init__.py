"""
Flows sequencing component installers and daemons.
"""
from .init import CONFIG_PHASE, RUN_PHASE, Initializer, hybrid_daemons
from .install import Installer
from .uninstall import Uninstaller
from .upgrade import Upgrader

__all__ = [
    'CONFIG_PHASE',
    'Initializer',
    'Installer',
    'RUN_PHASE',
    'Uninstaller',
    'Upgrader',
    'hybrid_daemons',
]
