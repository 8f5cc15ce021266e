"""
Parameter domain module
"""
from .models import (
    Parameter,
    ParameterStore,
    SyncFailure,
    REQUIRED_PARAMETERS,
    OPTIONAL_PARAMETERS,
    DEFAULT_VALUE,
)
from .parser import parse_config, apply_updates
from .remote_fs import RemoteShell
from .synchronizer import ConfigSynchronizer

__all__ = [
    "Parameter",
    "ParameterStore",
    "SyncFailure",
    "REQUIRED_PARAMETERS",
    "OPTIONAL_PARAMETERS",
    "DEFAULT_VALUE",
    "parse_config",
    "apply_updates",
    "RemoteShell",
    "ConfigSynchronizer",
]
