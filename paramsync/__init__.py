"""
paramsync - keep a remote key/value config file in sync over SSH

Provides:
- A persistent SSH session with liveness monitoring and explicit reconnect
- Retrying command execution with idle timeouts and cancellation
- Loading, deduplicating, completing and atomically rewriting the remote
  parameter file
"""

__version__ = "0.1.0"

# Export core components
from .core import (
    CancellationToken,
    ConnectionParams,
    RemoteClient,
    RetryPolicy,
    SessionManager,
    SessionState,
    open_session,
)

# Export domain models
from .domain.params import (
    ConfigSynchronizer,
    Parameter,
    ParameterStore,
    SyncFailure,
    REQUIRED_PARAMETERS,
    OPTIONAL_PARAMETERS,
)

__all__ = [
    # Version
    "__version__",
    # Session
    "CancellationToken",
    "ConnectionParams",
    "RemoteClient",
    "RetryPolicy",
    "SessionManager",
    "SessionState",
    "open_session",
    # Parameters
    "ConfigSynchronizer",
    "Parameter",
    "ParameterStore",
    "SyncFailure",
    "REQUIRED_PARAMETERS",
    "OPTIONAL_PARAMETERS",
]
