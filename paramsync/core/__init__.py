"""
Core infrastructure layer
"""
from .cancel import CancellationToken
from .channel import CommandChannel, CommandResult
from .client import RemoteClient, RemoteClientFactory
from .constants import *
from .exceptions import *
from .interfaces import ConnectionFactory, PromptProvider
from .logging import setup_logging, get_logger, get_stdout_console, get_stderr_console
from .retry import RetryPolicy
from .session import ConnectionParams, SessionManager, SessionState, open_session
from .telemetry import Telemetry, get_telemetry

__all__ = [
    "CancellationToken",
    "CommandChannel",
    "CommandResult",
    "RemoteClient",
    "RemoteClientFactory",
    "ConnectionFactory",
    "PromptProvider",
    "setup_logging",
    "get_logger",
    "get_stdout_console",
    "get_stderr_console",
    "RetryPolicy",
    "ConnectionParams",
    "SessionManager",
    "SessionState",
    "open_session",
    "Telemetry",
    "get_telemetry",
    "ErrorKind",
    "ParamSyncError",
    "ConnectionError",
    "AuthenticationError",
    "SessionError",
    "SessionUnavailableError",
    "CommandError",
    "CommandFailedError",
    "CommandTimeoutError",
    "ConfigError",
    "ResourceError",
    "CancelledError",
]
