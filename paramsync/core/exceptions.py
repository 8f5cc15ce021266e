"""
Unified exception definitions

Every error carries an ``ErrorKind`` tag so callers can branch on the
category without walking the class hierarchy.
"""
from enum import Enum


class ErrorKind(str, Enum):
    """Error category"""
    CONNECTION = "connection"
    AUTHENTICATION = "authentication"
    SESSION = "session"
    COMMAND = "command"
    CONFIG = "config"
    RESOURCE = "resource"
    CANCELLED = "cancelled"


class ParamSyncError(Exception):
    """Base exception class"""
    kind = ErrorKind.COMMAND
    retryable = False


class ConnectionError(ParamSyncError):
    """Socket or handshake failure"""
    kind = ErrorKind.CONNECTION


class AuthenticationError(ParamSyncError):
    """Credentials rejected by the remote host"""
    kind = ErrorKind.AUTHENTICATION


class SessionError(ParamSyncError):
    """Session object missing or corrupted"""
    kind = ErrorKind.SESSION
    retryable = True


class SessionUnavailableError(SessionError):
    """No usable session could be obtained"""
    pass


class CommandError(ParamSyncError):
    """Remote command execution or read failure"""
    kind = ErrorKind.COMMAND
    retryable = True


class CommandFailedError(CommandError):
    """Command ran but exited with a non-zero status"""

    def __init__(self, message: str, exit_code: int = 1, stderr: str = ""):
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr


class CommandTimeoutError(CommandError):
    """No output received within the idle timeout"""
    pass


class ConfigError(ParamSyncError):
    """Parse failure, invalid value or write-protocol failure"""
    kind = ErrorKind.CONFIG


class ResourceError(ParamSyncError):
    """Local resource acquisition failure"""
    kind = ErrorKind.RESOURCE


class CancelledError(ParamSyncError):
    """Operation interrupted through a cancellation token"""
    kind = ErrorKind.CANCELLED
