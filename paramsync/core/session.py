"""
SSH session lifecycle management
"""
from __future__ import annotations

import re
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .client import RemoteClientFactory
from .constants import (
    DEFAULT_MONITOR_INTERVAL,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_RECONNECT_DELAY,
    DEFAULT_SSH_PORT,
    DEFAULT_SSH_TIMEOUT,
    MONITOR_LOCK_POLL,
)
from .exceptions import ConfigError, ConnectionError, ParamSyncError
from .interfaces import ConnectionFactory
from .logging import get_logger
from .telemetry import get_telemetry

logger = get_logger(__name__)
telemetry = get_telemetry()

_HOST_PATTERN = re.compile(r"^[A-Za-z0-9.\-]+$")
_USER_PATTERN = re.compile(r"^[A-Za-z0-9_.\-]+$")


class SessionState(str, Enum):
    """Session lifecycle state"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    MONITORING = "monitoring"
    INVALIDATED = "invalidated"


@dataclass
class ConnectionParams:
    """Connection parameters supplied by the caller"""
    host: str
    user: str
    password: Optional[str] = None
    port: int = DEFAULT_SSH_PORT
    timeout: float = DEFAULT_SSH_TIMEOUT

    def validate(self) -> None:
        """Validate parameters, raising ConfigError on the first problem"""
        if not self.host:
            raise ConfigError("Hostname cannot be empty")
        if len(self.host) > 255:
            raise ConfigError("Hostname exceeds 255 characters")
        if not _HOST_PATTERN.match(self.host):
            raise ConfigError(f"Hostname contains invalid characters: {self.host}")
        if not (1 <= int(self.port) <= 65535):
            raise ConfigError(f"Invalid port: {self.port}, must be between 1 and 65535")
        if not self.user:
            raise ConfigError("Username cannot be empty")
        if len(self.user) > 32:
            raise ConfigError("Username exceeds 32 characters")
        if not _USER_PATTERN.match(self.user):
            raise ConfigError(f"Username contains invalid characters: {self.user}")
        if not self.password:
            raise ConfigError("Password cannot be empty")
        if len(self.password) > 256:
            raise ConfigError("Password exceeds 256 characters")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (password omitted)"""
        return {
            "host": self.host,
            "user": self.user,
            "port": self.port,
            "timeout": self.timeout,
        }

    def __str__(self) -> str:
        return f"{self.user}@{self.host}:{self.port}"


class SessionManager:
    """
    Owns one transport and keeps its liveness observable.

    - ``connect()`` / ``reconnect()`` build the transport; neither retries
    - ``is_disconnected()`` runs a two-tier check: socket peek, then a
      throw-away probe channel
    - ``get_usable_session()`` never reconnects on its own
    - a background monitor re-runs the liveness check every
      ``monitor_interval`` seconds and only ever flips the validity flag
    - ``invalidate()`` wakes the monitor through its stop event, so
      teardown does not wait out the interval

    One re-entrant lock guards the validity flag and the client handle.
    """

    def __init__(
        self,
        params: ConnectionParams,
        connection_factory: Optional[ConnectionFactory] = None,
        monitor_interval: Optional[float] = DEFAULT_MONITOR_INTERVAL,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        on_state_change: Optional[Callable[[SessionState], None]] = None,
    ):
        self.params = params
        self.connection_factory = connection_factory or RemoteClientFactory()
        self.monitor_interval = monitor_interval
        self.probe_timeout = probe_timeout
        self.reconnect_delay = reconnect_delay
        self.on_state_change = on_state_change

        self._lock = threading.RLock()
        self._client: Optional[Any] = None
        self._valid = False
        self._state = SessionState.DISCONNECTED
        self._monitor_thread: Optional[threading.Thread] = None
        self._monitor_stop = threading.Event()

    # --------------------
    # State
    # --------------------
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_valid(self) -> bool:
        """Internal validity flag, without running any probe"""
        return self._valid

    def _set_state(self, state: SessionState) -> None:
        if state == self._state:
            return
        logger.debug(f"Session {self.params}: {self._state.value} -> {state.value}")
        self._state = state
        if self.on_state_change:
            try:
                self.on_state_change(state)
            except Exception as e:
                logger.warning(f"State change callback failed: {e}")

    # --------------------
    # Connection management
    # --------------------
    def connect(self) -> Any:
        """
        Open the transport, handshake and authenticate.

        Returns:
            The connected transport

        Raises:
            ConnectionError: Socket or handshake failure
            AuthenticationError: Credentials rejected
        """
        with self._lock:
            if self._valid and self._client is not None:
                return self._client

            self._stop_monitor()
            self._release_client()
            self._set_state(SessionState.CONNECTING)
            try:
                client = self._open_client()
            except ParamSyncError:
                self._set_state(SessionState.DISCONNECTED)
                raise

            self._install_client(client)
            logger.info(f"Connected to {self.params}")
            telemetry.record_event("session.connected", {"host": self.params.host})
            return client

    def reconnect(self) -> Any:
        """
        Tear down and rebuild the transport under the session lock.

        On failure the manager is left ``INVALIDATED`` and the error is
        re-raised; on success the monitor is restarted.
        """
        with self._lock:
            logger.info(f"Reconnecting to {self.params}...")
            self._valid = False
            self._stop_monitor()
            self._release_client()
            self._set_state(SessionState.CONNECTING)

            if self.reconnect_delay > 0:
                time.sleep(self.reconnect_delay)

            try:
                client = self._open_client()
            except ParamSyncError as e:
                logger.error(f"Reconnect to {self.params} failed: {e}")
                self._set_state(SessionState.INVALIDATED)
                raise

            self._install_client(client)
            logger.info(f"Reconnected to {self.params}")
            telemetry.record_event("session.reconnected", {"host": self.params.host})
            return client

    def invalidate(self, reason: str = "invalidated by caller") -> None:
        """
        Fast teardown. Safe to call repeatedly and from any thread.
        """
        # wake the monitor before waiting for the lock it may be polling
        self._monitor_stop.set()
        with self._lock:
            was_valid = self._valid
            self._valid = False
            self._stop_monitor()
            self._release_client()
            if self._state != SessionState.INVALIDATED:
                logger.info(f"Session {self.params} invalidated: {reason}")
                telemetry.record_event(
                    "session.invalidated",
                    {"host": self.params.host, "reason": reason, "was_valid": was_valid},
                )
                self._set_state(SessionState.INVALIDATED)

    def close(self) -> None:
        """Release the session; equivalent to ``invalidate()``"""
        self.invalidate("closed")

    def _open_client(self) -> Any:
        try:
            return self.connection_factory.create(self.params)
        except ParamSyncError:
            raise
        except Exception as e:
            raise ConnectionError(f"Failed to connect to {self.params}: {e}") from e

    def _install_client(self, client: Any) -> None:
        self._client = client
        self._valid = True
        self._set_state(SessionState.AUTHENTICATED)
        self._start_monitor()

    def _release_client(self) -> None:
        client = self._client
        self._client = None
        if client is not None:
            try:
                client.close()
            except Exception as e:
                logger.debug(f"Ignoring error while closing transport: {e}")

    # --------------------
    # Liveness
    # --------------------
    def is_disconnected(self) -> bool:
        """
        Fast liveness check.

        1. validity flag already false -> disconnected
        2. transport inactive or peer closed the socket -> disconnected
        3. probe channel cannot be opened -> disconnected

        Never raises.
        """
        with self._lock:
            return self._check_disconnected()

    def get_usable_session(self) -> Optional[Any]:
        """Return the live transport, or None if it is not usable"""
        with self._lock:
            if self._check_disconnected():
                return None
            return self._client

    def _check_disconnected(self) -> bool:
        client = self._client
        if not self._valid or client is None:
            return True

        try:
            if not client.is_active() or client.peer_closed():
                self._mark_lost("socket closed by peer")
                return True

            probe = client.open_channel(timeout=self.probe_timeout)
            if probe is None:
                self._mark_lost("probe channel refused")
                return True
            try:
                probe.close()
            except Exception as e:
                logger.debug(f"Probe channel close failed: {e}")
        except Exception as e:
            self._mark_lost(f"probe failed: {e}")
            return True

        return False

    def _mark_lost(self, reason: str) -> None:
        if self._valid:
            logger.warning(f"SSH connection to {self.params} lost: {reason}")
            telemetry.record_event("session.lost", {"host": self.params.host, "reason": reason})
        self._valid = False
        if self._state != SessionState.INVALIDATED:
            self._set_state(SessionState.DISCONNECTED)

    # --------------------
    # Background monitor
    # --------------------
    def _start_monitor(self) -> None:
        if not self.monitor_interval or self.monitor_interval <= 0:
            return

        stop = threading.Event()
        self._monitor_stop = stop
        self._monitor_thread = threading.Thread(
            target=self._run_monitor,
            args=(stop,),
            daemon=True,
            name=f"SessionMonitor-{self.params.host}",
        )
        self._monitor_thread.start()
        self._set_state(SessionState.MONITORING)

    def _stop_monitor(self) -> None:
        self._monitor_stop.set()
        thread = self._monitor_thread
        self._monitor_thread = None
        if thread is None or thread is threading.current_thread():
            return
        thread.join(timeout=self.probe_timeout + 1.0)
        if thread.is_alive():
            logger.warning("Session monitor did not stop in time")

    def _run_monitor(self, stop: threading.Event) -> None:
        """Monitor loop; errors are logged and never escape the thread"""
        logger.debug(f"Session monitor started (interval={self.monitor_interval}s)")
        while not stop.wait(self.monitor_interval):
            if not self._acquire_for_tick(stop):
                break
            try:
                if stop.is_set():
                    break
                if self._valid and self._check_disconnected():
                    logger.warning(f"Monitor: SSH connection to {self.params} is down")
            except Exception as e:
                logger.warning(f"Monitor tick failed: {e}", exc_info=True)
            finally:
                self._lock.release()
        logger.debug("Session monitor stopped")

    def _acquire_for_tick(self, stop: threading.Event) -> bool:
        # poll so a teardown holding the lock can still stop us
        while not stop.is_set():
            if self._lock.acquire(timeout=MONITOR_LOCK_POLL):
                return True
        return False

    # --------------------
    # Context manager
    # --------------------
    def __enter__(self) -> SessionManager:
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()


def open_session(
    host: str,
    user: str,
    password: str,
    port: int = DEFAULT_SSH_PORT,
    **kwargs: Any,
) -> SessionManager:
    """
    Create a SessionManager and connect it.

    Args:
        host: Remote host address
        user: Username
        password: Password
        port: SSH port
        **kwargs: Forwarded to SessionManager

    Returns:
        Connected SessionManager
    """
    manager = SessionManager(ConnectionParams(host=host, user=user, password=password, port=port), **kwargs)
    manager.connect()
    return manager
