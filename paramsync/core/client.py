"""
SSH transport built on paramiko
"""
from __future__ import annotations

from typing import Any, Optional

import paramiko

from .constants import (
    DEFAULT_SSH_PORT,
    DEFAULT_SSH_TIMEOUT,
    DEFAULT_BANNER_TIMEOUT,
    DEFAULT_AUTH_TIMEOUT,
)
from .exceptions import AuthenticationError, ConnectionError, SessionError
from .interfaces import ConnectionFactory
from .logging import get_logger
from .utils import socket_peer_closed

logger = get_logger(__name__)


class RemoteClient:
    """
    Thin wrapper around ``paramiko.SSHClient`` owning one socket and one
    authenticated session.

    - host / user / port are kept on the instance (paramiko does not expose them)
    - password authentication only
    - knows nothing beyond "connected / not connected"
    """
    def __init__(
        self,
        host: str,
        user: str,
        port: int = DEFAULT_SSH_PORT,
        password: Optional[str] = None,
        timeout: float = DEFAULT_SSH_TIMEOUT,
    ) -> None:
        self.host = host
        self.user = user
        self.port = port
        self.password = password
        self.timeout = timeout

        self.client = paramiko.SSHClient()
        self.client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        self._connected = False

    # --------------------
    # Connection management
    # --------------------
    def connect(self) -> None:
        """
        Open the socket, run the SSH handshake and authenticate.

        Raises:
            AuthenticationError: Credentials were rejected
            ConnectionError: Socket or handshake failure
        """
        try:
            self.client.connect(
                hostname=self.host,
                port=self.port,
                username=self.user,
                password=self.password,
                timeout=self.timeout,
                banner_timeout=DEFAULT_BANNER_TIMEOUT,
                auth_timeout=DEFAULT_AUTH_TIMEOUT,
                look_for_keys=False,
                allow_agent=False,
            )
        except paramiko.AuthenticationException as e:
            self.close()
            raise AuthenticationError(
                f"Authentication failed for {self.user}@{self.host}:{self.port}: {e}"
            ) from e
        except (paramiko.SSHException, OSError, EOFError) as e:
            # NoValidConnectionsError and socket.timeout are OSError subclasses
            self.close()
            raise ConnectionError(f"Failed to connect to {self.host}:{self.port}: {e}") from e

        self._connected = True
        logger.debug(f"Connected to {self.user}@{self.host}:{self.port}")

    @property
    def transport(self) -> Optional[paramiko.Transport]:
        return self.client.get_transport()

    def is_active(self) -> bool:
        """True while the paramiko transport reports itself active"""
        transport = self.transport
        return self._connected and transport is not None and transport.is_active()

    def peer_closed(self) -> bool:
        """Socket-level check; never consumes buffered bytes"""
        transport = self.transport
        if transport is None:
            return True
        return socket_peer_closed(getattr(transport, "sock", None))

    def open_channel(self, timeout: Optional[float] = None) -> paramiko.Channel:
        """
        Open a new session channel on the live transport.

        Raises:
            SessionError: Transport missing or channel refused
        """
        transport = self.transport
        if transport is None or not transport.is_active():
            raise SessionError("SSH transport is not active")
        try:
            return transport.open_session(timeout=timeout)
        except (paramiko.SSHException, OSError, EOFError) as e:
            raise SessionError(f"Failed to open channel: {e}") from e

    def close(self) -> None:
        """Close session and socket; safe to call repeatedly"""
        self._connected = False
        try:
            self.client.close()
        except Exception as e:
            logger.debug(f"Ignoring error while closing client: {e}")

    # --------------------
    # Context manager
    # --------------------
    def __enter__(self) -> RemoteClient:
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"RemoteClient({self.user}@{self.host}:{self.port})"


class RemoteClientFactory(ConnectionFactory):
    """Creates and connects ``RemoteClient`` instances"""

    def create(self, params: Any) -> RemoteClient:
        """
        Create and connect an SSH client.

        Args:
            params: Object with host, user, port, password and timeout attributes

        Returns:
            Connected RemoteClient instance

        Raises:
            ConnectionError: Socket or handshake failure
            AuthenticationError: Credentials rejected
        """
        client = RemoteClient(
            host=params.host,
            user=params.user,
            port=params.port,
            password=params.password,
            timeout=params.timeout,
        )
        client.connect()
        return client
