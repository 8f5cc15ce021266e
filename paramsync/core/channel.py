"""
One-shot command execution over an exec channel
"""
import socket
import time
from dataclasses import dataclass
from typing import Any, List, Optional

from .cancel import CancellationToken
from .constants import (
    CHANNEL_BUFFER_SIZE,
    CHANNEL_POLL_INTERVAL,
    DEFAULT_IDLE_TIMEOUT,
    EXIT_STATUS_GRACE,
)
from .exceptions import CommandError, SessionError, SessionUnavailableError
from .logging import get_logger

logger = get_logger(__name__)


@dataclass
class CommandResult:
    """Command execution result"""
    stdout: str
    stderr: str = ""
    exit_code: Optional[int] = None
    timed_out: bool = False
    cancelled: bool = False

    @property
    def success(self) -> bool:
        """Completed without timeout/cancel and without a non-zero exit status"""
        if self.timed_out or self.cancelled:
            return False
        return self.exit_code in (0, None)

    def __str__(self) -> str:
        if self.success:
            return self.stdout
        return f"Error (exit code {self.exit_code}): {self.stderr}"


class CommandChannel:
    """
    Runs a single shell command on a fresh exec channel.

    Reads are non-blocking: a would-block read sleeps ``poll_interval`` and
    tries again. The timeout bounds idle time, so every chunk received
    restarts the clock. An optional absolute deadline caps the whole read
    even while output keeps arriving. On either timeout the partial output
    is returned with ``timed_out`` set.
    """

    def __init__(
        self,
        poll_interval: float = CHANNEL_POLL_INTERVAL,
        buffer_size: int = CHANNEL_BUFFER_SIZE,
        exit_status_grace: float = EXIT_STATUS_GRACE,
    ):
        self.poll_interval = poll_interval
        self.buffer_size = buffer_size
        self.exit_status_grace = exit_status_grace

    def run(
        self,
        client: Any,
        command: str,
        timeout: float = DEFAULT_IDLE_TIMEOUT,
        cancel: Optional[CancellationToken] = None,
        deadline: Optional[float] = None,
    ) -> CommandResult:
        """
        Execute command and collect its output.

        Args:
            client: Connected transport providing ``open_channel()``
            command: Shell command string
            timeout: Maximum idle seconds without new output
            cancel: Optional cancellation token
            deadline: Optional ``time.monotonic()`` value after which the
                read stops regardless of output

        Returns:
            CommandResult (possibly partial, see ``timed_out``/``cancelled``)

        Raises:
            SessionUnavailableError: Channel could not be opened
            CommandError: Exec request or read failed
        """
        try:
            chan = client.open_channel(timeout=timeout)
        except SessionError as e:
            raise SessionUnavailableError(str(e)) from e
        if chan is None:
            raise SessionUnavailableError("Transport returned no channel")

        out_buf: List[bytes] = []
        err_buf: List[bytes] = []
        timed_out = False
        cancelled = False
        exit_code: Optional[int] = None

        try:
            try:
                chan.exec_command(command)
            except (socket.error, EOFError) as e:
                raise CommandError(f"Failed to start command: {e}") from e
            except Exception as e:
                # paramiko.SSHException when the server refuses the request
                raise CommandError(f"Exec request rejected: {e}") from e
            chan.settimeout(0.0)

            last_data = time.monotonic()
            while True:
                if cancel is not None and cancel.cancelled:
                    cancelled = True
                    break

                if deadline is not None and time.monotonic() >= deadline:
                    timed_out = True
                    logger.warning(f"Command ran past its deadline: {command[:80]!r}")
                    break

                self._drain_stderr(chan, err_buf)

                try:
                    data = chan.recv(self.buffer_size)
                except socket.timeout:
                    data = None
                except OSError as e:
                    raise CommandError(f"Read failed: {e}") from e

                if data:
                    out_buf.append(data)
                    last_data = time.monotonic()
                    continue

                if data is not None:
                    # zero-length read: end of stream
                    break

                if time.monotonic() - last_data > timeout:
                    timed_out = True
                    logger.warning(f"Command idle for more than {timeout}s: {command[:80]!r}")
                    break

                time.sleep(self.poll_interval)

            if not timed_out and not cancelled:
                self._drain_stderr(chan, err_buf)
                exit_code = self._wait_exit_status(chan)

        except KeyboardInterrupt:
            self._close_channel(chan, graceful=True)
            raise
        finally:
            self._close_channel(chan, graceful=cancelled)

        return CommandResult(
            stdout=b"".join(out_buf).decode("utf-8", errors="replace"),
            stderr=b"".join(err_buf).decode("utf-8", errors="replace"),
            exit_code=exit_code,
            timed_out=timed_out,
            cancelled=cancelled,
        )

    def _drain_stderr(self, chan: Any, err_buf: List[bytes]) -> None:
        try:
            while chan.recv_stderr_ready():
                data = chan.recv_stderr(self.buffer_size)
                if not data:
                    break
                err_buf.append(data)
        except socket.timeout:
            pass
        except OSError as e:
            raise CommandError(f"Read failed: {e}") from e

    def _wait_exit_status(self, chan: Any) -> Optional[int]:
        deadline = time.monotonic() + self.exit_status_grace
        while not chan.exit_status_ready():
            if time.monotonic() > deadline:
                return None
            time.sleep(self.poll_interval)
        return chan.recv_exit_status()

    @staticmethod
    def _close_channel(chan: Any, graceful: bool = False) -> None:
        """Close channel; graceful sends EOF before the forced close"""
        if graceful:
            try:
                chan.shutdown_write()
            except Exception as e:
                logger.debug(f"shutdown_write failed: {e}")
        try:
            chan.close()
        except Exception as e:
            logger.debug(f"Channel close failed: {e}")
