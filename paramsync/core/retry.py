"""
Retry wrapper around command execution
"""
import time
from typing import Optional

from .cancel import CancellationToken
from .channel import CommandChannel, CommandResult
from .constants import (
    DEFAULT_IDLE_TIMEOUT,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY,
    DEFAULT_TOTAL_TIMEOUT,
)
from .exceptions import (
    CancelledError,
    CommandFailedError,
    CommandTimeoutError,
    ParamSyncError,
    SessionUnavailableError,
)
from .logging import get_logger
from .session import SessionManager
from .telemetry import get_telemetry

logger = get_logger(__name__)
telemetry = get_telemetry()


class RetryPolicy:
    """
    Run one command through a CommandChannel with bounded retries.

    Each attempt first asks the session manager for a usable session.
    Retryable failures (no session, channel/read errors, idle timeout,
    non-zero exit) sleep ``delay`` seconds and try again, up to
    ``max_attempts``. The last categorized error is re-raised once
    attempts are exhausted, so callers can tell "no session" from
    "command failed" from "timed out".

    ``total_timeout`` is a wall-clock ceiling across all attempts, including
    a command that is still running and producing output.
    """

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_RETRIES,
        delay: float = DEFAULT_RETRY_DELAY,
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
        total_timeout: Optional[float] = DEFAULT_TOTAL_TIMEOUT,
        channel: Optional[CommandChannel] = None,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self.max_attempts = max_attempts
        self.delay = delay
        self.idle_timeout = idle_timeout
        self.total_timeout = total_timeout
        self.channel = channel or CommandChannel()

    def execute(
        self,
        session: SessionManager,
        command: str,
        check: bool = True,
        cancel: Optional[CancellationToken] = None,
    ) -> CommandResult:
        """
        Execute command with retries.

        Args:
            session: Session manager to draw the transport from
            command: Shell command
            check: Treat a non-zero exit status as failure
            cancel: Optional cancellation token

        Returns:
            CommandResult of the first successful attempt

        Raises:
            SessionUnavailableError: No usable session on the final attempt
            CommandFailedError: Command exited non-zero on the final attempt
            CommandTimeoutError: Read went idle, or the wall-clock ceiling passed
            CommandError: Channel/read failure on the final attempt
            CancelledError: Cancellation token fired
        """
        started = time.monotonic()
        deadline = started + self.total_timeout if self.total_timeout is not None else None
        last_error: Optional[ParamSyncError] = None

        for attempt in range(1, self.max_attempts + 1):
            if cancel is not None:
                cancel.raise_if_cancelled()

            try:
                result = self._attempt(session, command, check, cancel, deadline)
                telemetry.record_metric(
                    "command.duration", time.monotonic() - started, {"attempts": str(attempt)}
                )
                return result
            except ParamSyncError as e:
                if not e.retryable:
                    raise
                last_error = e

            if attempt == self.max_attempts:
                break

            elapsed = time.monotonic() - started
            if self.total_timeout is not None and elapsed + self.delay > self.total_timeout:
                raise CommandTimeoutError(
                    f"Command exceeded {self.total_timeout}s after {attempt} attempt(s): "
                    f"{last_error}"
                ) from last_error

            logger.debug(
                f"Attempt {attempt}/{self.max_attempts} failed: {last_error}; "
                f"retrying in {self.delay}s"
            )
            if cancel is not None:
                if cancel.wait(self.delay):
                    cancel.raise_if_cancelled()
            elif self.delay > 0:
                time.sleep(self.delay)

        logger.warning(f"Command failed after {self.max_attempts} attempt(s): {last_error}")
        raise last_error

    def _attempt(
        self,
        session: SessionManager,
        command: str,
        check: bool,
        cancel: Optional[CancellationToken],
        deadline: Optional[float],
    ) -> CommandResult:
        client = session.get_usable_session()
        if client is None:
            raise SessionUnavailableError("SSH connection is down")

        result = self.channel.run(
            client, command, timeout=self.idle_timeout, cancel=cancel, deadline=deadline
        )

        if result.cancelled:
            raise CancelledError(f"Command cancelled: {_short(command)}")
        if result.timed_out:
            if deadline is not None and time.monotonic() >= deadline:
                raise CommandTimeoutError(
                    f"Command exceeded {self.total_timeout}s: {_short(command)}"
                )
            raise CommandTimeoutError(
                f"No output for {self.idle_timeout}s: {_short(command)}"
            )
        if check and result.exit_code not in (0, None):
            raise CommandFailedError(
                f"Command exited with status {result.exit_code}: {_short(command)}"
                + (f" ({result.stderr.strip()})" if result.stderr.strip() else ""),
                exit_code=result.exit_code,
                stderr=result.stderr,
            )
        return result


def _short(command: str, limit: int = 80) -> str:
    first_line = command.splitlines()[0] if command else ""
    if len(first_line) > limit or "\n" in command:
        return first_line[:limit] + "..."
    return first_line
