"""
Cooperative cancellation
"""
import threading
from typing import Optional

from .exceptions import CancelledError


class CancellationToken:
    """
    Cancellation flag handed to long-running operations.
    
    Replaces a process-wide interrupt flag: whoever owns the token (a
    signal handler, a UI button, a test) calls ``cancel()``, and every
    operation holding the token stops at its next poll point.
    """
    
    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None
    
    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
        self._event.set()
    
    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
    
    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; returns True if cancelled meanwhile."""
        return self._event.wait(timeout)
    
    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancelledError(self.reason or "cancelled")
