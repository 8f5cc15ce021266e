"""
Core utility functions
"""
import base64
import errno
import select
import socket
import uuid
from typing import Optional

from .constants import HEREDOC_DELIMITER_PREFIX


# ============================================================
# Socket Liveness
# ============================================================

def socket_peer_closed(sock: Optional[socket.socket]) -> bool:
    """
    Non-blocking check whether the peer has closed the socket.
    
    Polls for readability/exceptional state with a zero timeout and, if
    readable, peeks one byte without consuming it. A zero-length peek
    means an orderly shutdown by the peer.
    
    Args:
        sock: Socket to check (None counts as closed)
    
    Returns:
        True if the socket is closed or in an error state
    """
    if sock is None:
        return True
    
    try:
        if sock.fileno() < 0:
            return True
        readable, _, exceptional = select.select([sock], [], [sock], 0)
    except (OSError, ValueError):
        return True
    
    if exceptional:
        return True
    if not readable:
        return False
    
    try:
        data = sock.recv(1, socket.MSG_PEEK | getattr(socket, "MSG_DONTWAIT", 0))
    except BlockingIOError:
        return False
    except InterruptedError:
        return False
    except OSError as e:
        return e.errno not in (errno.EAGAIN, errno.EWOULDBLOCK, errno.EINPROGRESS)
    
    return len(data) == 0


# ============================================================
# Content Helpers
# ============================================================

def ensure_single_trailing_newline(text: str) -> str:
    """Strip trailing newlines and append exactly one (empty text stays empty)"""
    if not text:
        return text
    return text.rstrip("\n") + "\n"


def encode_base64(text: str) -> str:
    """UTF-8 encode and base64 encode text for shell transfer"""
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def make_heredoc_delimiter(content: str) -> str:
    """Generate a heredoc delimiter that does not occur anywhere in content"""
    while True:
        delimiter = f"{HEREDOC_DELIMITER_PREFIX}{uuid.uuid4().hex[:12].upper()}"
        if delimiter not in content:
            return delimiter
