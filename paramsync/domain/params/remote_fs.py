"""
Remote file operations over shell commands

This is the whole wire contract with the remote host:

    existence probe      test -f PATH && echo existed || echo not_exist
    directory creation   mkdir -p DIR
    content dump         cat PATH
    decoder probe        command -v base64
    materialize temp     echo B64 | base64 -d > TMP   (heredoc fallback)
    rename over target   mv -f TMP PATH
    delete               rm -f PATH

The existence probes have no side effects, and no command here ever
writes to a target path directly; content only reaches a target via
``rename``.
"""
import posixpath
import secrets
import shlex
import time
from typing import Optional

from ...core.cancel import CancellationToken
from ...core.channel import CommandResult
from ...core.constants import (
    DECODER_MARKER,
    EXISTS_MARKER,
    NOT_EXISTS_MARKER,
    TEMP_NAME_ATTEMPTS,
    TEMP_SUFFIX,
)
from ...core.exceptions import CommandError, ResourceError
from ...core.logging import get_logger
from ...core.retry import RetryPolicy
from ...core.session import SessionManager
from ...core.utils import encode_base64, make_heredoc_delimiter

logger = get_logger(__name__)


class RemoteShell:
    """Executes the file command vocabulary through a RetryPolicy"""

    def __init__(
        self,
        session: SessionManager,
        retry: Optional[RetryPolicy] = None,
        cancel: Optional[CancellationToken] = None,
    ):
        self.session = session
        self.retry = retry or RetryPolicy()
        self.cancel = cancel

    def run(self, command: str, check: bool = True, cancellable: bool = True) -> CommandResult:
        cancel = self.cancel if cancellable else None
        return self.retry.execute(self.session, command, check=check, cancel=cancel)

    # --------------------
    # Probes
    # --------------------
    def exists(self, path: str) -> bool:
        """
        Check whether a regular file exists.

        Raises:
            CommandError: Probe output was neither marker
        """
        q = shlex.quote(path)
        out = self.run(
            f"test -f {q} && echo {EXISTS_MARKER} || echo {NOT_EXISTS_MARKER}"
        ).stdout
        if EXISTS_MARKER in out:
            return True
        if NOT_EXISTS_MARKER in out:
            return False
        raise CommandError(f"Unexpected existence probe output for {path}: {out!r}")

    def has_decoder(self) -> bool:
        """True if ``base64`` is available on the remote host"""
        out = self.run(
            f"command -v base64 >/dev/null 2>&1 && echo {DECODER_MARKER} || echo none",
            check=False,
        ).stdout
        return DECODER_MARKER in out

    # --------------------
    # Reads
    # --------------------
    def read(self, path: str) -> str:
        return self.run(f"cat {shlex.quote(path)}").stdout

    # --------------------
    # Writes
    # --------------------
    def make_dirs(self, path: str) -> None:
        """Create the parent directory of ``path`` (mkdir -p)"""
        directory = posixpath.dirname(path)
        if not directory or directory == "/":
            return
        self.run(f"mkdir -p {shlex.quote(directory)}")

    def write_base64(self, path: str, content: str) -> None:
        """Materialize content at path by decoding on the remote side"""
        encoded = encode_base64(content)
        self.run(f"echo '{encoded}' | base64 -d > {shlex.quote(path)}")

    def write_heredoc(self, path: str, content: str) -> None:
        """Materialize content at path with a quoted heredoc"""
        delimiter = make_heredoc_delimiter(content)
        self.run(f"cat > {shlex.quote(path)} << '{delimiter}'\n{content}{delimiter}\n")

    def rename(self, src: str, dst: str) -> None:
        self.run(f"mv -f {shlex.quote(src)} {shlex.quote(dst)}")

    def remove(self, path: str, cancellable: bool = True) -> None:
        self.run(f"rm -f {shlex.quote(path)}", cancellable=cancellable)

    # --------------------
    # Temp files
    # --------------------
    def allocate_temp_path(self, target: str) -> str:
        """
        Pick an unused temp path next to ``target``.

        Raises:
            ResourceError: Every candidate name was already taken
        """
        for _ in range(TEMP_NAME_ATTEMPTS):
            candidate = f"{target}{TEMP_SUFFIX}{time.time_ns()}.{secrets.token_hex(4)}"
            if not self.exists(candidate):
                return candidate
            logger.debug(f"Temp name collision: {candidate}")
        raise ResourceError(f"Could not allocate a temp file name next to {target}")
