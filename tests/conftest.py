"""
Shared fakes: an in-memory remote shell behind paramiko-shaped channel and
client stubs, so the session manager, channel, retry policy and
synchronizer run end to end without a network.
"""
from __future__ import annotations

import base64
import posixpath
import re
import shlex
import socket

import pytest

from paramsync.core.channel import CommandChannel
from paramsync.core.exceptions import SessionError
from paramsync.core.interfaces import ConnectionFactory
from paramsync.core.retry import RetryPolicy
from paramsync.core.session import ConnectionParams, SessionManager
from paramsync.domain.params import ConfigSynchronizer

CONFIG_PATH = "/opt/robot/config.ini"

_HEREDOC_HEADER = re.compile(r"^cat > (\S+) << '(\w+)'$")
_BASE64_WRITE = re.compile(r"^echo '([A-Za-z0-9+/=]*)' \| base64 -d > (\S+)$")


class FakeShell:
    """
    Interprets the remote command vocabulary against a dict of files.

    Knobs:
    - has_base64: whether ``command -v base64`` succeeds
    - fail_times: verb -> number of upcoming invocations that exit 1
    - lose_writes: temp writes report success but create nothing
    - hang: every command produces no output and never reaches EOF
    """

    def __init__(self):
        self.files: dict[str, str] = {}
        self.dirs: set[str] = {"/", "/tmp"}
        self.commands: list[str] = []
        self.has_base64 = True
        self.fail_times: dict[str, int] = {}
        self.lose_writes = False
        self.hang = False
        self.overrides: dict[str, tuple[str, str, int]] = {}

    def count(self, prefix: str) -> int:
        return sum(1 for c in self.commands if c.startswith(prefix))

    def temp_files(self) -> list[str]:
        return [p for p in self.files if ".tmp." in p]

    def execute(self, command: str) -> tuple[str, str, int]:
        self.commands.append(command)

        for prefix, result in self.overrides.items():
            if command.startswith(prefix):
                return result

        verb = command.split(None, 1)[0]
        if self.fail_times.get(verb, 0) > 0:
            self.fail_times[verb] -= 1
            return "", f"{verb}: injected failure", 1

        if command.startswith("cat > "):
            header, _, body = command.partition("\n")
            m = _HEREDOC_HEADER.match(header)
            path, delimiter = shlex.split(m.group(1))[0], m.group(2)
            assert body.endswith(delimiter + "\n")
            return self._write(path, body[: -len(delimiter) - 1])

        m = _BASE64_WRITE.match(command)
        if m:
            if not self.has_base64:
                return "", "base64: command not found", 127
            content = base64.b64decode(m.group(1)).decode("utf-8")
            return self._write(shlex.split(m.group(2))[0], content)

        if command.startswith("command -v base64"):
            return ("has_base64\n" if self.has_base64 else "none\n"), "", 0

        if command.startswith("test -f "):
            path = shlex.split(command)[2]
            return ("existed\n" if path in self.files else "not_exist\n"), "", 0

        argv = shlex.split(command)
        if argv[0] == "cat":
            path = argv[1]
            if path not in self.files:
                return "", f"cat: {path}: No such file or directory", 1
            return self.files[path], "", 0
        if argv[:2] == ["mkdir", "-p"]:
            path = argv[2]
            while path not in ("", "/"):
                self.dirs.add(path)
                path = posixpath.dirname(path)
            return "", "", 0
        if argv[:2] == ["mv", "-f"]:
            src, dst = argv[2], argv[3]
            if src not in self.files:
                return "", f"mv: cannot stat '{src}'", 1
            self.files[dst] = self.files.pop(src)
            return "", "", 0
        if argv[:2] == ["rm", "-f"]:
            self.files.pop(argv[2], None)
            return "", "", 0

        return "", f"sh: {argv[0]}: command not found", 127

    def _write(self, path: str, content: str) -> tuple[str, str, int]:
        if posixpath.dirname(path) not in self.dirs:
            return "", f"sh: {path}: No such file or directory", 1
        if not self.lose_writes:
            self.files[path] = content
        return "", "", 0


class FakeChannel:
    """paramiko.Channel stand-in running commands through a FakeShell"""

    def __init__(self, shell: FakeShell | None = None, stdout: bytes = b"", stderr: bytes = b"",
                 exit_code: int = 0, hang: bool = False):
        self.shell = shell
        self._stdout = stdout
        self._stderr = stderr
        self._exit_code = exit_code
        self.hang = hang
        self.recv_error: Exception | None = None
        self.command: str | None = None
        self.closed = False
        self.write_shutdown = False

    def exec_command(self, command: str) -> None:
        self.command = command
        if self.shell is not None:
            if self.shell.hang:
                self.hang = True
                return
            out, err, code = self.shell.execute(command)
            self._stdout = out.encode("utf-8")
            self._stderr = err.encode("utf-8")
            self._exit_code = code

    def settimeout(self, timeout) -> None:
        pass

    def recv(self, size: int) -> bytes:
        if self.recv_error is not None:
            raise self.recv_error
        if self._stdout:
            data, self._stdout = self._stdout[:size], self._stdout[size:]
            return data
        if self.hang:
            raise socket.timeout()
        return b""

    def recv_stderr_ready(self) -> bool:
        return bool(self._stderr)

    def recv_stderr(self, size: int) -> bytes:
        data, self._stderr = self._stderr[:size], self._stderr[size:]
        return data

    def exit_status_ready(self) -> bool:
        return not self.hang

    def recv_exit_status(self) -> int:
        return self._exit_code

    def shutdown_write(self) -> None:
        self.write_shutdown = True

    def close(self) -> None:
        self.closed = True


class FakeClient:
    """RemoteClient stand-in"""

    def __init__(self, shell: FakeShell):
        self.shell = shell
        self.active = True
        self.peer_gone = False
        self.refuse_channels = False
        self.closed = False
        self.channels: list[FakeChannel] = []

    def is_active(self) -> bool:
        return self.active and not self.closed

    def peer_closed(self) -> bool:
        return self.peer_gone

    def open_channel(self, timeout=None) -> FakeChannel:
        if self.closed or self.refuse_channels:
            raise SessionError("Failed to open channel: refused")
        chan = FakeChannel(self.shell)
        self.channels.append(chan)
        return chan

    def close(self) -> None:
        self.closed = True


class FakeFactory(ConnectionFactory):
    def __init__(self, shell: FakeShell):
        self.shell = shell
        self.created: list[FakeClient] = []
        self.fail_with: Exception | None = None

    def create(self, params) -> FakeClient:
        if self.fail_with is not None:
            raise self.fail_with
        client = FakeClient(self.shell)
        self.created.append(client)
        return client

    @property
    def last(self) -> FakeClient:
        return self.created[-1]


def fast_channel() -> CommandChannel:
    return CommandChannel(poll_interval=0.001, exit_status_grace=0.05)


def make_params() -> ConnectionParams:
    return ConnectionParams(host="robot.local", user="robot", password="secret")


@pytest.fixture
def shell() -> FakeShell:
    return FakeShell()


@pytest.fixture
def factory(shell) -> FakeFactory:
    return FakeFactory(shell)


@pytest.fixture
def session(factory):
    manager = SessionManager(
        make_params(),
        connection_factory=factory,
        monitor_interval=None,
        reconnect_delay=0,
    )
    manager.connect()
    yield manager
    manager.close()


@pytest.fixture
def retry() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, delay=0, idle_timeout=0.2, channel=fast_channel())


@pytest.fixture
def synchronizer(session, retry) -> ConfigSynchronizer:
    return ConfigSynchronizer(session, config_path=CONFIG_PATH, retry=retry)
