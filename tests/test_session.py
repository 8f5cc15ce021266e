import time

import pytest

from paramsync.core.exceptions import AuthenticationError, ConfigError, ConnectionError
from paramsync.core.session import ConnectionParams, SessionManager, SessionState
from paramsync.core.telemetry import get_telemetry

from conftest import make_params


def _manager(factory, **kwargs):
    kwargs.setdefault("monitor_interval", None)
    kwargs.setdefault("reconnect_delay", 0)
    return SessionManager(make_params(), connection_factory=factory, **kwargs)


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_connect_transitions_and_reuses_client(factory):
    states = []
    manager = _manager(factory, on_state_change=states.append)
    assert manager.state == SessionState.DISCONNECTED

    client = manager.connect()
    assert client is factory.last
    assert manager.is_valid
    assert states == [SessionState.CONNECTING, SessionState.AUTHENTICATED]

    assert manager.connect() is client
    assert len(factory.created) == 1
    manager.close()


def test_connect_with_monitor_reaches_monitoring(factory):
    manager = _manager(factory, monitor_interval=60)
    manager.connect()
    try:
        assert manager.state == SessionState.MONITORING
    finally:
        manager.close()


@pytest.mark.parametrize("error", [
    AuthenticationError("Authentication failed"),
    ConnectionError("Connection refused"),
])
def test_connect_failure_is_raised_without_retry(factory, error):
    factory.fail_with = error
    manager = _manager(factory)
    with pytest.raises(type(error)):
        manager.connect()
    assert manager.state == SessionState.DISCONNECTED
    assert not manager.is_valid


def test_unexpected_factory_error_becomes_connection_error(factory):
    factory.fail_with = OSError("no route to host")
    with pytest.raises(ConnectionError, match="no route"):
        _manager(factory).connect()


def test_healthy_session_is_usable(session, factory):
    assert session.is_disconnected() is False
    assert session.get_usable_session() is factory.last
    # the probe channel is opened and closed right away
    assert factory.last.channels and all(c.closed for c in factory.last.channels)


def test_peer_closed_socket_is_detected(session, factory):
    factory.last.peer_gone = True
    assert session.is_disconnected() is True
    assert session.get_usable_session() is None
    assert session.state == SessionState.DISCONNECTED

    # no silent reconnect
    assert len(factory.created) == 1

    session.reconnect()
    assert session.get_usable_session() is factory.last
    assert len(factory.created) == 2


def test_refused_probe_channel_is_detected(session, factory):
    factory.last.refuse_channels = True
    assert session.is_disconnected() is True
    assert not session.is_valid


def test_inactive_transport_is_detected(session, factory):
    factory.last.active = False
    assert session.get_usable_session() is None


def test_reconnect_failure_invalidates(session, factory):
    old = factory.last
    factory.fail_with = ConnectionError("host down")
    with pytest.raises(ConnectionError):
        session.reconnect()
    assert old.closed
    assert session.state == SessionState.INVALIDATED
    assert session.get_usable_session() is None

    factory.fail_with = None
    session.reconnect()
    assert session.state == SessionState.AUTHENTICATED
    assert session.is_disconnected() is False


def test_invalidate_is_idempotent(session, factory):
    client = factory.last
    session.invalidate("test")
    session.invalidate("again")
    assert client.closed
    assert session.state == SessionState.INVALIDATED
    assert session.is_disconnected() is True

    events = get_telemetry().get_events("session.invalidated")
    assert events and events[-1].metadata["reason"] == "test"


def test_invalidate_wakes_monitor_immediately(factory):
    manager = _manager(factory, monitor_interval=60)
    manager.connect()
    thread = manager._monitor_thread
    assert thread is not None and thread.is_alive()

    started = time.monotonic()
    manager.invalidate()
    assert time.monotonic() - started < 1.0
    assert not thread.is_alive()


def test_monitor_flags_loss_without_reconnecting(factory):
    manager = _manager(factory, monitor_interval=0.02)
    manager.connect()
    try:
        factory.last.peer_gone = True
        assert _wait_for(lambda: not manager.is_valid)
        assert manager.state == SessionState.DISCONNECTED
        assert len(factory.created) == 1
    finally:
        manager.close()


def test_monitor_survives_probe_errors(factory):
    manager = _manager(factory, monitor_interval=0.02)
    manager.connect()
    try:
        def broken(timeout=None):
            raise RuntimeError("corrupted session")

        factory.last.open_channel = broken
        assert _wait_for(lambda: not manager.is_valid)
        assert manager._monitor_thread.is_alive()
    finally:
        manager.close()


def test_reconnect_restarts_monitor(factory):
    manager = _manager(factory, monitor_interval=60)
    manager.connect()
    first = manager._monitor_thread
    manager.reconnect()
    try:
        assert not first.is_alive()
        assert manager._monitor_thread is not first
        assert manager._monitor_thread.is_alive()
        assert manager.state == SessionState.MONITORING
    finally:
        manager.close()


def test_context_manager_closes(factory):
    with _manager(factory) as manager:
        manager.connect()
        client = factory.last
    assert client.closed
    assert manager.state == SessionState.INVALIDATED


@pytest.mark.parametrize("kwargs,message", [
    ({"host": ""}, "Hostname cannot be empty"),
    ({"host": "a" * 256}, "255"),
    ({"host": "bad host"}, "invalid characters"),
    ({"port": 0}, "Invalid port"),
    ({"port": 70000}, "Invalid port"),
    ({"user": ""}, "Username cannot be empty"),
    ({"user": "u" * 33}, "32"),
    ({"user": "root;rm"}, "invalid characters"),
    ({"password": ""}, "Password cannot be empty"),
    ({"password": "p" * 257}, "256"),
])
def test_connection_params_validation(kwargs, message):
    values = {"host": "robot.local", "user": "robot", "password": "secret", "port": 22}
    values.update(kwargs)
    with pytest.raises(ConfigError, match=message):
        ConnectionParams(**values).validate()


def test_connection_params_str_and_dict():
    params = make_params()
    params.validate()
    assert str(params) == "robot@robot.local:22"
    assert "password" not in params.to_dict()
