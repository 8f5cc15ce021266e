"""
Parameter CLI commands
"""
import math
import signal
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

import typer
from rich.markup import escape
from rich.table import Table

from ...core.cancel import CancellationToken
from ...core.client import RemoteClientFactory
from ...core.constants import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_IDLE_TIMEOUT,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MONITOR_INTERVAL,
    DEFAULT_RETRY_DELAY,
    DEFAULT_SSH_PORT,
    DEFAULT_SSH_TIMEOUT,
)
from ...core.exceptions import ConfigError, ParamSyncError
from ...core.interfaces import ConnectionFactory
from ...core.logging import get_logger, get_stdout_console, get_stderr_console
from ...core.retry import RetryPolicy
from ...core.session import ConnectionParams, SessionManager, SessionState
from ...domain.params import ConfigSynchronizer, Parameter
from ...domain.params.models import format_value, parse_assignments, parse_cli_value
from ..config.loader import ConfigLoader
from .prompts import RichPromptProvider

logger = get_logger(__name__)
stdout_console = get_stdout_console()
stderr_console = get_stderr_console()
prompt_provider = RichPromptProvider()

# replaced in tests
connection_factory: ConnectionFactory = RemoteClientFactory()


def register_param_commands(app: typer.Typer) -> None:
    """Register parameter commands on the main app"""
    app.command(name="show")(show)
    app.command(name="get")(get)
    app.command(name="set")(set_value)
    app.command(name="set-many")(set_many)
    app.command(name="status")(status)
    app.command(name="watch")(watch)


# ============================================================
# Shared Options
# ============================================================

def _config_option():
    return typer.Option(None, "--config", "-c", help="TOML file with connection settings")


def _host_option():
    return typer.Option(None, "--host", "-H", help="Remote host address")


def _user_option():
    return typer.Option(None, "--user", "-u", help="SSH username")


def _port_option():
    return typer.Option(None, "--port", "-p", help=f"SSH port (default: {DEFAULT_SSH_PORT})")


def _password_option():
    return typer.Option(None, "--password", help="SSH password (prompted if omitted)")


def _path_option():
    return typer.Option(None, "--path", help=f"Remote config file (default: {DEFAULT_CONFIG_PATH})")


def _load_settings(
    config_file: Optional[Path],
    host: Optional[str],
    user: Optional[str],
    port: Optional[int],
    password: Optional[str],
    path: Optional[str],
) -> Dict[str, Any]:
    """Merge TOML, env and CLI settings, prompting for missing credentials"""
    cfg = ConfigLoader().load(
        toml_path=config_file,
        cli_overrides={
            "host": host,
            "user": user,
            "port": port,
            "password": password,
            "config_path": path,
        },
    )

    if not cfg.get("host"):
        cfg["host"] = prompt_provider.prompt("Enter remote host address")
    if not cfg.get("user"):
        cfg["user"] = prompt_provider.prompt("Enter SSH username", default="root")
    if not cfg.get("password"):
        cfg["password"] = prompt_provider.prompt("Enter SSH password", password=True)

    return cfg


def _connection_params(cfg: Dict[str, Any]) -> ConnectionParams:
    params = ConnectionParams(
        host=cfg["host"],
        user=cfg["user"],
        password=cfg["password"],
        port=int(cfg.get("port", DEFAULT_SSH_PORT)),
        timeout=float(cfg.get("timeout", DEFAULT_SSH_TIMEOUT)),
    )
    params.validate()
    return params


@contextmanager
def _cancel_on_sigint(cancel: CancellationToken) -> Iterator[None]:
    """Route Ctrl-C into the cancellation token while the block runs"""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handler(signum, frame):
        if cancel.cancelled:
            # second Ctrl-C: give up on graceful shutdown
            raise KeyboardInterrupt
        stderr_console.print("[yellow]Interrupted, stopping...[/yellow]")
        cancel.cancel("interrupted by user")

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


@contextmanager
def _open(
    cfg: Dict[str, Any],
    monitor_interval: Optional[float] = None,
    on_state_change=None,
) -> Iterator[Tuple[SessionManager, ConfigSynchronizer, CancellationToken]]:
    """Connect and build a synchronizer; the session is closed on exit"""
    cancel = CancellationToken()
    session = SessionManager(
        _connection_params(cfg),
        connection_factory=connection_factory,
        monitor_interval=(
            monitor_interval
            if monitor_interval is not None
            else float(cfg.get("monitor_interval", DEFAULT_MONITOR_INTERVAL))
        ),
        on_state_change=on_state_change,
    )
    retry = RetryPolicy(
        max_attempts=int(cfg.get("retries", DEFAULT_MAX_RETRIES)),
        delay=float(cfg.get("retry_delay", DEFAULT_RETRY_DELAY)),
        idle_timeout=float(cfg.get("command_timeout", DEFAULT_IDLE_TIMEOUT)),
    )
    synchronizer = ConfigSynchronizer(
        session,
        config_path=cfg.get("config_path", DEFAULT_CONFIG_PATH),
        retry=retry,
        cancel=cancel,
    )

    with _cancel_on_sigint(cancel):
        try:
            session.connect()
            stdout_console.print(f"[green]✓[/green] Connected to [cyan]{session.params}[/cyan]")
            yield session, synchronizer, cancel
        finally:
            session.close()


def _load_or_exit(synchronizer: ConfigSynchronizer) -> None:
    if not synchronizer.load_config():
        _exit_with_failure(synchronizer)


def _exit_with_failure(synchronizer: ConfigSynchronizer) -> None:
    stderr_console.print(f"[red]Error:[/red] {escape(str(synchronizer.last_error))}")
    raise typer.Exit(1)


def _display(value: float) -> str:
    return "unset" if math.isnan(value) else format_value(value)


@contextmanager
def _handle_errors(action: str) -> Iterator[None]:
    """Turn failures into a red message and exit status 1"""
    try:
        yield
    except typer.Exit:
        raise
    except ConfigError as e:
        stderr_console.print(f"[red]Config Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)
    except ParamSyncError as e:
        stderr_console.print(f"[red]Error:[/red] {action}: {escape(str(e))}")
        raise typer.Exit(1)
    except Exception as e:
        logger.exception(f"Failed to {action}")
        stderr_console.print(f"[red]Error:[/red] Failed to {action}: {escape(str(e))}")
        raise typer.Exit(1)


# ============================================================
# Commands
# ============================================================

def show(
    config_file: Optional[Path] = _config_option(),
    host: Optional[str] = _host_option(),
    user: Optional[str] = _user_option(),
    port: Optional[int] = _port_option(),
    password: Optional[str] = _password_option(),
    path: Optional[str] = _path_option(),
):
    """
    Load the remote config and print every parameter

    Examples:
        paramsync show --host 192.168.1.10 --user robot
        paramsync show -c robot.toml
    """
    with _handle_errors("show parameters"):
        cfg = _load_settings(config_file, host, user, port, password, path)
        with _open(cfg) as (_, synchronizer, _cancel):
            _load_or_exit(synchronizer)

            table = Table(title=f"Parameters in {synchronizer.config_path}")
            table.add_column("Parameter", style="cyan")
            table.add_column("Value", justify="right")
            table.add_column("Kind")
            table.add_column("In file")

            values = synchronizer.snapshot()
            for param in Parameter:
                table.add_row(
                    param.value,
                    _display(values[param.value]),
                    "optional" if param.optional else "required",
                    "[green]yes[/green]" if synchronizer.is_parameter_present(param) else "[dim]no[/dim]",
                )
            stdout_console.print(table)


def get(
    name: str = typer.Argument(..., help="Parameter name"),
    config_file: Optional[Path] = _config_option(),
    host: Optional[str] = _host_option(),
    user: Optional[str] = _user_option(),
    port: Optional[int] = _port_option(),
    password: Optional[str] = _password_option(),
    path: Optional[str] = _path_option(),
):
    """Print one parameter value"""
    with _handle_errors("get parameter"):
        param = Parameter.from_name(name)
        cfg = _load_settings(config_file, host, user, port, password, path)
        with _open(cfg) as (_, synchronizer, _cancel):
            _load_or_exit(synchronizer)
            stdout_console.print(f"{param.value}={_display(synchronizer.get_parameter(param))}")


def set_value(
    name: str = typer.Argument(..., help="Parameter name"),
    value: str = typer.Argument(..., help="New value; 'nan' removes an optional parameter"),
    config_file: Optional[Path] = _config_option(),
    host: Optional[str] = _host_option(),
    user: Optional[str] = _user_option(),
    port: Optional[int] = _port_option(),
    password: Optional[str] = _password_option(),
    path: Optional[str] = _path_option(),
):
    """
    Write one parameter

    Examples:
        paramsync set x_vel_offset 0.25 --host robot.local --user robot
        paramsync set x_vel_limit_walk nan -c robot.toml  # remove the line
    """
    with _handle_errors("set parameter"):
        param = Parameter.from_name(name)
        number = parse_cli_value(value)
        cfg = _load_settings(config_file, host, user, port, password, path)
        with _open(cfg) as (_, synchronizer, _cancel):
            _load_or_exit(synchronizer)
            if not synchronizer.write_parameter(param, number):
                _exit_with_failure(synchronizer)
            if math.isnan(number):
                prompt_provider.success(f"Removed {param.value}")
            else:
                prompt_provider.success(f"{param.value}={format_value(number)}")


def set_many(
    assignments: List[str] = typer.Argument(..., help="NAME=VALUE pairs"),
    config_file: Optional[Path] = _config_option(),
    host: Optional[str] = _host_option(),
    user: Optional[str] = _user_option(),
    port: Optional[int] = _port_option(),
    password: Optional[str] = _password_option(),
    path: Optional[str] = _path_option(),
):
    """
    Write several parameters in one atomic update

    Example:
        paramsync set-many x_vel_offset=0.1 y_vel_offset=-0.05 -c robot.toml
    """
    with _handle_errors("set parameters"):
        pairs = parse_assignments(assignments)
        cfg = _load_settings(config_file, host, user, port, password, path)
        with _open(cfg) as (_, synchronizer, _cancel):
            _load_or_exit(synchronizer)
            if not synchronizer.write_multiple_parameters(pairs):
                _exit_with_failure(synchronizer)
            prompt_provider.success(f"Updated {len(pairs)} parameter(s)")


def status(
    config_file: Optional[Path] = _config_option(),
    host: Optional[str] = _host_option(),
    user: Optional[str] = _user_option(),
    port: Optional[int] = _port_option(),
    password: Optional[str] = _password_option(),
    path: Optional[str] = _path_option(),
):
    """Connect and report session liveness and config file state"""
    with _handle_errors("check status"):
        cfg = _load_settings(config_file, host, user, port, password, path)
        with _open(cfg) as (session, synchronizer, _cancel):
            alive = not session.is_disconnected()
            loaded = synchronizer.load_config() if alive else False
            info = synchronizer.describe()

            table = Table(show_header=False)
            table.add_column("Key", style="cyan")
            table.add_column("Value")
            table.add_row("Session", str(session.params))
            table.add_row("State", session.state.value)
            table.add_row("Alive", "[green]yes[/green]" if alive else "[red]no[/red]")
            table.add_row("Config file", info["config_path"])
            table.add_row("Loaded", "yes" if loaded else "no")
            table.add_row("Parsed", f"{info['parsed']}/{info['total']}")
            if info["missing"]:
                table.add_row("Absent", ", ".join(info["missing"]))
            if info["last_error"]:
                table.add_row("Last error", f"[red]{info['last_error']}[/red]")
            stdout_console.print(table)

            if not alive:
                raise typer.Exit(1)


def watch(
    interval: float = typer.Option(5.0, "--interval", "-i", help="Seconds between liveness checks"),
    reconnect: bool = typer.Option(False, "--reconnect", help="Reconnect when the session is lost"),
    config_file: Optional[Path] = _config_option(),
    host: Optional[str] = _host_option(),
    user: Optional[str] = _user_option(),
    port: Optional[int] = _port_option(),
    password: Optional[str] = _password_option(),
    path: Optional[str] = _path_option(),
):
    """
    Keep the session open and print state changes until Ctrl-C
    """
    def on_state_change(state: SessionState) -> None:
        stdout_console.print(f"[cyan]ℹ[/cyan] Session state: [bold]{state.value}[/bold]")

    with _handle_errors("watch session"):
        cfg = _load_settings(config_file, host, user, port, password, path)
        with _open(cfg, monitor_interval=interval, on_state_change=on_state_change) as (
            session, _, cancel,
        ):
            stdout_console.print("[dim]Watching session, press Ctrl-C to stop[/dim]")
            while not cancel.wait(interval):
                if not session.is_disconnected():
                    continue
                if not reconnect:
                    prompt_provider.warning("Session lost")
                    raise typer.Exit(1)
                try:
                    session.reconnect()
                except ParamSyncError as e:
                    # reconnect already left the session invalidated
                    prompt_provider.warning(f"Reconnect failed: {escape(str(e))}")
            stdout_console.print("[dim]Stopped[/dim]")
