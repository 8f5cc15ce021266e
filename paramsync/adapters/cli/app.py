"""
Main CLI application
"""
import typer
from pathlib import Path
from typing import Optional

from rich.traceback import install as install_traceback

from ...core.logging import setup_logging, get_logger, get_stderr_console
from .params import register_param_commands

logger = get_logger(__name__)

# Create main app
app = typer.Typer(
    name="paramsync",
    add_completion=False,
    help="Keep a remote robot parameter file in sync over SSH",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

register_param_commands(app)


@app.callback()
def main(
    log_level: str = typer.Option(
        "WARNING",
        "--log-level",
        "-l",
        help="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    ),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        help="Log file path",
    ),
):
    """
    paramsync - remote parameter file synchronizer

    Use subcommands to perform different operations:
    - show / get: read parameters
    - set / set-many: write parameters atomically
    - status / watch: inspect the SSH session
    """
    setup_logging(level=log_level, log_file=log_file)


def run():
    """CLI entry point"""
    install_traceback(console=get_stderr_console(), show_locals=False)
    app()


if __name__ == "__main__":
    run()
