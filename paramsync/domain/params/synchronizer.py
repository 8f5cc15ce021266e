"""
Remote config synchronization

Loads, repairs and atomically rewrites the remote ``key=value`` file.
Every remote mutation goes through ``_atomic_write``: content is
materialized in a temp file next to the target, verified, and only then
renamed over it.
"""
import math
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from ...core.cancel import CancellationToken
from ...core.constants import DEFAULT_CONFIG_PATH
from ...core.exceptions import (
    CancelledError,
    ConfigError,
    ErrorKind,
    ParamSyncError,
    SessionUnavailableError,
)
from ...core.logging import get_logger
from ...core.retry import RetryPolicy
from ...core.session import SessionManager
from ...core.telemetry import get_telemetry
from ...core.utils import ensure_single_trailing_newline
from .models import (
    DEFAULT_VALUE,
    OPTIONAL_PARAMETERS,
    REQUIRED_PARAMETERS,
    Parameter,
    ParameterStore,
    SyncFailure,
    default_config_content,
    validate_value,
)
from .parser import append_missing, apply_updates, parse_config, render_lines, split_lines
from .remote_fs import RemoteShell

logger = get_logger(__name__)
telemetry = get_telemetry()

ParamName = Union[str, Parameter]


class ConfigSynchronizer:
    """
    Keeps an in-memory parameter snapshot in sync with one remote file.

    Public operations never raise: they return ``True``/``False`` and keep
    the failure in ``last_error``. Callers must serialize access; nothing
    here runs two commands concurrently.
    """

    def __init__(
        self,
        session: SessionManager,
        config_path: str = DEFAULT_CONFIG_PATH,
        store: Optional[ParameterStore] = None,
        retry: Optional[RetryPolicy] = None,
        cancel: Optional[CancellationToken] = None,
        shell: Optional[RemoteShell] = None,
    ):
        self.session = session
        self.store = store if store is not None else ParameterStore()
        self.shell = shell or RemoteShell(session, retry=retry, cancel=cancel)
        self.last_error: Optional[SyncFailure] = None

        self._config_path = config_path
        self._parsed: Set[Parameter] = set()
        self._loaded = False

    # --------------------
    # State
    # --------------------
    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def config_path(self) -> str:
        return self._config_path

    @property
    def parsed_parameters(self) -> Set[Parameter]:
        return set(self._parsed)

    def set_config_path(self, path: str) -> None:
        """Point at another remote file; the snapshot must be reloaded"""
        if not path:
            raise ConfigError("Config path cannot be empty")
        self._config_path = path
        self._loaded = False
        self._parsed.clear()
        self.store.reset()
        logger.info(f"Config path set to {path}")

    # ============================================================
    # Load
    # ============================================================

    def load_config(self) -> bool:
        """
        Load the remote file into the snapshot.

        Creates the file with the required defaults when it is absent,
        rewrites it when duplicate keys were dropped, then appends any
        missing required parameters.

        Returns:
            True on success; on failure ``last_error`` describes why
        """
        self._loaded = False
        self.last_error = None
        path = self._config_path

        try:
            self._ensure_connected()

            if self.shell.exists(path):
                logger.info(f"Config file {path} exists, reading...")
            else:
                logger.info(f"Config file {path} not found, creating defaults")
                self._create_default()

            content = self.shell.read(path)
            self._apply_content(content)
            added = self._complete_missing()
        except Exception as e:
            return self._fail("load_config", e)

        self._loaded = True
        logger.info(
            f"Loaded {len(self._parsed)}/{len(Parameter)} parameters from {path}"
            + (f" ({added} completed)" if added else "")
        )
        telemetry.record_event(
            "config.loaded", {"path": path, "parsed": len(self._parsed), "completed": added}
        )
        return True

    def _create_default(self) -> None:
        path = self._config_path
        self.shell.make_dirs(path)
        self._atomic_write(default_config_content())
        if not self.shell.exists(path):
            raise ConfigError(f"Config file {path} still missing after creation")

    def _apply_content(self, content: str) -> None:
        result = parse_config(content)

        # values land in the snapshot only after the full scan
        self.store.reset()
        self.store.update(result.known_values)
        self._parsed = result.parsed_params

        if result.content and result.content != content:
            logger.info("Config content changed after dedup, rewriting")
            self._atomic_write(result.content)

    def _complete_missing(self) -> int:
        missing = [p for p in REQUIRED_PARAMETERS if p not in self._parsed]
        if not missing:
            return 0

        logger.info(f"Completing missing parameters: {', '.join(p.value for p in missing)}")
        lines = split_lines(self.shell.read(self._config_path))
        self._atomic_write(render_lines(append_missing(lines, missing, DEFAULT_VALUE)))

        self.store.update({p: DEFAULT_VALUE for p in missing})
        self._parsed.update(missing)
        return len(missing)

    # ============================================================
    # Write
    # ============================================================

    def write_parameter(self, name: ParamName, value: float) -> bool:
        """
        Write one parameter to the remote file.

        NaN for an optional parameter deletes its line.
        """
        return self._write("write_parameter", [(name, value)])

    def write_multiple_parameters(self, updates: Iterable[Tuple[ParamName, float]]) -> bool:
        """Write several parameters with a single remote commit"""
        return self._write("write_multiple_parameters", list(updates))

    def update_multiple_parameters(self, **values: float) -> bool:
        """Keyword form of ``write_multiple_parameters``"""
        return self._write("update_multiple_parameters", list(values.items()))

    def write_all_values(self) -> bool:
        """Persist the whole snapshot; unset optional parameters are removed"""
        return self._write("write_all_values", list(self.store.snapshot().items()))

    def _write(self, operation: str, updates: Sequence[Tuple[ParamName, float]]) -> bool:
        self.last_error = None
        try:
            pairs = [(p, validate_value(p, v)) for p, v in _resolve(updates)]
            if not pairs:
                logger.warning(f"{operation}: nothing to write")
                return True

            self._ensure_connected()
            content = self.shell.read(self._config_path)
            edit = apply_updates(split_lines(content), pairs)
            self._atomic_write(edit.content)
        except Exception as e:
            return self._fail(operation, e)

        # snapshot follows the remote file, so only after the commit
        self.store.update(edit.written)
        self.store.update({p: math.nan for p in edit.removed})
        self._parsed.difference_update(edit.removed)
        self._parsed.update(edit.written)

        logger.info(
            f"Wrote {', '.join(f'{p.value}={v}' for p, v in edit.written.items()) or 'nothing'}"
            + (f"; removed {', '.join(p.value for p in edit.removed)}" if edit.removed else "")
        )
        telemetry.record_event(
            "config.written",
            {
                "path": self._config_path,
                "written": [p.value for p in edit.written],
                "removed": [p.value for p in edit.removed],
            },
        )
        return True

    # ============================================================
    # Atomic write
    # ============================================================

    def _atomic_write(self, content: str) -> None:
        """
        Replace the target file through a verified temp file.

        Raises:
            ConfigError: Temp file missing after materialization
            ResourceError: No free temp name
            ParamSyncError: Any command failure; the temp file is removed first
        """
        content = ensure_single_trailing_newline(content)
        target = self._config_path
        tmp: Optional[str] = None

        try:
            tmp = self.shell.allocate_temp_path(target)

            if self.shell.has_decoder():
                self.shell.write_base64(tmp, content)
            else:
                logger.debug("base64 not available on remote, using heredoc")
                self.shell.write_heredoc(tmp, content)

            if not self.shell.exists(tmp):
                raise ConfigError(f"Temp file {tmp} was not created")

            self._commit(tmp, target, content)
        except BaseException:
            if tmp is not None:
                self._discard_temp(tmp)
            raise

        logger.debug(f"Committed {len(content)} bytes to {target}")

    def _commit(self, tmp: str, target: str, content: str) -> None:
        """
        Rename the temp file over the target.

        A retried ``mv`` fails once the first attempt already moved the file,
        so a failure is checked against the remote before it is reported.
        """
        try:
            self.shell.rename(tmp, target)
        except CancelledError:
            raise
        except ParamSyncError as e:
            if not self._rename_applied(tmp, target, content):
                raise
            logger.info(f"Rename reported failure but {target} holds the new content: {e}")

    def _rename_applied(self, tmp: str, target: str, content: str) -> bool:
        try:
            if self.shell.exists(tmp):
                return False
            return self.shell.read(target) == content
        except ParamSyncError as e:
            logger.debug(f"Could not verify rename of {tmp}: {e}")
            return False

    def _discard_temp(self, tmp: str) -> None:
        try:
            self.shell.remove(tmp, cancellable=False)
        except Exception as e:
            logger.warning(f"Could not remove temp file {tmp}: {e}")

    # ============================================================
    # Snapshot access
    # ============================================================

    def get_parameter(self, name: ParamName) -> float:
        """Cached value; NaN for unknown names and unset optional parameters"""
        try:
            return self.store.get(name)
        except ConfigError:
            logger.warning(f"Unknown parameter requested: {name}")
            return math.nan

    def set_parameter(self, name: ParamName, value: float) -> bool:
        return self.write_parameter(name, value)

    def is_parameter_present(self, name: ParamName) -> bool:
        """True if the parameter was seen in the remote file"""
        try:
            return Parameter.from_name(name) in self._parsed
        except ConfigError:
            return False

    def missing_parameters(self, include_optional: bool = False) -> List[Parameter]:
        params = list(REQUIRED_PARAMETERS)
        if include_optional:
            params.extend(OPTIONAL_PARAMETERS)
        return [p for p in params if p not in self._parsed]

    def snapshot(self) -> Dict[str, float]:
        return {p.value: v for p, v in self.store.snapshot().items()}

    def describe(self) -> Dict[str, Any]:
        """Summary used by ``status`` style output"""
        return {
            "config_path": self._config_path,
            "loaded": self._loaded,
            "parsed": len(self._parsed),
            "total": len(Parameter),
            "missing": [p.value for p in self.missing_parameters(include_optional=True)],
            "values": self.snapshot(),
            "last_error": str(self.last_error) if self.last_error else None,
        }

    # --------------------
    # Named accessors
    # --------------------
    def get_xsense_data_roll(self) -> float:
        return self.get_parameter(Parameter.XSENSE_DATA_ROLL)

    def set_xsense_data_roll(self, value: float) -> bool:
        return self.write_parameter(Parameter.XSENSE_DATA_ROLL, value)

    def get_xsense_data_pitch(self) -> float:
        return self.get_parameter(Parameter.XSENSE_DATA_PITCH)

    def set_xsense_data_pitch(self, value: float) -> bool:
        return self.write_parameter(Parameter.XSENSE_DATA_PITCH, value)

    def get_x_vel_offset(self) -> float:
        return self.get_parameter(Parameter.X_VEL_OFFSET)

    def set_x_vel_offset(self, value: float) -> bool:
        return self.write_parameter(Parameter.X_VEL_OFFSET, value)

    def get_y_vel_offset(self) -> float:
        return self.get_parameter(Parameter.Y_VEL_OFFSET)

    def set_y_vel_offset(self, value: float) -> bool:
        return self.write_parameter(Parameter.Y_VEL_OFFSET, value)

    def get_yaw_vel_offset(self) -> float:
        return self.get_parameter(Parameter.YAW_VEL_OFFSET)

    def set_yaw_vel_offset(self, value: float) -> bool:
        return self.write_parameter(Parameter.YAW_VEL_OFFSET, value)

    def get_x_vel_offset_run(self) -> float:
        return self.get_parameter(Parameter.X_VEL_OFFSET_RUN)

    def set_x_vel_offset_run(self, value: float) -> bool:
        return self.write_parameter(Parameter.X_VEL_OFFSET_RUN, value)

    def get_y_vel_offset_run(self) -> float:
        return self.get_parameter(Parameter.Y_VEL_OFFSET_RUN)

    def set_y_vel_offset_run(self, value: float) -> bool:
        return self.write_parameter(Parameter.Y_VEL_OFFSET_RUN, value)

    def get_yaw_vel_offset_run(self) -> float:
        return self.get_parameter(Parameter.YAW_VEL_OFFSET_RUN)

    def set_yaw_vel_offset_run(self, value: float) -> bool:
        return self.write_parameter(Parameter.YAW_VEL_OFFSET_RUN, value)

    def get_x_vel_limit_walk(self) -> float:
        return self.get_parameter(Parameter.X_VEL_LIMIT_WALK)

    def set_x_vel_limit_walk(self, value: float) -> bool:
        return self.write_parameter(Parameter.X_VEL_LIMIT_WALK, value)

    def get_x_vel_limit_run(self) -> float:
        return self.get_parameter(Parameter.X_VEL_LIMIT_RUN)

    def set_x_vel_limit_run(self, value: float) -> bool:
        return self.write_parameter(Parameter.X_VEL_LIMIT_RUN, value)

    # --------------------
    # Helpers
    # --------------------
    def _ensure_connected(self) -> None:
        if self.session.is_disconnected():
            raise SessionUnavailableError("SSH connection is down; reconnect first")

    def _fail(self, operation: str, error: Exception) -> bool:
        if isinstance(error, ParamSyncError):
            kind = error.kind
            logger.error(f"{operation} failed: {error}")
        else:
            kind = ErrorKind.CONFIG
            logger.exception(f"{operation} failed with unexpected error: {error}")

        self.last_error = SyncFailure(operation=operation, kind=kind, message=str(error))
        telemetry.record_event(
            "config.failure",
            {"operation": operation, "kind": kind.value, "message": str(error)},
        )
        return False


def _resolve(updates: Sequence[Tuple[ParamName, float]]) -> List[Tuple[Parameter, float]]:
    return [(Parameter.from_name(name), value) for name, value in updates]
