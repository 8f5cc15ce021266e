"""
Parameter domain models
"""
import math
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Tuple, Union

from ...core.exceptions import ConfigError, ErrorKind


class Parameter(str, Enum):
    """Parameters stored in the remote config file"""
    XSENSE_DATA_ROLL = "xsense_data_roll"
    XSENSE_DATA_PITCH = "xsense_data_pitch"
    X_VEL_OFFSET = "x_vel_offset"
    Y_VEL_OFFSET = "y_vel_offset"
    YAW_VEL_OFFSET = "yaw_vel_offset"
    X_VEL_OFFSET_RUN = "x_vel_offset_run"
    Y_VEL_OFFSET_RUN = "y_vel_offset_run"
    YAW_VEL_OFFSET_RUN = "yaw_vel_offset_run"
    X_VEL_LIMIT_WALK = "x_vel_limit_walk"
    X_VEL_LIMIT_RUN = "x_vel_limit_run"

    @property
    def optional(self) -> bool:
        return self in OPTIONAL_PARAMETERS

    @classmethod
    def from_name(cls, name: Union[str, "Parameter"]) -> "Parameter":
        """
        Resolve a parameter from its name.

        Raises:
            ConfigError: Unknown parameter name
        """
        if isinstance(name, Parameter):
            return name
        try:
            return cls(name.strip())
        except ValueError:
            raise ConfigError(f"Unknown parameter: {name}") from None


# Auto-created with 0.0 and auto-completed when missing
REQUIRED_PARAMETERS: Tuple[Parameter, ...] = (
    Parameter.XSENSE_DATA_ROLL,
    Parameter.XSENSE_DATA_PITCH,
    Parameter.X_VEL_OFFSET,
    Parameter.Y_VEL_OFFSET,
    Parameter.YAW_VEL_OFFSET,
    Parameter.X_VEL_OFFSET_RUN,
    Parameter.Y_VEL_OFFSET_RUN,
    Parameter.YAW_VEL_OFFSET_RUN,
)

# NaN means absent; never defaulted, deleted on a NaN write
OPTIONAL_PARAMETERS: Tuple[Parameter, ...] = (
    Parameter.X_VEL_LIMIT_WALK,
    Parameter.X_VEL_LIMIT_RUN,
)

DEFAULT_VALUE = 0.0


def default_value(param: Parameter) -> float:
    return math.nan if param in OPTIONAL_PARAMETERS else DEFAULT_VALUE


def format_value(value: float) -> str:
    """Render a value the way it is written to the remote file"""
    return repr(float(value))


def default_config_content() -> str:
    """File content written when the remote config does not exist"""
    return "".join(f"{p.value}={format_value(DEFAULT_VALUE)}\n" for p in REQUIRED_PARAMETERS)


def validate_value(param: Parameter, value: float) -> float:
    """
    Check a value before it is written.

    NaN is only meaningful for optional parameters (delete the line);
    infinities are never accepted.

    Raises:
        ConfigError: Value not writable for this parameter
    """
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid value for {param.value}: {value!r}") from None
    if math.isnan(value):
        if not param.optional:
            raise ConfigError(f"{param.value} is required and cannot be NaN")
        return value
    if math.isinf(value):
        raise ConfigError(f"{param.value} must be finite, got {value}")
    return value


class ParameterStore:
    """
    In-memory snapshot of the parameter values.

    A plain key -> slot mapping behind a lock; the remote file remains the
    source of truth and this store is only a cache of the last load/write.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._values: Dict[Parameter, float] = {p: default_value(p) for p in Parameter}

    def get(self, param: Union[str, Parameter]) -> float:
        param = Parameter.from_name(param)
        with self._lock:
            return self._values[param]

    def set(self, param: Union[str, Parameter], value: float) -> None:
        param = Parameter.from_name(param)
        with self._lock:
            self._values[param] = float(value)

    def update(self, values: Dict[Parameter, float]) -> None:
        """Apply several values at once"""
        with self._lock:
            for param, value in values.items():
                self._values[Parameter.from_name(param)] = float(value)

    def snapshot(self) -> Dict[Parameter, float]:
        with self._lock:
            return dict(self._values)

    def reset(self) -> None:
        """Restore defaults: 0.0 for required, NaN for optional"""
        with self._lock:
            self._values = {p: default_value(p) for p in Parameter}


@dataclass
class SyncFailure:
    """Last error reported by a synchronizer operation"""
    operation: str
    kind: ErrorKind
    message: str

    def __str__(self) -> str:
        return f"{self.operation}: [{self.kind.value}] {self.message}"


def parse_assignments(items: Iterable[str]) -> List[Tuple[Parameter, float]]:
    """
    Parse ``name=value`` strings (CLI input) into typed pairs.

    ``nan`` is accepted and later interpreted as "delete" for optional
    parameters.

    Raises:
        ConfigError: Malformed item, unknown name or non-numeric value
    """
    pairs: List[Tuple[Parameter, float]] = []
    for item in items:
        if "=" not in item:
            raise ConfigError(f"Expected NAME=VALUE, got: {item}")
        name, raw = item.split("=", 1)
        param = Parameter.from_name(name)
        pairs.append((param, parse_cli_value(raw)))
    return pairs


def parse_cli_value(raw: str) -> float:
    try:
        return float(raw.strip())
    except ValueError:
        raise ConfigError(f"Not a number: {raw!r}") from None
