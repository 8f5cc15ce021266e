import math

import pytest

from paramsync.core.exceptions import ConfigError, ErrorKind
from paramsync.domain.params.models import (
    OPTIONAL_PARAMETERS,
    REQUIRED_PARAMETERS,
    Parameter,
    ParameterStore,
    SyncFailure,
    default_config_content,
    format_value,
    parse_assignments,
    validate_value,
)


def test_parameter_sets():
    assert len(REQUIRED_PARAMETERS) == 8
    assert set(OPTIONAL_PARAMETERS) == {Parameter.X_VEL_LIMIT_WALK, Parameter.X_VEL_LIMIT_RUN}
    assert not set(REQUIRED_PARAMETERS) & set(OPTIONAL_PARAMETERS)
    assert Parameter.X_VEL_LIMIT_RUN.optional
    assert not Parameter.X_VEL_OFFSET.optional


def test_from_name():
    assert Parameter.from_name(" yaw_vel_offset ") is Parameter.YAW_VEL_OFFSET
    assert Parameter.from_name(Parameter.X_VEL_OFFSET) is Parameter.X_VEL_OFFSET
    with pytest.raises(ConfigError, match="Unknown parameter"):
        Parameter.from_name("z_vel_offset")


def test_default_content_has_required_only():
    content = default_config_content()
    lines = content.splitlines()
    assert lines[0] == "xsense_data_roll=0.0"
    assert len(lines) == 8
    assert "x_vel_limit" not in content
    assert content.endswith("\n")


def test_format_value():
    assert format_value(0) == "0.0"
    assert format_value(0.25) == "0.25"
    assert format_value(-1e-7) == "-1e-07"


def test_validate_value():
    assert validate_value(Parameter.X_VEL_OFFSET, "0.5") == 0.5
    assert math.isnan(validate_value(Parameter.X_VEL_LIMIT_WALK, math.nan))
    with pytest.raises(ConfigError, match="required"):
        validate_value(Parameter.X_VEL_OFFSET, math.nan)
    with pytest.raises(ConfigError, match="finite"):
        validate_value(Parameter.X_VEL_LIMIT_RUN, math.inf)
    with pytest.raises(ConfigError):
        validate_value(Parameter.X_VEL_OFFSET, "fast")


def test_store_defaults_and_reset():
    store = ParameterStore()
    assert store.get("x_vel_offset") == 0.0
    assert math.isnan(store.get(Parameter.X_VEL_LIMIT_WALK))

    store.update({Parameter.X_VEL_OFFSET: 1.0, Parameter.X_VEL_LIMIT_WALK: 0.3})
    store.set("y_vel_offset", 2)
    assert store.snapshot()[Parameter.Y_VEL_OFFSET] == 2.0

    store.reset()
    assert store.get(Parameter.X_VEL_OFFSET) == 0.0
    assert math.isnan(store.get(Parameter.X_VEL_LIMIT_WALK))


def test_store_rejects_unknown_name():
    with pytest.raises(ConfigError):
        ParameterStore().get("nope")


def test_parse_assignments():
    pairs = parse_assignments(["x_vel_offset=0.1", "x_vel_limit_run=nan"])
    assert pairs[0] == (Parameter.X_VEL_OFFSET, 0.1)
    assert pairs[1][0] is Parameter.X_VEL_LIMIT_RUN
    assert math.isnan(pairs[1][1])

    with pytest.raises(ConfigError, match="NAME=VALUE"):
        parse_assignments(["x_vel_offset"])
    with pytest.raises(ConfigError, match="Not a number"):
        parse_assignments(["x_vel_offset=abc"])


def test_sync_failure_str():
    failure = SyncFailure("write_parameter", ErrorKind.COMMAND, "boom")
    assert str(failure) == "write_parameter: [command] boom"
