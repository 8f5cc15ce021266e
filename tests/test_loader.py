import pytest

from paramsync.adapters.config.loader import ConfigLoader, _KEY_TYPES
from paramsync.core.exceptions import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in _KEY_TYPES:
        monkeypatch.delenv(f"PARAMSYNC_{key.upper()}", raising=False)


def test_toml_values_are_typed(tmp_path):
    path = tmp_path / "robot.toml"
    path.write_text(
        'host = "robot.local"\nuser = "robot"\nport = "2222"\nretries = 5\n'
        'config_path = "/etc/robot.ini"\nunrelated = true\n',
        encoding="utf-8",
    )
    cfg = ConfigLoader().load(toml_path=path, use_env=False)
    assert cfg == {
        "host": "robot.local",
        "user": "robot",
        "port": 2222,
        "retries": 5,
        "config_path": "/etc/robot.ini",
    }


def test_paramsync_section(tmp_path):
    path = tmp_path / "robot.toml"
    path.write_text('[paramsync]\nhost = "10.0.0.2"\ncommand_timeout = 3\n', encoding="utf-8")
    cfg = ConfigLoader().load(toml_path=path, use_env=False)
    assert cfg == {"host": "10.0.0.2", "command_timeout": 3.0}


def test_priority_cli_over_env_over_toml(tmp_path, monkeypatch):
    path = tmp_path / "robot.toml"
    path.write_text('host = "from-toml"\nuser = "toml-user"\nport = 22\n', encoding="utf-8")
    monkeypatch.setenv("PARAMSYNC_HOST", "from-env")
    monkeypatch.setenv("PARAMSYNC_PORT", "2200")

    cfg = ConfigLoader().load(
        toml_path=path,
        cli_overrides={"host": "from-cli", "user": None},
    )
    assert cfg["host"] == "from-cli"
    assert cfg["port"] == 2200
    assert cfg["user"] == "toml-user"


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        ConfigLoader().load(toml_path=tmp_path / "nope.toml")


def test_broken_toml(tmp_path):
    path = tmp_path / "robot.toml"
    path.write_text("host = \n", encoding="utf-8")
    with pytest.raises(ConfigError, match="Failed to parse"):
        ConfigLoader().load(toml_path=path)


def test_invalid_env_value(monkeypatch):
    monkeypatch.setenv("PARAMSYNC_RETRIES", "many")
    with pytest.raises(ConfigError, match="retries"):
        ConfigLoader().load()


def test_deep_merge():
    loader = ConfigLoader()
    merged = loader.merge_configs({"a": {"x": 1, "y": 2}}, {"a": {"y": 3}, "b": None})
    assert merged == {"a": {"x": 1, "y": 3}}
