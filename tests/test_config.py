"""
Tests for settings loading and validation
"""

import pytest
import yaml

from cronmetrics.config import (
    DEV_DATABASE_URL, ConfigError, Settings, env_bool, example_config, load_settings, validate_settings,
)


def test_defaults():
    settings = load_settings(environ={})
    assert settings.server.port == 8080
    assert settings.database.url == "sqlite:///./cronmetrics.db"
    assert settings.database.batch_size == 1000
    assert settings.metrics.path == "/metrics"
    assert settings.logging.format == "json"
    assert settings.security.admin_api_keys == []
    assert settings.dev is False


def test_yaml_file(tmp_path):
    config_file = tmp_path / "cronmetrics.yaml"
    config_file.write_text(yaml.safe_dump({
        "server": {"port": 9090},
        "database": {"url": "sqlite:////var/lib/cm.db", "batch_size": 250},
        "security": {"admin_api_keys": ["k1", "k2"]},
    }))
    settings = load_settings(str(config_file), environ={})
    assert settings.server.port == 9090
    assert settings.server.host == "0.0.0.0"
    assert settings.database.batch_size == 250
    assert settings.security.admin_api_keys == ["k1", "k2"]


def test_environment_overrides_file(tmp_path):
    config_file = tmp_path / "cronmetrics.yaml"
    config_file.write_text("server:\n  port: 9090\n")
    settings = load_settings(str(config_file), environ={
        "CRONMETRICS_SERVER_PORT": "7070",
        "CRONMETRICS_LOGGING_LEVEL": "debug",
        "CRONMETRICS_DATABASE_AUTO_MIGRATE": "true",
        "CRONMETRICS_SECURITY_ADMIN_API_KEYS": "one, two,,three",
        "UNRELATED": "x",
    })
    assert settings.server.port == 7070
    assert settings.logging.level == "debug"
    assert settings.database.auto_migrate is True
    assert settings.security.admin_api_keys == ["one", "two", "three"]


def test_dev_mode():
    settings = load_settings(dev=True, environ={})
    assert settings.dev is True
    assert settings.database.url == DEV_DATABASE_URL
    assert settings.logging.level == "debug"
    assert settings.logging.format == "text"


def test_empty_config_file(tmp_path):
    config_file = tmp_path / "empty.yaml"
    config_file.write_text("")
    assert load_settings(str(config_file), environ={}).server.port == 8080


@pytest.mark.parametrize("content", ["server: [unclosed", "- just\n- a list\n"])
def test_bad_config_file(tmp_path, content):
    config_file = tmp_path / "bad.yaml"
    config_file.write_text(content)
    with pytest.raises(ConfigError):
        load_settings(str(config_file), environ={})


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigError):
        load_settings(str(tmp_path / "missing.yaml"), environ={})


def test_wrong_type_in_environment():
    with pytest.raises(ConfigError):
        load_settings(environ={"CRONMETRICS_SERVER_PORT": "eighty"})


@pytest.mark.parametrize("data,message", [
    ({"server": {"port": 0}}, "port"),
    ({"server": {"port": 70000}}, "port"),
    ({"logging": {"level": "verbose"}}, "logging level"),
    ({"logging": {"format": "xml"}}, "logging format"),
    ({"security": {"require_https": True}}, "TLS"),
    ({"database": {"url": ""}}, "database url"),
    ({"database": {"batch_size": 0}}, "batch size"),
    ({"metrics": {"path": "metrics"}}, "must start with"),
    ({"metrics": {"path": "/m", "self_path": "/m"}}, "must differ"),
])
def test_validation(data, message):
    with pytest.raises(ConfigError, match=message):
        validate_settings(Settings.model_validate(data))


def test_example_config_is_valid(tmp_path):
    config_file = tmp_path / "example.yaml"
    config_file.write_text(example_config())
    settings = load_settings(str(config_file), environ={})
    assert settings.security.admin_api_keys == ["your-admin-api-key-here"]
    assert settings.database.batch_size == 1000


@pytest.mark.parametrize("value,expected", [
    ("true", True), ("1", True), ("YES", True), ("on", True),
    ("false", False), ("0", False), ("", False), (True, True), (False, False),
])
def test_env_bool(value, expected):
    assert env_bool(value) is expected


def test_env_bool_default():
    assert env_bool(None, default=True) is True
