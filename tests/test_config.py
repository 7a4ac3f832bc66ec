import pytest
from pydantic import ValidationError

from logic_mcp.config import DEFAULT_TIMEOUT, Settings
from logic_mcp.errors import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "LOGIC_MCP_SWIPL", "LOGIC_MCP_TIMEOUT", "LOGIC_MCP_HOST", "LOGIC_MCP_PORT",
        "LOGIC_MCP_STATEFUL", "LOGIC_MCP_LOG_LEVEL", "LOGIC_MCP_SESSION_IDLE_TIMEOUT",
        "LOGIC_MCP_MAX_SESSIONS",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = Settings.from_env()
    assert settings.swipl_path is None
    assert settings.timeout == DEFAULT_TIMEOUT
    assert settings.port == 8080
    assert not settings.stateful


def test_from_env(monkeypatch):
    monkeypatch.setenv("LOGIC_MCP_SWIPL", "/opt/swipl/bin/swipl")
    monkeypatch.setenv("LOGIC_MCP_TIMEOUT", "2.5")
    monkeypatch.setenv("LOGIC_MCP_PORT", "9000")
    monkeypatch.setenv("LOGIC_MCP_LOG_LEVEL", "debug")

    settings = Settings.from_env()
    assert settings.swipl_path == "/opt/swipl/bin/swipl"
    assert settings.timeout == 2.5
    assert settings.port == 9000
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize("name, value", [
    ("LOGIC_MCP_TIMEOUT", "fast"),
    ("LOGIC_MCP_TIMEOUT", "0"),
    ("LOGIC_MCP_PORT", "80.5"),
    ("LOGIC_MCP_PORT", "-1"),
])
def test_invalid_numbers(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ConfigError, match=name):
        Settings.from_env()


def test_overrides_skip_none():
    settings = Settings(timeout=3.0).with_overrides(timeout=None, port=1234)
    assert settings.timeout == 3.0
    assert settings.port == 1234


def test_empty_variable_keeps_default(monkeypatch):
    monkeypatch.setenv("LOGIC_MCP_SWIPL", "")
    monkeypatch.setenv("LOGIC_MCP_TIMEOUT", "")
    settings = Settings.from_env()
    assert settings.swipl_path is None
    assert settings.timeout == DEFAULT_TIMEOUT


def test_unknown_log_level(monkeypatch):
    monkeypatch.setenv("LOGIC_MCP_LOG_LEVEL", "verbose")
    with pytest.raises(ConfigError, match="LOGIC_MCP_LOG_LEVEL"):
        Settings.from_env()


def test_session_limits_from_env(monkeypatch):
    monkeypatch.setenv("LOGIC_MCP_STATEFUL", "true")
    monkeypatch.setenv("LOGIC_MCP_SESSION_IDLE_TIMEOUT", "60")
    monkeypatch.setenv("LOGIC_MCP_MAX_SESSIONS", "4")

    settings = Settings.from_env()
    assert settings.stateful
    assert settings.session_idle_timeout == 60.0
    assert settings.max_sessions == 4


def test_overrides_are_validated():
    with pytest.raises(ConfigError, match="LOGIC_MCP_LOG_LEVEL"):
        Settings().with_overrides(log_level="LOUD")
    with pytest.raises(ConfigError, match="LOGIC_MCP_PORT"):
        Settings().with_overrides(port=70000)


def test_settings_are_frozen():
    with pytest.raises(ValidationError):
        Settings().timeout = 1.0
