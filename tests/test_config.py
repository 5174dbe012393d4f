"""
Tests for configuration loading.
"""

import json

import allure
import pytest

from turnstream.config import ConfigManager, StreamConfig


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (ConfigManager.ENV_AGENT_URL, ConfigManager.ENV_AGENT_KEY,
                 ConfigManager.ENV_RELOAD_DELAY):
        monkeypatch.delenv(name, raising=False)


@allure.feature("Configuration")
def test_defaults_without_file(tmp_path):
    manager = ConfigManager(tmp_path / "missing.json")
    assert manager.stream == StreamConfig()
    assert manager.agent.api_key is None
    assert manager.history.enabled


def test_file_values_loaded(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "agent": {"base_url": "http://agent.example", "default_agent": "coder"},
        "stream": {"reload_delay": 0.25},
        "ui": {"show_thinking": False},
    }))

    manager = ConfigManager(path)

    assert manager.agent.base_url == "http://agent.example"
    assert manager.agent.default_agent == "coder"
    assert manager.stream.reload_delay == 0.25
    assert manager.stream.done_sentinel == "[DONE]"
    assert manager.ui.show_thinking is False


@pytest.mark.parametrize("content", ["{not json", '{"agent": {"no_such_field": 1}}'])
def test_invalid_file_falls_back_to_defaults(tmp_path, content):
    path = tmp_path / "config.json"
    path.write_text(content)
    manager = ConfigManager(path)
    assert manager.agent.base_url == "http://localhost:8000"


def test_environment_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"agent": {"base_url": "http://file"}}))
    monkeypatch.setenv(ConfigManager.ENV_AGENT_URL, "http://env")
    monkeypatch.setenv(ConfigManager.ENV_AGENT_KEY, "secret")
    monkeypatch.setenv(ConfigManager.ENV_RELOAD_DELAY, "0")

    manager = ConfigManager(path)

    assert manager.agent.base_url == "http://env"
    assert manager.agent.api_key == "secret"
    assert manager.stream.reload_delay == 0.0


def test_invalid_reload_delay_ignored(tmp_path, monkeypatch):
    monkeypatch.setenv(ConfigManager.ENV_RELOAD_DELAY, "soon")
    manager = ConfigManager(tmp_path / "missing.json")
    assert manager.stream.reload_delay == StreamConfig().reload_delay


def test_save_keeps_api_key_out_of_file(tmp_path):
    path = tmp_path / "nested" / "config.json"
    manager = ConfigManager(path)
    manager.update_agent(persist=True, api_key="secret", base_url="http://saved")

    data = json.loads(path.read_text())
    assert data["agent"]["base_url"] == "http://saved"
    assert "api_key" not in data["agent"]

    reloaded = ConfigManager(path)
    assert reloaded.agent.base_url == "http://saved"
    assert reloaded.agent.api_key is None
