"""
Configuration management for turnstream.
Handles loading, saving, and accessing configuration from JSON files and environment variables.
"""
import json
import logging
import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Optional

from .constants import (
    CONFIG_FILE,
    HISTORY_DB,
    DEFAULT_AGENT_ID,
    DEFAULT_AGENT_URL,
    DEFAULT_CHAT_PATH,
    DEFAULT_PERMISSION_PATH,
    DEFAULT_TIMEOUT,
    ENVELOPE_PREFIX,
    DONE_SENTINEL,
    DEFAULT_ENCODING,
    DEFAULT_RELOAD_DELAY,
    DEFAULT_FAILURE_MESSAGE,
    DEFAULT_MAX_RESULT_CHARS,
)


logger = logging.getLogger(__name__)


@dataclass
class AgentConfig:
    """Agent backend connection settings."""
    base_url: str = DEFAULT_AGENT_URL
    api_key: Optional[str] = None
    chat_path: str = DEFAULT_CHAT_PATH
    permission_path: str = DEFAULT_PERMISSION_PATH
    timeout: float = DEFAULT_TIMEOUT
    default_agent: str = DEFAULT_AGENT_ID


@dataclass
class StreamConfig:
    """Wire format and turn lifecycle settings."""
    envelope_prefix: str = ENVELOPE_PREFIX
    done_sentinel: str = DONE_SENTINEL
    encoding: str = DEFAULT_ENCODING
    reload_delay: float = DEFAULT_RELOAD_DELAY
    failure_message: str = DEFAULT_FAILURE_MESSAGE


@dataclass
class UIConfig:
    """Rendering configuration."""
    show_thinking: bool = True
    show_tool_results: bool = True
    max_result_chars: int = DEFAULT_MAX_RESULT_CHARS


@dataclass
class HistoryConfig:
    """Local message history configuration."""
    enabled: bool = True
    db_path: str = str(HISTORY_DB)


@dataclass
class AppConfig:
    """Main application configuration."""
    agent: AgentConfig = field(default_factory=AgentConfig)
    stream: StreamConfig = field(default_factory=StreamConfig)
    ui: UIConfig = field(default_factory=UIConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)


class ConfigManager:
    """
    Manages application configuration with support for JSON files and environment variables.

    Environment variables take precedence over config file values.
    """

    ENV_AGENT_URL = "AGENT_API_URL"
    ENV_AGENT_KEY = "AGENT_API_KEY"
    ENV_RELOAD_DELAY = "TURNSTREAM_RELOAD_DELAY"

    def __init__(self, config_file: Optional[Path] = None) -> None:
        self._config_file = Path(config_file) if config_file else CONFIG_FILE
        self._config: AppConfig = AppConfig()
        self._load_config()
        self._load_env_vars()

    def _load_config(self) -> None:
        """Load configuration from JSON file."""
        if not self._config_file.exists():
            return

        try:
            with open(self._config_file, 'r', encoding='utf-8') as f:
                data = json.load(f)

            if 'agent' in data:
                self._config.agent = AgentConfig(**data['agent'])
            if 'stream' in data:
                self._config.stream = StreamConfig(**data['stream'])
            if 'ui' in data:
                self._config.ui = UIConfig(**data['ui'])
            if 'history' in data:
                self._config.history = HistoryConfig(**data['history'])
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Failed to load config file {self._config_file}: {e}")
            self._config = AppConfig()

    def _load_env_vars(self) -> None:
        """Apply overrides from environment variables."""
        url = os.environ.get(self.ENV_AGENT_URL)
        if url:
            self._config.agent.base_url = url

        key = os.environ.get(self.ENV_AGENT_KEY)
        if key:
            self._config.agent.api_key = key

        delay = os.environ.get(self.ENV_RELOAD_DELAY)
        if delay:
            try:
                self._config.stream.reload_delay = float(delay)
            except ValueError:
                logger.warning(f"Ignoring invalid {self.ENV_RELOAD_DELAY}={delay!r}")

    def _save_config(self) -> None:
        """Save current configuration to JSON file."""
        agent = asdict(self._config.agent)
        agent.pop('api_key', None)  # Secrets stay in the environment
        data = {
            'agent': agent,
            'stream': asdict(self._config.stream),
            'ui': asdict(self._config.ui),
            'history': asdict(self._config.history),
        }

        self._config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self._config_file, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)

    @property
    def config(self) -> AppConfig:
        """Get the current configuration."""
        return self._config

    @property
    def agent(self) -> AgentConfig:
        """Get agent backend configuration."""
        return self._config.agent

    @property
    def stream(self) -> StreamConfig:
        """Get stream configuration."""
        return self._config.stream

    @property
    def ui(self) -> UIConfig:
        """Get UI configuration."""
        return self._config.ui

    @property
    def history(self) -> HistoryConfig:
        """Get history configuration."""
        return self._config.history

    def update_agent(self, persist: bool = False, **kwargs: Any) -> None:
        """Update agent configuration."""
        for key, value in kwargs.items():
            if hasattr(self._config.agent, key):
                setattr(self._config.agent, key, value)
        if persist:
            self._save_config()

    def save(self) -> None:
        """Explicitly save configuration."""
        self._save_config()

    def reload(self) -> None:
        """Reload configuration from file."""
        self._config = AppConfig()
        self._load_config()
        self._load_env_vars()


_config_manager: Optional[ConfigManager] = None


def get_config() -> ConfigManager:
    """Get the global configuration manager instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager
