"""
Constants and configuration defaults for turnstream.
"""
import os
from pathlib import Path
from typing import Final

APP_NAME: Final[str] = "turnstream"
APP_VERSION: Final[str] = "1.0.0"
APP_DESCRIPTION: Final[str] = "Streaming timeline engine for assistant chat turns"

CONFIG_DIR: Final[Path] = Path(
    os.environ.get("TURNSTREAM_CONFIG_DIR", str(Path.home() / ".turnstream"))
)
CONFIG_FILE: Final[Path] = CONFIG_DIR / "config.json"
HISTORY_DB: Final[Path] = CONFIG_DIR / "history.db"

DEFAULT_AGENT_URL: Final[str] = "http://localhost:8000"
DEFAULT_CHAT_PATH: Final[str] = "/api/chat"
DEFAULT_PERMISSION_PATH: Final[str] = "/api/permission/{permission_id}"
DEFAULT_AGENT_ID: Final[str] = "default"
DEFAULT_TIMEOUT: Final[float] = 120.0

# Wire format of the agent backend stream
ENVELOPE_PREFIX: Final[str] = "data: "
DONE_SENTINEL: Final[str] = "[DONE]"
DEFAULT_ENCODING: Final[str] = "utf-8"

DEFAULT_RELOAD_DELAY: Final[float] = 1.0
DEFAULT_FAILURE_MESSAGE: Final[str] = "An error occurred. Please try again."

UNKNOWN_TOOL_NAME: Final[str] = "unknown_tool"

# Permission action retry policy
PERMISSION_RETRY_ATTEMPTS: Final[int] = 3
PERMISSION_RETRY_DELAY: Final[float] = 0.5
PERMISSION_RETRY_BACKOFF: Final[float] = 2.0
RETRYABLE_STATUS_CODES: Final[frozenset] = frozenset({408, 429, 502, 503, 504})

DEFAULT_MAX_RESULT_CHARS: Final[int] = 600
