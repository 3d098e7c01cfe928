"""
kitchen_bridge configuration.

Loads credentials, model identifiers, endpoints and timer budgets from
environment variables (optionally seeded from a local ``.env_local`` file).
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from dotenv import load_dotenv


DEFAULT_LIVE_URL = (
    "wss://generativelanguage.googleapis.com/ws/"
    "google.ai.generativelanguage.v1beta.GenerativeService.BidiGenerateContent"
)
DEFAULT_REST_URL = "https://generativelanguage.googleapis.com/v1beta/models"

DEFAULT_LIVE_MODEL = "gemini-2.5-flash-native-audio-preview-12-2025"
DEFAULT_TEXT_MODEL = "gemini-2.5-flash"


def _clean_env_value(key: str) -> Optional[str]:
    """
    Read an environment variable, stripping comments and whitespace.

    Handles cases like:
    - "30  # seconds" -> "30"
    - "" -> None
    """
    value = os.environ.get(key)
    if not value:
        return None

    if "#" in value:
        value = value.split("#")[0]

    value = value.strip()
    return value or None


def _parse_int_env(key: str, default: int) -> int:
    value = _clean_env_value(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _parse_float_env(key: str, default: float) -> float:
    value = _clean_env_value(key)
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    # A non-positive timer budget would fire immediately
    return parsed if parsed > 0 else default


def load_env_files(root: Optional[Path] = None, names: Iterable[str] = (".env_local", ".env.local")) -> None:
    """
    Load local env files for development convenience.

    Existing environment variables are never overridden.
    """
    root = root or Path.cwd()
    for name in names:
        path = root / name
        if path.exists():
            load_dotenv(path, override=False)


@dataclass(frozen=True)
class BridgeConfig:
    """Protocol layer configuration."""

    # Gemini credential; None is reported at connect/send time, not here
    api_key: Optional[str]

    live_model: str = DEFAULT_LIVE_MODEL
    text_model: str = DEFAULT_TEXT_MODEL
    voice_name: str = "Aoede"

    live_url: str = DEFAULT_LIVE_URL
    rest_url: str = DEFAULT_REST_URL

    # Timer budgets (seconds)
    acceptance_timeout_s: float = 6.0
    request_timeout_s: float = 30.0
    heartbeat_timeout_s: float = 20.0

    # Stateless history cap and follow-up bound
    max_history_turns: int = 20
    max_tool_rounds: int = 5

    persona: str = "default"

    @classmethod
    def from_env(cls) -> "BridgeConfig":
        """Load configuration from environment variables."""
        return cls(
            api_key=_clean_env_value("GEMINI_API_KEY"),
            live_model=os.environ.get("GEMINI_LIVE_MODEL", DEFAULT_LIVE_MODEL),
            text_model=os.environ.get("GEMINI_TEXT_MODEL", DEFAULT_TEXT_MODEL),
            voice_name=os.environ.get("GEMINI_VOICE", "Aoede"),
            live_url=os.environ.get("GEMINI_LIVE_URL", DEFAULT_LIVE_URL),
            rest_url=os.environ.get("GEMINI_REST_URL", DEFAULT_REST_URL),
            acceptance_timeout_s=_parse_float_env("KB_ACCEPTANCE_TIMEOUT_S", default=6.0),
            request_timeout_s=_parse_float_env("KB_REQUEST_TIMEOUT_S", default=30.0),
            heartbeat_timeout_s=_parse_float_env("KB_HEARTBEAT_TIMEOUT_S", default=20.0),
            max_history_turns=max(1, _parse_int_env("KB_MAX_HISTORY_TURNS", default=20)),
            max_tool_rounds=max(0, _parse_int_env("KB_MAX_TOOL_ROUNDS", default=5)),
            persona=os.environ.get("KB_PERSONA", "default"),
        )


def get_config() -> BridgeConfig:
    """Get or create global config instance."""
    global _config
    if _config is None:
        _config = BridgeConfig.from_env()
    return _config


def reset_config() -> None:
    """Drop the cached config (tests, or after reloading env files)."""
    global _config
    _config = None


# Global config instance (lazy loaded)
_config: Optional[BridgeConfig] = None
