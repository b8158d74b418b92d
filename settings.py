from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from domain import ConnectionMode, RefinePreferences
from utils import load_preferences

_ROOT = os.path.dirname(os.path.abspath(__file__))


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    return int(raw) if raw.strip().isdigit() and int(raw) > 0 else default


@dataclass
class Settings:
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_base_url: Optional[str] = None
    max_tokens: int = 4096
    connection_mode: ConnectionMode = ConnectionMode.DIRECT
    plugin_url: str = "http://127.0.0.1:8000"
    request_timeout_s: float = 30.0
    max_body_size_bytes: int = 512 * 1024
    pov_mixed_threshold: float = 0.2
    proxy_config_path: str = os.path.join(_ROOT, "data", "config.json")
    metadata_path: str = os.path.join(_ROOT, "data", "redraft_metadata.json")
    preferences: RefinePreferences = field(default_factory=RefinePreferences)

    @staticmethod
    def load() -> "Settings":
        # Load .env from the directory this file lives in
        load_dotenv(dotenv_path=os.path.join(_ROOT, '.env'))
        mode_env = os.getenv("REDRAFT_CONNECTION_MODE", "direct").strip().lower()
        try:
            mode = ConnectionMode(mode_env)
        except ValueError:
            mode = ConnectionMode.DIRECT
        defaults = Settings()
        return Settings(
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            openai_model=os.getenv("OPENAI_MODEL", defaults.openai_model),
            openai_base_url=os.getenv("OPENAI_BASE_URL") or None,
            max_tokens=_env_int("REDRAFT_MAX_TOKENS", defaults.max_tokens),
            connection_mode=mode,
            plugin_url=os.getenv("REDRAFT_PLUGIN_URL", defaults.plugin_url).rstrip("/"),
            request_timeout_s=_env_float("REDRAFT_REQUEST_TIMEOUT", defaults.request_timeout_s),
            max_body_size_bytes=_env_int("REDRAFT_MAX_BODY_BYTES", defaults.max_body_size_bytes),
            pov_mixed_threshold=_env_float("REDRAFT_POV_MIXED_THRESHOLD", defaults.pov_mixed_threshold),
            proxy_config_path=os.getenv("REDRAFT_PROXY_CONFIG", defaults.proxy_config_path),
            metadata_path=os.getenv("REDRAFT_METADATA_PATH", defaults.metadata_path),
            preferences=load_preferences(os.getenv("REDRAFT_PREFERENCES") or None),
        )
