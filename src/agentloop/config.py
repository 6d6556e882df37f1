"""Configuration management for the agent runtime."""

import os
import json
from pathlib import Path
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from dotenv import load_dotenv

from .logger import get_logger

log = get_logger("config")

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_MODE = "code"


def get_global_config_path() -> Path:
    """Get path to global config: ~/.agentloop.json"""
    return Path.home() / ".agentloop.json"


def get_workspace_config_path(workspace: Optional[Path] = None) -> Path:
    """Get path to workspace config: workspace/.agentloop/config.json"""
    ws = workspace or Path.cwd()
    return ws / ".agentloop" / "config.json"


def get_custom_modes_path(workspace: Optional[Path] = None) -> Path:
    """Get path to workspace custom modes: workspace/.agentloop/modes.json"""
    ws = workspace or Path.cwd()
    return ws / ".agentloop" / "modes.json"


def load_json_config(path: Path) -> dict:
    """Load config from JSON file if it exists."""
    if path.exists():
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, IOError) as e:
            log.warning("Ignoring unreadable config %s: %s", path, e)
    return {}


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    """Configuration for one agent task session."""

    api_url: str = ""
    api_key: str = ""
    model: str = DEFAULT_MODEL
    temperature: float = 0.2
    max_tokens: int = 8192
    workspace_path: Path = field(default_factory=lambda: Path.cwd())
    mode: str = DEFAULT_MODE
    max_context_tokens: int = 64000
    truncation_fraction: float = 0.5
    max_iterations: int = 100
    consecutive_mistake_limit: int = 3
    repetition_limit: int = 3
    prevent_completion_with_open_todos: bool = False
    command_timeout: float = 120.0
    auto_approve_edits: bool = False
    custom_modes: List[Dict[str, Any]] = field(default_factory=list)
    tool_requirements: Dict[str, bool] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], workspace: Optional[Path] = None) -> "Config":
        defaults = cls()
        return cls(
            api_url=data.get("api_url", defaults.api_url),
            api_key=data.get("api_key", defaults.api_key),
            model=data.get("model", defaults.model),
            temperature=float(data.get("temperature", defaults.temperature)),
            max_tokens=int(data.get("max_tokens", defaults.max_tokens)),
            workspace_path=Path(workspace or data.get("workspace_path") or Path.cwd()),
            mode=data.get("mode", defaults.mode),
            max_context_tokens=int(data.get("max_context_tokens", defaults.max_context_tokens)),
            truncation_fraction=float(data.get("truncation_fraction", defaults.truncation_fraction)),
            max_iterations=int(data.get("max_iterations", defaults.max_iterations)),
            consecutive_mistake_limit=int(
                data.get("consecutive_mistake_limit", defaults.consecutive_mistake_limit)),
            repetition_limit=int(data.get("repetition_limit", defaults.repetition_limit)),
            prevent_completion_with_open_todos=_as_bool(
                data.get("prevent_completion_with_open_todos", False)),
            command_timeout=float(data.get("command_timeout", defaults.command_timeout)),
            auto_approve_edits=_as_bool(data.get("auto_approve_edits", False)),
            custom_modes=list(data.get("custom_modes", [])),
            tool_requirements={
                str(name): _as_bool(met) for name, met in dict(data.get("tool_requirements", {})).items()
            },
        )

    @classmethod
    def load(cls, workspace: Optional[Path] = None, env_path: Optional[Path] = None) -> "Config":
        """Load configuration.

        Priority (later overrides earlier):
        1. ~/.agentloop.json (global)
        2. workspace/.agentloop/config.json (workspace-specific)
        3. environment variables (.env is loaded first if present)
        4. workspace/.agentloop/modes.json is appended to custom_modes
        """
        config_data: Dict[str, Any] = {}
        config_data.update(load_json_config(get_global_config_path()))
        config_data.update(load_json_config(get_workspace_config_path(workspace)))

        if env_path is None:
            load_dotenv()
        elif Path(env_path).exists():
            load_dotenv(env_path)

        env_map = {
            "AGENTLOOP_API_URL": "api_url",
            "AGENTLOOP_API_KEY": "api_key",
            "AGENTLOOP_MODEL": "model",
            "AGENTLOOP_MODE": "mode",
            "AGENTLOOP_MAX_CONTEXT_TOKENS": "max_context_tokens",
        }
        for env_name, key in env_map.items():
            value = os.getenv(env_name)
            if value:
                config_data[key] = value

        modes_file = load_json_config(get_custom_modes_path(workspace))
        if modes_file.get("customModes"):
            config_data["custom_modes"] = (
                list(config_data.get("custom_modes", [])) + list(modes_file["customModes"])
            )

        config = cls.from_dict(config_data, workspace=workspace)
        log.debug("Config loaded: model=%s mode=%s workspace=%s custom_modes=%d",
                  config.model, config.mode, config.workspace_path, len(config.custom_modes))
        return config

    def validate(self) -> bool:
        """Validate the settings needed to talk to a model provider."""
        if not self.api_url:
            raise ValueError("API URL is required. Set AGENTLOOP_API_URL or api_url in ~/.agentloop.json.")
        if not self.api_key:
            raise ValueError("API key is required. Set AGENTLOOP_API_KEY or api_key in ~/.agentloop.json.")
        if not 0.0 <= self.truncation_fraction <= 1.0:
            raise ValueError("truncation_fraction must be between 0 and 1.")
        return True
