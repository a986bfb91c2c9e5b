"""
Typed configuration model with precedence-based loader.

Precedence (lowest to highest):
    defaults < config file (YAML) < profile < env vars < CLI flags

Secrets are never stored in the config itself; the ``*_env`` fields name the
environment variables they are read from.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml


class ConfigError(ValueError):
    """The config file has values of the wrong shape or type."""

    def __init__(self, issues: list[str]) -> None:
        super().__init__("; ".join(issues))
        self.issues = issues


@dataclass
class LLMProviderConfig:
    name: str = "openai"
    model: str = "gpt-5-mini"
    api_base: str = "https://api.openai.com/v1"
    api_key_env: str = "OPENAI_API_KEY"
    timeout_seconds: int = 120
    max_retries: int = 2


@dataclass
class ToolProviderConfig:
    url: str = "https://mcp.opensea.io/mcp"
    token_env: str = "OPENSEA_BEARER_TOKEN"
    timeout_seconds: float = 30.0


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8000
    max_duration_seconds: float = 30.0


@dataclass
class ChatConfig:
    max_steps: int = 5
    tool_timeout_seconds: float = 30.0
    max_auto_continuations: int = 3
    api_url: str = "http://127.0.0.1:8000/api/chat"
    system_prompt: str = ""


_SECTIONS: dict[str, type] = {
    "llm": LLMProviderConfig,
    "tool_provider": ToolProviderConfig,
    "server": ServerConfig,
    "chat": ChatConfig,
}


@dataclass
class ToolchatConfig:
    llm: LLMProviderConfig = field(default_factory=LLMProviderConfig)
    tool_provider: ToolProviderConfig = field(default_factory=ToolProviderConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)
    profiles: dict[str, dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> ToolchatConfig:
        """
        Build from a parsed YAML mapping; unknown sections and keys are dropped.

        Raises ``ConfigError`` listing every section that is not a mapping and
        every value whose type does not match the field default.
        """
        if not isinstance(raw, dict):
            raise ConfigError([f"top level: expected a mapping, got {type(raw).__name__}"])

        issues: list[str] = []
        sections = {}
        for name, section_cls in _SECTIONS.items():
            values = raw.get(name) or {}
            if not isinstance(values, dict):
                issues.append(f"{name}: expected a mapping, got {type(values).__name__}")
                continue
            kept = {}
            for f in fields(section_cls):
                if f.name not in values:
                    continue
                problem = _type_issue(values[f.name], f.default)
                if problem:
                    issues.append(f"{name}.{f.name}: {problem}")
                else:
                    kept[f.name] = values[f.name]
            sections[name] = section_cls(**kept)

        profiles = raw.get("profiles") or {}
        if not isinstance(profiles, dict):
            issues.append(f"profiles: expected a mapping, got {type(profiles).__name__}")
        if issues:
            raise ConfigError(issues)
        return cls(**sections, profiles=profiles)

    def api_key(self) -> str:
        return os.environ.get(self.llm.api_key_env, "")

    def tool_provider_token(self) -> str:
        return os.environ.get(self.tool_provider.token_env, "")

    def set(self, dotpath: str, value: Any) -> None:
        """Set ``section.field`` (e.g. ``"server.port"``)."""
        section, _, name = dotpath.partition(".")
        setattr(getattr(self, section), name, value)

    def get(self, dotpath: str) -> Any:
        section, _, name = dotpath.partition(".")
        return getattr(getattr(self, section), name)

    def to_dict(self) -> dict:
        return asdict(self)


def _type_issue(value: Any, default: Any) -> str | None:
    if isinstance(default, bool):
        ok = isinstance(value, bool)
    elif isinstance(default, float):
        ok = isinstance(value, (int, float)) and not isinstance(value, bool)
    elif isinstance(default, int):
        ok = isinstance(value, int) and not isinstance(value, bool)
    else:
        ok = isinstance(value, type(default))
    if ok:
        return None
    return f"expected {type(default).__name__}, got {type(value).__name__}"


def _overlay(base: dict, top: dict) -> dict:
    out = dict(base)
    for key, value in top.items():
        if isinstance(out.get(key), dict) and isinstance(value, dict):
            out[key] = _overlay(out[key], value)
        else:
            out[key] = value
    return out


def _parse_env(text: str, like: Any) -> Any:
    """Convert an env string to the type of the current value *like*."""
    if isinstance(like, bool):
        return text.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(like, (int, float)):
        return type(like)(text)
    return text


# Env var -> config dotpath; the value type follows the field's default.
ENV_VARS: dict[str, str] = {
    "TOOLCHAT_LLM_NAME": "llm.name",
    "TOOLCHAT_LLM_MODEL": "llm.model",
    "TOOLCHAT_LLM_API_BASE": "llm.api_base",
    "TOOLCHAT_LLM_API_KEY_ENV": "llm.api_key_env",
    "TOOLCHAT_LLM_TIMEOUT": "llm.timeout_seconds",
    "TOOLCHAT_LLM_MAX_RETRIES": "llm.max_retries",
    "TOOLCHAT_TOOLS_URL": "tool_provider.url",
    "TOOLCHAT_TOOLS_TOKEN_ENV": "tool_provider.token_env",
    "TOOLCHAT_TOOLS_TIMEOUT": "tool_provider.timeout_seconds",
    "TOOLCHAT_SERVER_HOST": "server.host",
    "TOOLCHAT_SERVER_PORT": "server.port",
    "TOOLCHAT_SERVER_MAX_DURATION": "server.max_duration_seconds",
    "TOOLCHAT_CHAT_MAX_STEPS": "chat.max_steps",
    "TOOLCHAT_CHAT_TOOL_TIMEOUT": "chat.tool_timeout_seconds",
    "TOOLCHAT_CHAT_MAX_AUTO": "chat.max_auto_continuations",
    "TOOLCHAT_CHAT_API_URL": "chat.api_url",
    "TOOLCHAT_CHAT_SYSTEM_PROMPT": "chat.system_prompt",
}


def find_config_path() -> Path | None:
    """First existing ``toolchat.yaml``/``.yml`` in the cwd, then the user config dir."""
    for candidate in (
        Path.cwd() / "toolchat.yaml",
        Path.cwd() / "toolchat.yml",
        Path.home() / ".config" / "toolchat" / "config.yaml",
    ):
        if candidate.is_file():
            return candidate
    return None


def _read_yaml(path: str | Path | None) -> Any:
    if path is None:
        return {}
    path = Path(path).expanduser()
    if not path.is_file():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> ToolchatConfig:
    """
    Layer the configuration sources and return the effective config.

    Parameters
    ----------
    config_path : YAML file to read; a missing file means defaults
    profile : entry under ``profiles:`` to overlay on the file; unknown
        names are ignored
    cli_overrides : ``{"section.field": value}`` from command-line flags
    """
    raw = _read_yaml(config_path)
    if profile and isinstance(raw, dict):
        profiles = raw.get("profiles")
        chosen = profiles.get(profile) if isinstance(profiles, dict) else None
        if isinstance(chosen, dict):
            raw = _overlay(raw, chosen)

    cfg = ToolchatConfig.from_raw(raw)

    for var, dotpath in ENV_VARS.items():
        text = os.environ.get(var)
        if text is not None:
            cfg.set(dotpath, _parse_env(text, cfg.get(dotpath)))

    for dotpath, value in (cli_overrides or {}).items():
        cfg.set(dotpath, value)

    return cfg
