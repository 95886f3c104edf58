"""
Configuration models for the coding agent engine.

Configs can be loaded from YAML files, from the environment (with ``.env``
support), or constructed programmatically.

Example YAML:
    system_prompt: You are a careful coding assistant.
    max_iterations: 30
    stream: true
    thinking_budget: 8000
    session_dir: ~/.agent/sessions
    provider:
      provider: anthropic
      model: claude-sonnet-4-5
      max_tokens: 8192
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import find_dotenv, load_dotenv

from coding_agent_engine.messages import ThinkingConfig, ToolChoice

DEFAULT_MAX_ITERATIONS = 50
DEFAULT_MAX_TOKENS = 4096

_DEFAULT_MODELS = {
    "openai": "gpt-4o",
    "anthropic": "claude-sonnet-4-5",
}


def _env_int(name: str, default: int | None) -> int | None:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ProviderConfig:
    """Which LLM backend to talk to, and how."""

    provider: str = "openai"  # "openai" or "anthropic"
    model: str = ""  # empty = provider default
    api_key: str = ""
    base_url: str | None = None  # None = provider default
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float | None = None
    timeout: float | None = None  # seconds; None = no limit

    def __post_init__(self) -> None:
        if not self.model:
            self.model = _DEFAULT_MODELS.get(self.provider, "")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProviderConfig:
        return cls(
            provider=data.get("provider", "openai"),
            model=data.get("model", ""),
            api_key=data.get("api_key", ""),
            base_url=data.get("base_url"),
            max_tokens=data.get("max_tokens", DEFAULT_MAX_TOKENS),
            temperature=data.get("temperature"),
            timeout=data.get("timeout"),
        )

    @classmethod
    def from_env(cls, provider: str | None = None, **overrides: Any) -> ProviderConfig:
        """
        Create config from environment variables.

        ``AGENT_PROVIDER`` selects the backend; its settings come from
        ``<PREFIX>_API_KEY``, ``<PREFIX>_MODEL``, ``<PREFIX>_BASE_URL`` and
        ``<PREFIX>_MAX_TOKENS`` where the prefix is ``OPENAI`` or ``ANTHROPIC``.
        """
        load_dotenv(find_dotenv(usecwd=True))
        provider = provider or os.environ.get("AGENT_PROVIDER", "openai")
        prefix = provider.upper()
        values: dict[str, Any] = {
            "provider": provider,
            "model": os.environ.get(f"{prefix}_MODEL", ""),
            "api_key": os.environ.get(f"{prefix}_API_KEY", ""),
            "base_url": os.environ.get(f"{prefix}_BASE_URL") or None,
            "max_tokens": _env_int(f"{prefix}_MAX_TOKENS", DEFAULT_MAX_TOKENS),
        }
        values.update(overrides)
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "model": self.model,
            "api_key": self.api_key,
            "base_url": self.base_url,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "timeout": self.timeout,
        }


@dataclass
class AgentConfig:
    """Configuration for the agent runner."""

    system_prompt: str = ""
    max_iterations: int = DEFAULT_MAX_ITERATIONS  # Inner-loop provider calls per turn
    stream: bool = False  # Use provider streaming
    thinking_budget: int | None = None  # Extended reasoning tokens, None = off
    tool_choice: str | None = None  # "auto", "any", "none" or a tool name
    agent_type: str = "main"
    session_dir: Path = field(default_factory=lambda: Path("sessions"))
    provider: ProviderConfig = field(default_factory=ProviderConfig)

    def __post_init__(self) -> None:
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.session_dir = Path(self.session_dir).expanduser()

    @property
    def thinking(self) -> ThinkingConfig | None:
        if not self.thinking_budget:
            return None
        return ThinkingConfig.enabled(self.thinking_budget)

    @property
    def parsed_tool_choice(self) -> ToolChoice | None:
        if not self.tool_choice:
            return None
        return ToolChoice.parse(self.tool_choice)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AgentConfig:
        """Create config from a dictionary."""
        return cls(
            system_prompt=data.get("system_prompt", ""),
            max_iterations=data.get("max_iterations", DEFAULT_MAX_ITERATIONS),
            stream=data.get("stream", False),
            thinking_budget=data.get("thinking_budget"),
            tool_choice=data.get("tool_choice"),
            agent_type=data.get("agent_type", "main"),
            session_dir=Path(data.get("session_dir", "sessions")),
            provider=ProviderConfig.from_dict(data.get("provider") or {}),
        )

    @classmethod
    def from_yaml(cls, path: Path) -> AgentConfig:
        """Load config from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_yaml_string(cls, content: str) -> AgentConfig:
        """Load config from a YAML string."""
        data = yaml.safe_load(content)
        return cls.from_dict(data or {})

    @classmethod
    def from_env(cls, **overrides: Any) -> AgentConfig:
        """Create config from environment variables (and a ``.env`` file)."""
        load_dotenv(find_dotenv(usecwd=True))
        values: dict[str, Any] = {
            "system_prompt": os.environ.get("AGENT_SYSTEM_PROMPT", ""),
            "max_iterations": _env_int("AGENT_MAX_ITERATIONS", DEFAULT_MAX_ITERATIONS),
            "stream": _env_bool("AGENT_STREAM", False),
            "thinking_budget": _env_int("AGENT_THINKING_BUDGET", None),
            "session_dir": Path(os.environ.get("AGENT_SESSION_DIR", "sessions")),
            "provider": ProviderConfig.from_env(),
        }
        values.update(overrides)
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to a dictionary."""
        return {
            "system_prompt": self.system_prompt,
            "max_iterations": self.max_iterations,
            "stream": self.stream,
            "thinking_budget": self.thinking_budget,
            "tool_choice": self.tool_choice,
            "agent_type": self.agent_type,
            "session_dir": str(self.session_dir),
            "provider": self.provider.to_dict(),
        }
