"""Configuration for deeptrace."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from .models import Provider

logger = logging.getLogger(__name__)


_DEFAULT_CONFIG_PATH = "~/.deeptrace/config.yaml"

# Provider -> default sessions location, relative to the home directory
_DEFAULT_ROOTS = {
    Provider.KOVA: ".openclaw/agents/main/sessions",
    Provider.CLAUDE: ".claude/projects",
    Provider.CODEX: ".codex/sessions",
    Provider.KIMI: ".kimi/sessions",
    Provider.GEMINI: ".gemini/tmp",
    Provider.COPILOT: ".copilot/session-state",
    Provider.FACTORY: ".factory/sessions",
    Provider.OPENCODE: ".opencode/sessions",
    Provider.AIDER: ".aider.chat.history.md",
    Provider.CONTINUE: ".continue/sessions",
}

# Provider -> executable names looked up on PATH
PROVIDER_BINARIES = {
    Provider.KOVA: ["openclaw"],
    Provider.CLAUDE: ["claude"],
    Provider.CODEX: ["codex"],
    Provider.KIMI: ["kimi", "kimi-cli"],
    Provider.GEMINI: ["gemini"],
    Provider.COPILOT: ["copilot", "gh"],
    Provider.FACTORY: ["droid"],
    Provider.OPENCODE: ["opencode"],
    Provider.AIDER: ["aider"],
    Provider.CONTINUE: ["cn", "continue"],
}

PROVIDER_NAMES = {
    Provider.KOVA: "OpenClaw",
    Provider.CLAUDE: "Claude Code",
    Provider.CODEX: "Codex",
    Provider.KIMI: "Kimi",
    Provider.GEMINI: "Gemini CLI",
    Provider.COPILOT: "GitHub Copilot",
    Provider.FACTORY: "Factory Droid",
    Provider.OPENCODE: "OpenCode",
    Provider.AIDER: "Aider",
    Provider.CONTINUE: "Continue.dev",
}


@dataclass
class ProviderSettings:
    sessions_dir: Optional[str] = None
    binary_path: Optional[str] = None
    enabled: bool = True


@dataclass
class Config:
    # Base directory for the default provider roots (defaults to ~)
    home: Optional[str] = None

    # Per-provider overrides, keyed by provider id
    providers: Dict[str, ProviderSettings] = field(default_factory=dict)

    # Display / search
    preview_chars: int = 120
    snippet_chars: int = 120
    search_limit: int = 20
    min_query_chars: int = 3

    @classmethod
    def load(cls, path: Optional[str] = None) -> Config:
        """Load config from YAML file, falling back to defaults."""
        config_path = _config_path(path)

        data: dict = {}
        if config_path.exists():
            try:
                with open(config_path) as f:
                    data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Ignoring unreadable config {config_path}: {e}")
            if not isinstance(data, dict):
                data = {}

        cfg = cls()

        if "home" in data:
            cfg.home = data["home"]
        if "preview_chars" in data:
            cfg.preview_chars = int(data["preview_chars"])
        if "snippet_chars" in data:
            cfg.snippet_chars = int(data["snippet_chars"])
        if "search_limit" in data:
            cfg.search_limit = int(data["search_limit"])
        if "min_query_chars" in data:
            cfg.min_query_chars = int(data["min_query_chars"])

        for name, raw in (data.get("providers") or {}).items():
            provider = Provider.parse(str(name))
            if provider is None:
                logger.warning(f"Unknown provider in config: {name}")
                continue
            if not isinstance(raw, dict):
                continue
            cfg.providers[provider.value] = ProviderSettings(
                sessions_dir=raw.get("sessions_dir"),
                binary_path=raw.get("binary_path"),
                enabled=bool(raw.get("enabled", True)),
            )

        # Environment overrides
        if env_home := os.getenv("DEEPTRACE_HOME"):
            cfg.home = env_home
        if env_limit := os.getenv("DEEPTRACE_SEARCH_LIMIT"):
            cfg.search_limit = int(env_limit)

        return cfg

    @classmethod
    def with_roots(cls, roots: Mapping[Union[Provider, str], Union[str, Path]], **kwargs: Any) -> Config:
        """Build a config whose only enabled providers are the given roots."""
        cfg = cls(**kwargs)
        wanted = {Provider(p) for p in roots}
        for provider in Provider:
            if provider in wanted:
                cfg.providers[provider.value] = ProviderSettings(sessions_dir=str(roots[_key_for(roots, provider)]))
            else:
                cfg.providers[provider.value] = ProviderSettings(enabled=False)
        return cfg

    @staticmethod
    def set_config(key: str, value: Any, path: Optional[str] = None) -> None:
        """Persist a single top-level key to the YAML config file."""
        config_path = _config_path(path)
        data: dict = {}
        if config_path.exists():
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
        data[key] = value
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            yaml.safe_dump(data, f, sort_keys=False)

    @property
    def resolved_home(self) -> Path:
        return Path(self.home).expanduser() if self.home else Path.home()

    def settings(self, provider: Provider) -> ProviderSettings:
        return self.providers.get(provider.value) or ProviderSettings()

    def default_root(self, provider: Provider) -> Path:
        return self.resolved_home / _DEFAULT_ROOTS[provider]

    def root(self, provider: Provider) -> Path:
        custom = self.settings(provider).sessions_dir
        if custom:
            return Path(custom).expanduser()
        return self.default_root(provider)

    def roots(self) -> Dict[Provider, Path]:
        """Sessions root of every enabled provider, in discovery order."""
        return {
            provider: self.root(provider)
            for provider in Provider
            if self.settings(provider).enabled
        }


def _config_path(path: Optional[str]) -> Path:
    return Path(
        path or os.getenv("DEEPTRACE_CONFIG", _DEFAULT_CONFIG_PATH)
    ).expanduser()


def _key_for(roots: Mapping, provider: Provider):
    if provider in roots:
        return provider
    return provider.value
