"""
deeptrace API — clean, importable functions for all operations.

Every function returns JSON-serializable dicts/lists.
Designed to be called from scripts, HTTP handlers, or other agents.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from .core.catalog import Catalog
from .core.config import Config, _config_path
from .core.models import Provider


def _catalog() -> Catalog:
    return Catalog(Config.load())


def _provider(value: Optional[str]) -> Union[Provider, Dict[str, str], None]:
    if value is None:
        return None
    provider = Provider.parse(value)
    if provider is None:
        return {"error": f"Unknown provider: {value}. Available: {', '.join(p.value for p in Provider)}"}
    return provider


# ── Sessions ──────────────────────────────────────────────────────────────────

def sessions(provider: Optional[str] = None) -> Union[List[Dict[str, Any]], Dict[str, str]]:
    """List discovered sessions, most recently updated first."""
    prov = _provider(provider)
    if isinstance(prov, dict):
        return prov
    return [s.to_dict() for s in _catalog().list_sessions(prov)]


def messages(session_id: str, provider: str = "kova") -> Union[List[Dict[str, Any]], Dict[str, str]]:
    """Normalized, chronologically ordered transcript of one session."""
    prov = _provider(provider)
    if isinstance(prov, dict):
        return prov
    result = _catalog().get_messages(session_id, prov)
    if result is None:
        return {"error": f"Session not found: {session_id} ({prov.value})"}
    return result


def session_by_key(key: str) -> Dict[str, Any]:
    """Map an OpenClaw session key to its session id."""
    found = _catalog().find_by_key(key)
    if not found:
        return {"error": f"Session key not found: {key}"}
    return found


# ── Search ────────────────────────────────────────────────────────────────────

def search(query: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """Search titles, labels, previews and raw transcripts.

    Queries shorter than ``min_query_chars`` return no results.
    """
    cfg = Config.load()
    if len(query.strip()) < cfg.min_query_chars:
        return []
    return [hit.to_dict() for hit in Catalog(cfg).search(query, limit=limit)]


# ── Agents & status ───────────────────────────────────────────────────────────

def detect_agents() -> List[Dict[str, Any]]:
    """Installed tools, their session roots and transcript counts."""
    return [a.to_dict() for a in _catalog().detect_agents()]


def status() -> Dict[str, Any]:
    """Config diagnostics and the resolved root of every provider."""
    cfg = Config.load()
    config_path = _config_path(None)
    enabled = cfg.roots()

    providers = {}
    for provider in Provider:
        root = cfg.root(provider)
        providers[provider.value] = {
            "enabled": provider in enabled,
            "sessions_dir": str(root),
            "exists": root.exists(),
        }

    return {
        "config_path": str(config_path),
        "config_exists": config_path.exists(),
        "home": str(cfg.resolved_home),
        "search_limit": cfg.search_limit,
        "providers": providers,
    }
