"""Data models for deeptrace."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class Provider(str, Enum):
    """Every assistant tool whose transcripts can be read.

    Declaration order is the discovery order used to break ties when
    sessions share the same ``lastUpdated``.
    """

    KOVA = "kova"
    CLAUDE = "claude"
    CODEX = "codex"
    KIMI = "kimi"
    GEMINI = "gemini"
    COPILOT = "copilot"
    FACTORY = "factory"
    OPENCODE = "opencode"
    AIDER = "aider"
    CONTINUE = "continue"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional[Provider]:
        if value is None:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


# snake_case attribute -> camelCase key in the serialized descriptor
_DESCRIPTOR_KEYS = {
    "session_id": "sessionId",
    "key": "key",
    "label": "label",
    "title": "title",
    "last_updated": "lastUpdated",
    "started_at": "startedAt",
    "provider": "provider",
    "message_count": "messageCount",
    "preview": "preview",
    "is_active": "isActive",
    "is_deleted": "isDeleted",
    "is_subagent": "isSubagent",
    "parent_session_id": "parentSessionId",
    "has_subagents": "hasSubagents",
    "file_path": "filePath",
    "model": "model",
    "cwd": "cwd",
    "team_name": "teamName",
    "is_sidechain": "isSidechain",
    "channel": "channel",
    "chat_type": "chatType",
    "compaction_count": "compactionCount",
}

# Extras only serialized when the provider supplied them
_OPTIONAL_KEYS = {
    "label", "title", "started_at", "parent_session_id",
    "model", "cwd", "team_name", "is_sidechain",
    "channel", "chat_type",
}


@dataclass
class SessionDescriptor:
    session_id: str
    provider: Provider
    file_path: str
    last_updated: int = 0
    key: str = ""
    label: Optional[str] = None
    title: Optional[str] = None
    started_at: Optional[int] = None
    message_count: int = 0
    preview: str = ""
    is_active: bool = True
    is_deleted: bool = False
    is_subagent: bool = False
    parent_session_id: Optional[str] = None
    has_subagents: bool = False
    model: Optional[str] = None
    cwd: Optional[str] = None
    team_name: Optional[str] = None
    is_sidechain: Optional[bool] = None
    channel: Optional[str] = None
    chat_type: Optional[str] = None
    compaction_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for attr, key in _DESCRIPTOR_KEYS.items():
            value = getattr(self, attr)
            if value is None and attr in _OPTIONAL_KEYS:
                continue
            if isinstance(value, Provider):
                value = value.value
            out[key] = value
        return out


@dataclass
class SearchHit:
    descriptor: SessionDescriptor
    snippet: str

    def to_dict(self) -> Dict[str, Any]:
        return {"descriptor": self.descriptor.to_dict(), "snippet": self.snippet}


@dataclass
class AgentStatus:
    """Installation state of one provider on this machine."""

    provider: Provider
    name: str
    binary_path: Optional[str]
    binary_is_custom: bool
    sessions_dir: str
    sessions_dir_exists: bool
    sessions_dir_is_custom: bool
    session_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.provider.value,
            "name": self.name,
            "binary": {
                "found": self.binary_path is not None,
                "path": self.binary_path,
                "isCustom": self.binary_is_custom,
            },
            "sessions": {
                "found": self.session_count > 0,
                "dir": self.sessions_dir,
                "count": self.session_count,
                "dirExists": self.sessions_dir_exists,
                "isCustom": self.sessions_dir_is_custom,
            },
        }
