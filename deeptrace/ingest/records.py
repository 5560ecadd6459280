"""
Raw record variants — one typed view per known transcript schema.

A decoded JSONL line is an open dict. Before normalization it is lifted
into the variant of the transcript's format; anything that does not
carry that format's envelope becomes a GenericRecord.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class TranscriptFormat(str, Enum):
    """Closed set of record schemas, in sniffing priority order."""

    CODEX = "codex"                # {type: response_item|session_meta|..., payload}
    COPILOT = "copilot"            # {type: "user.message"|..., data}
    KIMI = "kimi"                  # {type: user|assistant, message: {role, content: [{type: think}]}}
    CLAUDE = "claude"              # {type: user|assistant, message: {role, content}}
    KOVA = "kova"                  # {type: "message", message: {role, content: [...]}}
    CHAT = "chat"                  # {type: "message"?, role, content} or {message: {...}}
    KIMI_CONTEXT = "kimi_context"  # {role, content, tool_calls?} with no type
    GEMINI = "gemini"              # Gemini CLI chat JSON message


@dataclass
class ClaudeRecord:
    type: str
    timestamp: Any = None
    message: Dict[str, Any] = field(default_factory=dict)
    team_name: Optional[str] = None
    is_sidechain: bool = False


@dataclass
class CodexRecord:
    type: str
    timestamp: Any = None
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CopilotRecord:
    type: str
    timestamp: Any = None
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class KimiRecord:
    role: str
    content: Any = None
    timestamp: Any = None


@dataclass
class KimiContextRecord:
    role: str
    content: Any = None
    timestamp: Any = None
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)
    tool_call_id: Optional[str] = None


@dataclass
class KovaRecord:
    type: str
    timestamp: Any = None
    message: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ChatRecord:
    role: str
    content: Any = None
    timestamp: Any = None
    tool_call_id: Optional[str] = None


@dataclass
class GeminiRecord:
    type: str
    timestamp: Any = None
    content: Any = None
    thoughts: List[Dict[str, Any]] = field(default_factory=list)
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class GenericRecord:
    data: Dict[str, Any] = field(default_factory=dict)


Record = Union[
    ClaudeRecord, CodexRecord, CopilotRecord, KimiRecord, KimiContextRecord,
    KovaRecord, ChatRecord, GeminiRecord, GenericRecord,
]


def lift(data: Any, fmt: TranscriptFormat) -> Record:
    """Lift a decoded JSON value into the record variant of ``fmt``."""
    if not isinstance(data, dict):
        return GenericRecord()

    rtype = data.get("type")
    ts = data.get("timestamp")

    if fmt == TranscriptFormat.CLAUDE and isinstance(rtype, str):
        return ClaudeRecord(
            type=rtype,
            timestamp=ts,
            message=_as_dict(data.get("message")),
            team_name=data.get("teamName") or None,
            is_sidechain=bool(data.get("isSidechain")),
        )

    if fmt == TranscriptFormat.CODEX and isinstance(rtype, str):
        return CodexRecord(type=rtype, timestamp=ts, payload=_as_dict(data.get("payload")))

    if fmt == TranscriptFormat.COPILOT and isinstance(rtype, str) and "." in rtype:
        return CopilotRecord(type=rtype, timestamp=ts, data=_as_dict(data.get("data")))

    if fmt == TranscriptFormat.KOVA and isinstance(rtype, str):
        return KovaRecord(type=rtype, timestamp=ts, message=_as_dict(data.get("message")))

    if fmt == TranscriptFormat.GEMINI and isinstance(rtype, str):
        return GeminiRecord(
            type=rtype,
            timestamp=ts,
            content=data.get("content"),
            thoughts=_as_list(data.get("thoughts")),
            tool_calls=_as_list(data.get("toolCalls")),
        )

    if fmt == TranscriptFormat.KIMI_CONTEXT and isinstance(data.get("role"), str):
        return KimiContextRecord(
            role=data["role"],
            content=data.get("content"),
            timestamp=ts,
            tool_calls=_as_list(data.get("tool_calls")),
            tool_call_id=data.get("tool_call_id"),
        )

    if fmt in (TranscriptFormat.KIMI, TranscriptFormat.CHAT):
        msg = data.get("message") if isinstance(data.get("message"), dict) else data
        role = msg.get("role") or rtype
        if not isinstance(role, str):
            return GenericRecord(data)
        if fmt == TranscriptFormat.KIMI:
            return KimiRecord(role=role, content=msg.get("content"), timestamp=ts)
        return ChatRecord(
            role=role,
            content=msg.get("content"),
            timestamp=ts or msg.get("timestamp"),
            tool_call_id=msg.get("tool_call_id") or msg.get("toolCallId"),
        )

    return GenericRecord(data)


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict)]
