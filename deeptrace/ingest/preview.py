"""
Session metadata — message counts, preview text and timestamps.

Everything here works on the raw decoded records of one transcript,
using the same TranscriptFormat the normalizers dispatch on.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional, Sequence

from .reader import PathLike
from .records import TranscriptFormat
from .timestamps import file_mtime_ms, to_epoch_ms

PREVIEW_CHARS = 120

_TURN_ROLES = {"user", "assistant"}
_CHAT_TURN_ROLES = {"user", "assistant", "model"}
_GEMINI_TURN_TYPES = {"user", "gemini", "model", "assistant"}
_COPILOT_TURN_TYPES = {"user.message", "assistant.message"}
_TEXT_BLOCK_TYPES = {"text", "input_text"}


def _inner(record: Dict[str, Any]) -> Dict[str, Any]:
    msg = record.get("message")
    return msg if isinstance(msg, dict) else record


def is_turn(record: Any, fmt: TranscriptFormat) -> bool:
    """Whether a raw record is a conversational user/assistant turn."""
    if not isinstance(record, dict):
        return False
    rtype = record.get("type")

    if fmt == TranscriptFormat.KOVA:
        return rtype == "message" and _inner(record).get("role") in _TURN_ROLES
    if fmt in (TranscriptFormat.CLAUDE, TranscriptFormat.KIMI):
        return rtype in _TURN_ROLES
    if fmt == TranscriptFormat.CODEX:
        payload = record.get("payload")
        return (
            rtype == "response_item"
            and isinstance(payload, dict)
            and payload.get("type", "message") == "message"
            and payload.get("role") in _TURN_ROLES
        )
    if fmt == TranscriptFormat.GEMINI:
        return rtype in _GEMINI_TURN_TYPES
    if fmt == TranscriptFormat.COPILOT:
        return rtype in _COPILOT_TURN_TYPES
    # CHAT and KIMI_CONTEXT: bare or wrapped role/content
    return _inner(record).get("role") in _CHAT_TURN_ROLES


def count_messages(records: Sequence[Any], fmt: TranscriptFormat) -> int:
    return sum(1 for r in records if is_turn(r, fmt))


def _user_content(record: Dict[str, Any], fmt: TranscriptFormat) -> Any:
    """Content of a user-authored turn, or None for anything else."""
    if not is_turn(record, fmt):
        return None
    if fmt == TranscriptFormat.CODEX:
        payload = record["payload"]
        return payload.get("content") if payload.get("role") == "user" else None
    if fmt == TranscriptFormat.GEMINI:
        return record.get("content") if record.get("type") == "user" else None
    if fmt == TranscriptFormat.COPILOT:
        data = record.get("data")
        if record.get("type") != "user.message" or not isinstance(data, dict):
            return None
        return data.get("content")
    if fmt in (TranscriptFormat.CLAUDE, TranscriptFormat.KIMI) and record.get("type") != "user":
        return None
    msg = _inner(record)
    return msg.get("content") if msg.get("role") == "user" else None


def extract_text(content: Any) -> str:
    """Plain text of message content: a string, or its text blocks joined by a space.

    Untyped ``{"text": ...}`` parts (Gemini CLI) count as text blocks.
    """
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            b["text"]
            for b in content
            if isinstance(b, dict) and isinstance(b.get("text"), str)
            and (b.get("type") in _TEXT_BLOCK_TYPES or "type" not in b)
        ]
        return " ".join(p for p in parts if p)
    return ""


def extract_preview(
    records: Sequence[Any],
    fmt: TranscriptFormat,
    limit: int = PREVIEW_CHARS,
) -> str:
    """Cleaned text of the most recent user turn that has any."""
    for record in reversed(records):
        if not isinstance(record, dict):
            continue
        content = _user_content(record, fmt)
        if content is None:
            continue
        text = clean_preview(extract_text(content))
        if text:
            return text[:limit]
    return ""


# ── Preview cleaning ──────────────────────────────────────────────────────────

# "Conversation info (untrusted metadata):\n```json\n{...}\n```\n..."
_BANNER_RE = re.compile(r"\A[^\n`]*\n[ \t]*```[^\n]*\n.*?\n[ \t]*```[ \t]*(?:\n|\Z)", re.DOTALL)
_TIMESTAMP_PREFIX_RE = re.compile(r"\A\[[^\]\n]*\d{1,2}:\d{2}[^\]\n]*\]\s*")
_ATTACHMENT_PREFIX_RE = re.compile(
    r"\A\[(?:media attached|attachment|image|file)\b[^\]\n]*\]\s*", re.IGNORECASE
)
_HEX_ID_RE = re.compile(r"\A[0-9a-fA-F]{8,}(?:-[0-9a-fA-F]+)*\Z")
_TEAMMATE_RE = re.compile(r"<teammate-message\b[^>]*?\bsummary=\"([^\"]*)\"", re.DOTALL)
_TASK_NOTIFICATION_RE = re.compile(r"<task-notification\b[^>]*>(.*?)(?:</task-notification>|\Z)", re.DOTALL)
_SUMMARY_RE = re.compile(r"<summary>(.*?)</summary>", re.DOTALL)
_DROPPED_BLOCKS_RE = re.compile(
    r"<(system-reminder|environment_context|user_instructions)\b[^>]*>.*?(?:</\1>|\Z)", re.DOTALL
)
_TAG_RE = re.compile(r"</?[A-Za-z][\w:.-]*(?:\s[^<>]*)?/?>")
_WS_RE = re.compile(r"\s+")


def clean_preview(text: str) -> str:
    """Reduce raw user-turn text to something worth showing in a list.

    Steps run in a fixed order: banners, leading prefixes, bare ids,
    embedded markup payloads, tag stripping, whitespace.
    """
    if not text:
        return ""
    text = text.strip()

    while True:
        m = _BANNER_RE.match(text)
        if not m:
            break
        text = text[m.end():].lstrip()

    while True:
        m = _TIMESTAMP_PREFIX_RE.match(text) or _ATTACHMENT_PREFIX_RE.match(text)
        if not m:
            break
        text = text[m.end():]

    if _HEX_ID_RE.match(text.strip()):
        return ""

    m = _TEAMMATE_RE.search(text)
    if m:
        text = m.group(1)
    else:
        m = _TASK_NOTIFICATION_RE.search(text)
        if m:
            inner = m.group(1)
            summary = _SUMMARY_RE.search(inner)
            text = summary.group(1) if summary else inner

    text = _DROPPED_BLOCKS_RE.sub(" ", text)
    text = _TAG_RE.sub(" ", text)
    return _WS_RE.sub(" ", text).strip()


# ── Timestamps ────────────────────────────────────────────────────────────────

def record_timestamp(record: Any) -> Any:
    if not isinstance(record, dict):
        return None
    ts = record.get("timestamp")
    if ts is None:
        ts = _inner(record).get("timestamp")
    return ts


def started_at_ms(records: Sequence[Any], fmt: TranscriptFormat) -> Optional[int]:
    """Epoch-ms of the first conversational turn carrying a timestamp."""
    for record in records:
        if not is_turn(record, fmt):
            continue
        ms = to_epoch_ms(record_timestamp(record))
        if ms is not None:
            return ms
    return None


def last_updated_ms(path: PathLike, embedded: Any = None) -> int:
    """Index/embedded update time when known, else the file's mtime."""
    if embedded:
        ms = to_epoch_ms(embedded)
        if ms:
            return ms
    return file_mtime_ms(path)
