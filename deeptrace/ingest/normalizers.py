"""
Entry normalizers — convert provider records into canonical messages.

A canonical message is a JSON-ready dict:

    {"type": "message", "timestamp": "<iso>",
     "message": {"role": "user" | "assistant" | "toolResult",
                 "content": [ContentBlock, ...],
                 "toolCallId": ..., "toolName": ..., "isError": ...}}

Each normalizer maps one record variant to a message, a list of messages
(a turn that bundles tool results), or None for bookkeeping records.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .records import (
    ChatRecord,
    ClaudeRecord,
    CodexRecord,
    CopilotRecord,
    GeminiRecord,
    GenericRecord,
    KimiContextRecord,
    KimiRecord,
    KovaRecord,
    TranscriptFormat,
    lift,
)
from .timestamps import parse_timestamp, to_iso

logger = logging.getLogger(__name__)

Message = Dict[str, Any]
Normalized = Union[Message, List[Message], None]

_SNIFF_LIMIT = 30


# ── Format sniffing ───────────────────────────────────────────────────────────

_CODEX_TYPES = {"session_meta", "response_item", "turn_context", "event_msg"}
_COPILOT_TYPES = {
    "session.start", "user.message", "assistant.message", "assistant.reasoning",
    "assistant.turn_start", "tool.execution_start", "tool.execution_complete",
}
_CLAUDE_AUX_TYPES = {"summary", "file-history-snapshot", "queue-operation", "progress"}
_TURN_TYPES = ("user", "assistant")
_CHAT_ROLES = {"user": "user", "assistant": "assistant", "model": "assistant"}


def _looks_codex(r: dict) -> bool:
    return r.get("type") in _CODEX_TYPES


def _looks_copilot(r: dict) -> bool:
    return r.get("type") in _COPILOT_TYPES


def _looks_kimi(r: dict) -> bool:
    msg = r.get("message")
    if r.get("type") not in _TURN_TYPES or not isinstance(msg, dict):
        return False
    content = msg.get("content")
    return isinstance(content, list) and any(
        isinstance(b, dict) and b.get("type") == "think" for b in content
    )


def _looks_claude(r: dict) -> bool:
    if r.get("type") in _CLAUDE_AUX_TYPES:
        return True
    return r.get("type") in _TURN_TYPES and isinstance(r.get("message"), dict)


def _looks_kova(r: dict) -> bool:
    if r.get("type") == "session":
        return True
    msg = r.get("message")
    if r.get("type") != "message" or not isinstance(msg, dict):
        return False
    return isinstance(msg.get("content"), list) or msg.get("role") == "toolResult"


def _looks_chat(r: dict) -> bool:
    msg = r.get("message") if isinstance(r.get("message"), dict) else r
    return r.get("type") == "message" and msg.get("role") in _CHAT_ROLES


def _looks_kimi_context(r: dict) -> bool:
    return "type" not in r and isinstance(r.get("role"), str)


_SNIFFERS: List[Tuple[TranscriptFormat, Callable[[dict], bool]]] = [
    (TranscriptFormat.CODEX, _looks_codex),
    (TranscriptFormat.COPILOT, _looks_copilot),
    (TranscriptFormat.KIMI, _looks_kimi),
    (TranscriptFormat.CLAUDE, _looks_claude),
    (TranscriptFormat.KOVA, _looks_kova),
    (TranscriptFormat.CHAT, _looks_chat),
    (TranscriptFormat.KIMI_CONTEXT, _looks_kimi_context),
]


def sniff_format(records: Sequence[Any]) -> TranscriptFormat:
    """Pick the record schema of a whole transcript from its first records.

    Formats are tried in a fixed priority order; the first whose predicate
    matches any sampled record wins.
    """
    sample = [r for r in records[:_SNIFF_LIMIT] if isinstance(r, dict)]
    for fmt, predicate in _SNIFFERS:
        if any(predicate(r) for r in sample):
            return fmt
    return TranscriptFormat.CHAT


# ── Message and block builders ────────────────────────────────────────────────

def _message(
    role: str,
    content: Any,
    timestamp: Any = None,
    meta: Optional[Dict[str, Any]] = None,
    **fields: Any,
) -> Message:
    body: Dict[str, Any] = {"role": role, "content": content}
    for key, value in fields.items():
        if value is not None:
            body[key] = value
    out: Message = {"type": "message"}
    iso = to_iso(timestamp)
    if iso is not None:
        out["timestamp"] = iso
    out["message"] = body
    if meta:
        out.update(meta)
    return out


def _tool_result(
    call_id: Any,
    content: List[Dict[str, Any]],
    timestamp: Any = None,
    *,
    is_error: Any = None,
    name: Optional[str] = None,
    meta: Optional[Dict[str, Any]] = None,
) -> Message:
    return _message(
        "toolResult",
        content,
        timestamp,
        meta,
        toolCallId=call_id if isinstance(call_id, str) else None,
        toolName=name or None,
        isError=bool(is_error) if is_error is not None else None,
    )


def _text(text: Any) -> Dict[str, Any]:
    return {"type": "text", "text": text if isinstance(text, str) else _stringify(text)}


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


def _tool_input(raw: Any) -> Dict[str, Any]:
    """Tool arguments as a mapping; anything unparseable is kept as raw text."""
    if isinstance(raw, dict):
        return raw
    if raw is None or raw == "":
        return {}
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except ValueError:
            return {"raw": raw}
        return parsed if isinstance(parsed, dict) else {"raw": raw}
    return {"raw": _stringify(raw)}


def _tool_use(call_id: Any, name: Any, raw_input: Any) -> Dict[str, Any]:
    return {
        "type": "tool_use",
        "id": call_id if isinstance(call_id, str) else _stringify(call_id),
        "name": name if isinstance(name, str) and name else "tool",
        "input": _tool_input(raw_input),
    }


def _convert_block(block: Any) -> Optional[Dict[str, Any]]:
    """Map one provider content block onto a canonical block.

    Unknown shapes degrade to their JSON text rather than being dropped.
    """
    if block is None:
        return None
    if isinstance(block, str):
        return _text(block)
    if not isinstance(block, dict):
        return _text(_stringify(block))

    btype = block.get("type")
    if btype == "text":
        return _text(block.get("text") or "")
    if btype in ("input_text", "output_text"):
        return _text(block.get("text") or "")
    if btype == "thinking":
        return {"type": "thinking", "thinking": block.get("thinking") or block.get("text") or ""}
    if btype == "think":
        return {"type": "thinking", "thinking": block.get("think") or block.get("text") or ""}
    if btype == "redacted_thinking":
        return {"type": "thinking", "thinking": "[redacted]"}
    if btype in ("tool_use", "toolCall"):
        raw_input = block["input"] if "input" in block else block.get("arguments")
        return _tool_use(block.get("id") or block.get("toolCallId"), block.get("name"), raw_input)
    if btype == "refusal":
        return _text(f"[refusal: {block.get('refusal') or ''}]")
    if btype in ("image", "input_image", "image_url", "imageUrl"):
        return _text("[image]")
    if isinstance(block.get("text"), str):
        return _text(block["text"])
    return _text(_stringify(block))


def _convert_content(content: Any, timestamp: Any = None) -> Tuple[List[Dict[str, Any]], List[Message]]:
    """Split message content into display blocks and separate tool results."""
    if content is None:
        return [], []
    if isinstance(content, str):
        return [_text(content)], []
    if not isinstance(content, list):
        return [_text(_stringify(content))], []

    blocks: List[Dict[str, Any]] = []
    results: List[Message] = []
    for item in content:
        if isinstance(item, dict) and item.get("type") == "tool_result":
            results.append(_tool_result(
                item.get("tool_use_id"),
                _result_content(item.get("content")),
                timestamp,
                is_error=item.get("is_error"),
            ))
            continue
        converted = _convert_block(item)
        if converted is not None:
            blocks.append(converted)
    return blocks, results


def _result_content(content: Any) -> List[Dict[str, Any]]:
    if isinstance(content, list):
        blocks, _ = _convert_content(content)
        return blocks
    return [_text(_stringify(content))]


def _with_results(
    role: str,
    blocks: List[Dict[str, Any]],
    results: List[Message],
    timestamp: Any,
    meta: Optional[Dict[str, Any]] = None,
) -> Normalized:
    """Emit the textual part first (when non-empty), then each tool result."""
    if not results:
        return _message(role, blocks, timestamp, meta)
    out: List[Message] = []
    if blocks:
        out.append(_message(role, blocks, timestamp, meta))
    for result in results:
        if meta:
            result.update(meta)
        out.append(result)
    return out[0] if len(out) == 1 else out


def _non_empty(blocks: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [b for b in blocks if not (b.get("type") == "text" and not b.get("text", "").strip())]


# ── Per-format normalizers ────────────────────────────────────────────────────

def normalize_claude_entry(rec: ClaudeRecord) -> Normalized:
    """Claude Code: {type: user|assistant, message: {role, content}}."""
    if rec.type not in _TURN_TYPES:
        return None
    role = rec.message.get("role") or rec.type
    if role not in _TURN_TYPES:
        return None

    meta: Dict[str, Any] = {}
    if rec.team_name:
        meta["teamName"] = rec.team_name
    if rec.is_sidechain:
        meta["isSidechain"] = True

    blocks, results = _convert_content(rec.message.get("content"), rec.timestamp)
    return _with_results(role, blocks, results, rec.timestamp, meta)


def normalize_codex_entry(rec: CodexRecord) -> Normalized:
    """Codex rollout: only response_item payloads are conversational."""
    if rec.type != "response_item":
        return None
    p = rec.payload
    ptype = p.get("type") or "message"
    ts = rec.timestamp

    if ptype == "message":
        role = p.get("role")
        if role not in _TURN_TYPES:
            # developer/system prompts are internal
            return None
        blocks, _ = _convert_content(p.get("content") or [])
        return _message(role, blocks, ts)

    if ptype in ("function_call", "custom_tool_call"):
        raw = p.get("arguments") if ptype == "function_call" else p.get("input")
        return _message(
            "assistant",
            [_tool_use(p.get("call_id") or p.get("id"), p.get("name") or "function", raw)],
            ts,
        )

    if ptype in ("function_call_output", "custom_tool_call_output"):
        return _tool_result(p.get("call_id"), [_text(_stringify(p.get("output")))], ts)

    if ptype == "reasoning":
        summary = p.get("summary")
        if not isinstance(summary, list) or not summary:
            return None
        text = "\n".join(s.get("text") or "" for s in summary if isinstance(s, dict))
        return _message("assistant", [{"type": "thinking", "thinking": text}], ts)

    return None


def normalize_copilot_entry(rec: CopilotRecord) -> Normalized:
    """GitHub Copilot CLI event stream."""
    d = rec.data
    ts = rec.timestamp

    if rec.type == "user.message":
        return _message("user", [_text(_stringify(d.get("content")))], ts)

    if rec.type == "assistant.message":
        blocks: List[Dict[str, Any]] = []
        content = d.get("content")
        if isinstance(content, str) and content.strip():
            blocks.append(_text(content))
        for req in d.get("toolRequests") or []:
            if isinstance(req, dict):
                blocks.append(_tool_use(req.get("toolCallId"), req.get("name"), req.get("arguments")))
        return _message("assistant", blocks, ts) if blocks else None

    if rec.type == "assistant.reasoning":
        text = d.get("content")
        if not text:
            return None
        return _message("assistant", [{"type": "thinking", "thinking": _stringify(text)}], ts)

    if rec.type == "tool.execution_complete":
        result = d.get("result")
        output = result.get("content") if isinstance(result, dict) else result
        return _tool_result(
            d.get("toolCallId"),
            [_text(_stringify(output))],
            ts,
            is_error=not d.get("success", True),
        )

    return None


def normalize_kimi_entry(rec: KimiRecord) -> Normalized:
    """Kimi wrapped entries: content is a string or [{type: think|text}]."""
    if rec.role not in _TURN_TYPES:
        return None
    blocks, _ = _convert_content(rec.content)
    blocks = _non_empty(blocks)
    if not blocks:
        return None
    return _message(rec.role, blocks, rec.timestamp)


def normalize_kimi_context_entry(rec: KimiContextRecord) -> Normalized:
    """Kimi context.jsonl: bare {role, content} lines, OpenAI-style tool calls."""
    role = rec.role
    if not role or role.startswith("_"):
        return None

    if role == "tool":
        blocks, _ = _convert_content(rec.content)
        return _tool_result(rec.tool_call_id, blocks or [_text("")], rec.timestamp)

    if role not in _TURN_TYPES:
        return None

    blocks, _ = _convert_content(rec.content)
    blocks = _non_empty(blocks)
    if role == "assistant":
        for call in rec.tool_calls:
            fn = call.get("function") if isinstance(call.get("function"), dict) else {}
            blocks.append(_tool_use(call.get("id"), fn.get("name"), fn.get("arguments")))
    if not blocks:
        return None
    return _message(role, blocks, rec.timestamp)


def normalize_kova_entry(rec: KovaRecord) -> Normalized:
    """OpenClaw: {type: message, message: {role: user|assistant|toolResult}}."""
    if rec.type != "message":
        return None
    msg = rec.message
    role = msg.get("role")

    if role == "toolResult":
        blocks, _ = _convert_content(msg.get("content"))
        return _tool_result(
            msg.get("toolCallId"),
            blocks,
            rec.timestamp,
            is_error=msg.get("isError"),
            name=msg.get("toolName"),
        )

    if role not in _TURN_TYPES:
        return None
    blocks, results = _convert_content(msg.get("content"), rec.timestamp)
    return _with_results(role, blocks, results, rec.timestamp)


def normalize_chat_entry(rec: ChatRecord) -> Normalized:
    """Plain role/content messages (copilot-style JSONL, factory, opencode, continue, aider)."""
    if rec.role == "tool":
        blocks, _ = _convert_content(rec.content)
        return _tool_result(rec.tool_call_id, blocks or [_text("")], rec.timestamp)

    role = _CHAT_ROLES.get(rec.role)
    if role is None or rec.content is None:
        return None
    blocks, results = _convert_content(rec.content, rec.timestamp)
    return _with_results(role, blocks, results, rec.timestamp)


def normalize_gemini_entry(rec: GeminiRecord) -> Normalized:
    """Gemini CLI chat message: user | gemini, with thoughts and toolCalls."""
    ts = rec.timestamp
    if rec.type == "user":
        blocks, _ = _convert_content(rec.content)
        blocks = _non_empty(blocks)
        return _message("user", blocks, ts) if blocks else None

    if rec.type not in ("gemini", "model", "assistant"):
        return None

    blocks: List[Dict[str, Any]] = []
    for thought in rec.thoughts:
        subject = thought.get("subject") or ""
        description = thought.get("description") or ""
        text = f"{subject}: {description}" if subject and description else subject or description
        if text:
            blocks.append({"type": "thinking", "thinking": text})

    text_blocks, _ = _convert_content(rec.content)
    blocks.extend(_non_empty(text_blocks))

    results: List[Message] = []
    for call in rec.tool_calls:
        call_id = call.get("id")
        blocks.append(_tool_use(call_id, call.get("name"), call.get("args")))
        output = _gemini_tool_output(call)
        if output is not None:
            results.append(_tool_result(
                call_id,
                [_text(output)],
                call.get("timestamp") or ts,
                is_error=call.get("status") == "error",
            ))

    if not blocks:
        return None
    main = _message("assistant", blocks, ts)
    return [main] + results if results else main


def _gemini_tool_output(call: Dict[str, Any]) -> Optional[str]:
    display = call.get("resultDisplay")
    if isinstance(display, str) and display:
        return display
    result = call.get("result")
    if not result:
        return None
    parts = []
    for item in result if isinstance(result, list) else [result]:
        response = item.get("functionResponse", {}).get("response") if isinstance(item, dict) else None
        if isinstance(response, dict) and "output" in response:
            parts.append(_stringify(response["output"]))
        else:
            parts.append(_stringify(response if response is not None else item))
    return "\n".join(parts)


def _normalize_generic(rec: GenericRecord) -> Normalized:
    """Records outside the transcript's schema: best effort as plain chat."""
    data = rec.data
    msg = data.get("message") if isinstance(data.get("message"), dict) else data
    if "role" not in msg or "content" not in msg:
        return None
    chat = lift(data, TranscriptFormat.CHAT)
    if not isinstance(chat, ChatRecord):
        return None
    return normalize_chat_entry(chat)


_NORMALIZERS: Dict[TranscriptFormat, Callable[[Any], Normalized]] = {
    TranscriptFormat.CODEX: normalize_codex_entry,
    TranscriptFormat.COPILOT: normalize_copilot_entry,
    TranscriptFormat.KIMI: normalize_kimi_entry,
    TranscriptFormat.CLAUDE: normalize_claude_entry,
    TranscriptFormat.KOVA: normalize_kova_entry,
    TranscriptFormat.CHAT: normalize_chat_entry,
    TranscriptFormat.KIMI_CONTEXT: normalize_kimi_context_entry,
    TranscriptFormat.GEMINI: normalize_gemini_entry,
}


def normalize_record(data: Any, fmt: TranscriptFormat) -> Normalized:
    """Normalize one decoded record under the given transcript format."""
    rec = lift(data, fmt)
    if isinstance(rec, GenericRecord):
        return _normalize_generic(rec)
    return _NORMALIZERS[fmt](rec)


# ── Transcript-level passes ───────────────────────────────────────────────────

def normalize_entries(
    records: Sequence[Any],
    fmt: Optional[TranscriptFormat] = None,
) -> List[Message]:
    """Normalize a whole transcript and backfill tool names.

    The format is sniffed once from the leading records unless given.
    """
    fmt = fmt or sniff_format(records)
    normalized: List[Message] = []
    for data in records:
        norm = normalize_record(data, fmt)
        if norm is None:
            continue
        if isinstance(norm, list):
            normalized.extend(norm)
        else:
            normalized.append(norm)
    backfill_tool_names(normalized)
    return normalized


def backfill_tool_names(messages: List[Message]) -> List[Message]:
    """Fill toolName on tool results from the matching tool_use block.

    Results may be logged before or after their invocation, so the id map
    is built over the whole transcript first.
    """
    names: Dict[str, str] = {}
    for m in messages:
        content = m.get("message", {}).get("content")
        if not isinstance(content, list):
            continue
        for block in content:
            if (
                isinstance(block, dict)
                and block.get("type") in ("tool_use", "toolCall")
                and block.get("id")
                and block.get("name")
            ):
                names[block["id"]] = block["name"]

    for m in messages:
        msg = m.get("message", {})
        if msg.get("role") != "toolResult" or msg.get("toolName"):
            continue
        name = names.get(msg.get("toolCallId") or "")
        if name:
            msg["toolName"] = name
    return messages


def sort_chronologically(messages: List[Message]) -> List[Message]:
    """Stable sort by timestamp; messages without one sort first."""
    def _key(m: Message) -> float:
        dt = parse_timestamp(m.get("timestamp"))
        return dt.timestamp() if dt else float("-inf")

    return sorted(messages, key=_key)
