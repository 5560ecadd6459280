"""
Session discovery — find every provider's transcripts on disk.

Each provider has a scanner that walks its sessions root, picks candidate
files, derives a stable session id and builds a SessionDescriptor from
the transcript's records. A missing root yields no sessions; a file that
cannot be read or parsed is skipped without stopping the scan.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union

from ..core.models import Provider, SessionDescriptor
from .normalizers import sniff_format
from .preview import (
    PREVIEW_CHARS,
    count_messages,
    extract_preview,
    last_updated_ms,
    record_timestamp,
    started_at_ms,
)
from .reader import read_json, read_records, read_text
from .records import TranscriptFormat
from .teams import build_team_windows, resolve_team
from .timestamps import file_mtime_ms, to_epoch_ms

logger = logging.getLogger(__name__)

Transcript = Tuple[List[Any], TranscriptFormat]

_SKIP_SUFFIXES = (".lock", ".bak")

# Providers whose record schema is known up front; the rest are sniffed
_FIXED_FORMATS = {
    Provider.KOVA: TranscriptFormat.KOVA,
    Provider.CLAUDE: TranscriptFormat.CLAUDE,
    Provider.CODEX: TranscriptFormat.CODEX,
    Provider.GEMINI: TranscriptFormat.GEMINI,
    Provider.AIDER: TranscriptFormat.CHAT,
    Provider.CONTINUE: TranscriptFormat.CHAT,
}


def scan_provider(provider: Provider, root: Union[str, Path]) -> List[SessionDescriptor]:
    """Discover all sessions of one provider under ``root``."""
    root = Path(root).expanduser()
    if not root.exists():
        logger.debug(f"No {provider.value} sessions: {root} does not exist")
        return []
    return SCANNERS[provider](root)


def locate_session(provider: Provider, root: Union[str, Path], session_id: str) -> Optional[Path]:
    """Path of the file owning ``session_id``.

    Walks the same candidates with the same id rule as the scanner, without
    building descriptors.
    """
    root = Path(root).expanduser()
    if not root.exists():
        return None
    for sid, path in SESSION_IDS[provider](root):
        if sid == session_id:
            return path
    return None


def load_session(provider: Provider, root: Union[str, Path], session_id: str) -> Optional[Transcript]:
    """Re-read one session's raw records and the format to normalize them with."""
    path = locate_session(provider, root, session_id)
    if path is None:
        return None
    if provider == Provider.AIDER:
        for block in _aider_blocks(path):
            if block.session_id == session_id:
                return block.records, TranscriptFormat.CHAT
        return None
    return _read_transcript(provider, path)


def _read_transcript(provider: Provider, path: Path) -> Transcript:
    if provider == Provider.GEMINI or provider == Provider.CONTINUE:
        records = _json_messages(read_json(path))
    else:
        records = read_records(path)
    fmt = _FIXED_FORMATS.get(provider) or sniff_format(records)
    return records, fmt


# ── Walk helpers ──────────────────────────────────────────────────────────────

def _safe_iterdir(path: Path) -> List[Path]:
    """Sorted directory entries, empty if the directory cannot be listed."""
    try:
        return sorted(path.iterdir(), key=lambda p: p.name)
    except OSError as e:
        logger.debug(f"Cannot list {path}: {e}")
        return []


def _is_candidate(path: Path, suffix: str) -> bool:
    name = path.name
    return name.endswith(suffix) and not name.endswith(_SKIP_SUFFIXES)


def _walk(root: Path, predicate: Callable[[Path], bool]) -> Iterator[Path]:
    """Depth-first walk in sorted order, yielding files that match."""
    for entry in _safe_iterdir(root):
        if entry.is_dir():
            yield from _walk(entry, predicate)
        elif entry.is_file() and predicate(entry):
            yield entry


def _describe(
    provider: Provider,
    path: Path,
    session_id: str,
    records: List[Any],
    fmt: TranscriptFormat,
    *,
    updated: Any = None,
    **extras: Any,
) -> SessionDescriptor:
    """Descriptor with the metadata every provider derives the same way."""
    desc = SessionDescriptor(
        session_id=session_id,
        provider=provider,
        file_path=str(path),
        key=session_id,
        last_updated=last_updated_ms(path, updated),
        started_at=started_at_ms(records, fmt),
        message_count=count_messages(records, fmt),
        preview=extract_preview(records, fmt, PREVIEW_CHARS),
    )
    for attr, value in extras.items():
        setattr(desc, attr, value)
    return desc


def _home_label(path: Optional[str]) -> Optional[str]:
    """Shorten a home-directory path to ``~/...``."""
    if not path:
        return None
    m = re.match(r"^/(?:home|Users)/[^/]+(/.*)?$", path)
    if m:
        return "~" + (m.group(1) or "")
    return path


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _first_value(records: List[Any], key: str) -> Any:
    for r in records:
        if isinstance(r, dict) and r.get(key) not in (None, ""):
            return r[key]
    return None


def _json_messages(data: Any) -> List[Any]:
    """Messages of a whole-file JSON session: a list, or {messages}/{history}."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in ("messages", "history"):
            if isinstance(data.get(key), list):
                return data[key]
    return []


# ── kova (OpenClaw) ───────────────────────────────────────────────────────────

def _kova_variants(root: Path) -> Dict[str, Tuple[Path, bool, bool]]:
    """Session id -> (path, is_deleted, is_reset) for a flat kova directory.

    ``<id>.jsonl.deleted.<ts>`` and ``<id>.jsonl.reset.<ts>`` mark a
    deleted or reset transcript. The active file wins over variants,
    otherwise the last variant in sorted order does.
    """
    variants: Dict[str, Tuple[Path, bool, bool]] = {}
    for entry in _safe_iterdir(root):
        name = entry.name
        if not entry.is_file() or name.endswith(_SKIP_SUFFIXES):
            continue
        if not (name.endswith(".jsonl") or ".jsonl." in name):
            continue
        sid = name.split(".jsonl")[0]
        if sid in variants and not (variants[sid][1] or variants[sid][2]):
            continue
        variants[sid] = (entry, ".deleted." in name, ".reset." in name)
    return variants


def _kova_ids(root: Path) -> Iterator[Tuple[str, Path]]:
    for sid, (path, _, _) in _kova_variants(root).items():
        yield sid, path


def _scan_kova(root: Path) -> List[SessionDescriptor]:
    """Flat directory of ``<id>.jsonl`` files plus lifecycle variants,
    enriched from the ``sessions.json`` key index."""
    index = read_json(root / "sessions.json")
    if not isinstance(index, dict):
        index = {}

    id_to_key: Dict[str, str] = {}
    id_to_meta: Dict[str, Dict[str, Any]] = {}
    key_to_id: Dict[str, str] = {}
    for key, meta in index.items():
        if not isinstance(meta, dict):
            continue
        sid = meta.get("sessionId") or ""
        if sid:
            id_to_key[sid] = key
            id_to_meta[sid] = meta
            key_to_id[key] = sid

    sessions = []
    for sid, (path, is_deleted, is_reset) in _kova_variants(root).items():
        records = read_records(path)
        key = id_to_key.get(sid, "")
        meta = id_to_meta.get(sid, {})
        spawned_by = meta.get("spawnedBy")
        sessions.append(_describe(
            Provider.KOVA, path, sid, records, TranscriptFormat.KOVA,
            updated=meta.get("updatedAt"),
            key=key,
            label=meta.get("label") or meta.get("displayName") or None,
            is_active=not is_deleted and not is_reset,
            is_deleted=is_deleted,
            is_subagent="subagent" in key or ":sub:" in key,
            parent_session_id=key_to_id.get(spawned_by) if isinstance(spawned_by, str) else None,
            model=meta.get("model") or None,
            channel=meta.get("lastChannel") or None,
            chat_type=meta.get("chatType") or None,
            compaction_count=_as_int(meta.get("compactionCount")),
        ))

    _mark_parents(sessions)
    return sessions


def _mark_parents(sessions: List[SessionDescriptor]) -> None:
    """Flag every session that at least one other session names as parent."""
    parents = {d.parent_session_id for d in sessions if d.parent_session_id}
    for desc in sessions:
        if desc.session_id in parents:
            desc.has_subagents = True


# ── claude (Claude Code) ──────────────────────────────────────────────────────

def _claude_files(root: Path) -> Iterator[Tuple[Path, Path, Optional[str]]]:
    """(project dir, transcript, subagent-dir parent id) for every candidate.

    Children live in ``<project>/<parentId>/subagents/*.jsonl``; older
    versions wrote them beside the parent as ``agent-*.jsonl``, and those
    yield ``None`` here since their parent id is inside the file.
    """
    for project_dir in _safe_iterdir(root):
        if not project_dir.is_dir():
            continue
        for entry in _safe_iterdir(project_dir):
            if entry.is_file() and _is_candidate(entry, ".jsonl"):
                yield project_dir, entry, None
            elif entry.is_dir():
                for child in _safe_iterdir(entry / "subagents"):
                    if child.is_file() and _is_candidate(child, ".jsonl"):
                        yield project_dir, child, entry.name


def _claude_ids(root: Path) -> Iterator[Tuple[str, Path]]:
    for _, path, _ in _claude_files(root):
        yield path.stem, path


def _scan_claude(root: Path) -> List[SessionDescriptor]:
    """Project directories holding ``<id>.jsonl`` transcripts and their subagents."""
    sessions: List[SessionDescriptor] = []
    parent_records: Dict[str, List[Any]] = {}
    children: List[Tuple[SessionDescriptor, List[Any]]] = []
    project_paths: Dict[str, Optional[str]] = {}

    for project_dir, path, parent_id in _claude_files(root):
        if project_dir.name not in project_paths:
            project_paths[project_dir.name] = _claude_project_path(project_dir.name)
        records = read_records(path)
        if parent_id is None and path.stem.startswith("agent-"):
            parent_id = _first_value(records, "sessionId")
            if parent_id == path.stem:
                parent_id = None
        desc = _describe_claude(path, records, project_paths[project_dir.name], project_dir.name, parent_id)
        sessions.append(desc)
        if parent_id:
            children.append((desc, records))
        else:
            parent_records[desc.session_id] = records

    # Children inherit the team their parent held when they were spawned
    windows: Dict[str, list] = {}
    for desc, records in children:
        if desc.team_name or desc.parent_session_id not in parent_records:
            continue
        parent = desc.parent_session_id
        if parent not in windows:
            windows[parent] = build_team_windows(parent_records[parent])
        first_ts = next((record_timestamp(r) for r in records if record_timestamp(r)), None)
        desc.team_name = resolve_team(windows[parent], first_ts)

    _mark_parents(sessions)
    return sessions


def _describe_claude(
    path: Path,
    records: List[Any],
    project_path: Optional[str],
    dir_name: str,
    parent_id: Optional[str],
) -> SessionDescriptor:
    sid = path.stem
    cwd = _first_value(records, "cwd") or project_path
    project = _home_label(cwd) or dir_name

    title = None
    model = None
    for r in records:
        if r.get("type") == "summary" and r.get("summary"):
            title = r["summary"]
        elif r.get("type") == "assistant":
            msg = r.get("message")
            if isinstance(msg, dict) and msg.get("model"):
                model = msg["model"]

    first = next((r for r in records if "isSidechain" in r), None)
    is_subagent = parent_id is not None
    return _describe(
        Provider.CLAUDE, path, sid, records, TranscriptFormat.CLAUDE,
        key=project + ("/" + sid[:8] if is_subagent else ""),
        label="↳ subagent " + sid[:8] if is_subagent else project,
        title=title,
        is_subagent=is_subagent,
        parent_session_id=parent_id,
        model=model,
        cwd=cwd,
        team_name=_first_value(records, "teamName"),
        is_sidechain=bool(first["isSidechain"]) if first is not None else None,
        channel="claude-code",
        chat_type="direct",
    )


def _claude_project_path(dirname: str) -> Optional[str]:
    """Best-effort working directory for a project dir like ``-home-ana-my-app``.

    Both ``/`` and a hidden directory's leading ``.`` are written as ``-``,
    so ``--`` is read as ``/.``. Each remaining dash is resolved against the
    filesystem, taking the longest run of pieces that names an existing
    directory and reading the dash as ``/`` otherwise.
    """
    if not dirname.startswith("-"):
        return None
    pieces = dirname[1:].replace("--", "-.").split("-")

    base = Path("/")
    i = 0
    while i < len(pieces):
        end = i + 1
        for j in range(len(pieces), i + 1, -1):
            if (base / "-".join(pieces[i:j])).exists():
                end = j
                break
        base = base / "-".join(pieces[i:end])
        i = end
    return str(base)


# ── codex ─────────────────────────────────────────────────────────────────────

def _codex_files(root: Path) -> Iterator[Path]:
    return _walk(root, lambda p: p.name.startswith("rollout-") and _is_candidate(p, ".jsonl"))


def _codex_meta(records: List[Any]) -> Dict[str, Any]:
    """Payload of the first ``session_meta`` record."""
    for r in records:
        payload = r.get("payload")
        if r.get("type") == "session_meta" and isinstance(payload, dict):
            return payload
    return {}


def _codex_ids(root: Path) -> Iterator[Tuple[str, Path]]:
    for path in _codex_files(root):
        yield _codex_meta(read_records(path)).get("id") or path.stem, path


def _scan_codex(root: Path) -> List[SessionDescriptor]:
    sessions = []
    for path in _codex_files(root):
        records = read_records(path)
        meta = _codex_meta(records)
        model = None
        for r in records:
            payload = r.get("payload")
            if r.get("type") == "turn_context" and isinstance(payload, dict) and payload.get("model"):
                model = payload["model"]

        cwd = meta.get("cwd") or ""
        label = Path(cwd).name if cwd else path.stem[:16]
        model_provider = meta.get("model_provider") or "openai"
        sessions.append(_describe(
            Provider.CODEX, path, meta.get("id") or path.stem, records, TranscriptFormat.CODEX,
            key=label,
            label=label,
            model=model or model_provider,
            cwd=cwd or None,
            channel=f"codex/{model_provider}",
            chat_type="direct",
        ))
    return sessions


# ── kimi ──────────────────────────────────────────────────────────────────────

def _kimi_files(directory: Path) -> Iterator[Tuple[str, Path]]:
    """``<session>/context.jsonl`` directories, or loose ``<id>.jsonl`` files."""
    context = directory / "context.jsonl"
    if context.is_file():
        yield directory.name, context
        return
    for entry in _safe_iterdir(directory):
        if entry.is_dir():
            yield from _kimi_files(entry)
        elif entry.is_file() and _is_candidate(entry, ".jsonl"):
            yield entry.stem, entry


def _scan_kimi(root: Path) -> List[SessionDescriptor]:
    sessions = []
    for sid, path in _kimi_files(root):
        records, fmt = _read_transcript(Provider.KIMI, path)
        sessions.append(_describe(Provider.KIMI, path, sid, records, fmt))
    return sessions


# ── gemini / continue (whole-file JSON) ───────────────────────────────────────

def _gemini_files(root: Path) -> Iterator[Tuple[str, Path, Dict[str, Any]]]:
    for path in _walk(root, lambda p: p.parent.name == "chats" and _is_candidate(p, ".json")):
        data = read_json(path)
        if not isinstance(data, dict):
            logger.debug(f"Skipping gemini session {path}: not a session object")
            continue
        yield data.get("sessionId") or path.stem, path, data


def _scan_gemini(root: Path) -> List[SessionDescriptor]:
    sessions = []
    for sid, path, data in _gemini_files(root):
        records = _json_messages(data)
        desc = _describe(
            Provider.GEMINI, path, sid, records, TranscriptFormat.GEMINI,
            updated=data.get("lastUpdated"),
        )
        if desc.started_at is None:
            desc.started_at = to_epoch_ms(data.get("startTime"))
        sessions.append(desc)
    return sessions


def _continue_files(root: Path) -> Iterator[Tuple[str, Path, Any]]:
    for path in _safe_iterdir(root):
        if not (path.is_file() and _is_candidate(path, ".json")) or path.name == "sessions.json":
            continue
        data = read_json(path)
        if data is None:
            continue
        info = data if isinstance(data, dict) else {}
        yield info.get("sessionId") or path.stem, path, data


def _scan_continue(root: Path) -> List[SessionDescriptor]:
    sessions = []
    for sid, path, data in _continue_files(root):
        info = data if isinstance(data, dict) else {}
        sessions.append(_describe(
            Provider.CONTINUE, path, sid, _json_messages(data), TranscriptFormat.CHAT,
            title=info.get("title") or None,
            cwd=info.get("workspaceDirectory") or None,
        ))
    return sessions


def _whole_file_ids(
    files: Callable[[Path], Iterator[Tuple[str, Path, Any]]],
) -> Callable[[Path], Iterator[Tuple[str, Path]]]:
    def ids(root: Path) -> Iterator[Tuple[str, Path]]:
        for sid, path, _ in files(root):
            yield sid, path
    return ids


# ── copilot / factory / opencode (event JSONL trees) ──────────────────────────

def _copilot_start(records: List[Any]) -> Dict[str, Any]:
    """``data`` of the ``session.start`` event."""
    start = next((r for r in records if r.get("type") == "session.start"), None)
    return start.get("data") if start and isinstance(start.get("data"), dict) else {}


def _copilot_id(path: Path, data: Dict[str, Any]) -> str:
    if data.get("sessionId"):
        return data["sessionId"]
    return path.parent.name if path.name == "events.jsonl" else path.stem


def _copilot_ids(root: Path) -> Iterator[Tuple[str, Path]]:
    for path in _walk(root, lambda p: _is_candidate(p, ".jsonl")):
        yield _copilot_id(path, _copilot_start(read_records(path))), path


def _scan_copilot(root: Path) -> List[SessionDescriptor]:
    sessions = []
    for path in _walk(root, lambda p: _is_candidate(p, ".jsonl")):
        records, fmt = _read_transcript(Provider.COPILOT, path)
        data = _copilot_start(records)
        context = data.get("context") if isinstance(data.get("context"), dict) else {}
        cwd = context.get("cwd") or context.get("gitRoot")
        sessions.append(_describe(
            Provider.COPILOT, path, _copilot_id(path, data), records, fmt,
            label=Path(cwd).name if cwd else None,
            model=data.get("selectedModel") or None,
            cwd=cwd or None,
        ))
    return sessions


def _session_start(records: List[Any]) -> Dict[str, Any]:
    return next((r for r in records if r.get("type") == "session_start"), {})


def _start_id(path: Path, start: Dict[str, Any]) -> str:
    return start.get("id") or start.get("sessionId") or path.stem


def _jsonl_tree_ids(root: Path) -> Iterator[Tuple[str, Path]]:
    for path in _walk(root, lambda p: _is_candidate(p, ".jsonl")):
        yield _start_id(path, _session_start(read_records(path))), path


def _jsonl_tree_scanner(provider: Provider) -> Callable[[Path], List[SessionDescriptor]]:
    """Scanner for tools writing ``*.jsonl`` files that open with a session_start record."""

    def scan(root: Path) -> List[SessionDescriptor]:
        sessions = []
        for path in _walk(root, lambda p: _is_candidate(p, ".jsonl")):
            records, fmt = _read_transcript(provider, path)
            start = _session_start(records)
            sessions.append(_describe(
                provider, path, _start_id(path, start), records, fmt,
                title=start.get("title") or None,
                cwd=start.get("cwd") or None,
            ))
        return sessions

    return scan


# ── aider ─────────────────────────────────────────────────────────────────────

_AIDER_HISTORY = ".aider.chat.history.md"
_AIDER_BANNER_RE = re.compile(r"^# aider chat started at\s*(.*)$")


class _AiderBlock:
    __slots__ = ("session_id", "started", "records")

    def __init__(self, session_id: str, started: Optional[datetime], records: List[Dict[str, Any]]):
        self.session_id = session_id
        self.started = started
        self.records = records


def _aider_blocks(path: Path) -> List[_AiderBlock]:
    """Split an aider history file into one block per ``# aider chat started at``.

    ``#### `` lines are the user's; consecutive ones form one turn. The
    rest of the block up to the next user line is the assistant reply.
    Banners sharing a timestamp get ``-2``, ``-3``... suffixes in file order.
    """
    blocks: List[_AiderBlock] = []
    seen: Dict[str, int] = {}
    lines: Optional[List[str]] = None
    started: Optional[datetime] = None

    def flush() -> None:
        if lines is None:
            return
        n = len(blocks) + 1
        sid = f"aider-{started:%Y%m%d%H%M%S}" if started else f"aider-{n}"
        seen[sid] = seen.get(sid, 0) + 1
        if seen[sid] > 1:
            sid = f"{sid}-{seen[sid]}"
        blocks.append(_AiderBlock(sid, started, _aider_turns(lines, started)))

    for line in read_text(path).splitlines():
        m = _AIDER_BANNER_RE.match(line)
        if m:
            flush()
            lines = []
            started = _parse_aider_date(m.group(1))
            continue
        if lines is not None:
            lines.append(line)
    flush()
    return blocks


def _parse_aider_date(text: str) -> Optional[datetime]:
    try:
        return datetime.strptime(text.strip(), "%Y-%m-%d %H:%M:%S")
    except ValueError:
        return None


def _aider_turns(lines: List[str], started: Optional[datetime]) -> List[Dict[str, Any]]:
    ts = started.isoformat() if started else None
    turns: List[Dict[str, Any]] = []
    role: Optional[str] = None
    buf: List[str] = []

    def emit() -> None:
        text = "\n".join(buf).strip()
        # Startup banner lines before the first user turn are not a reply
        if role == "assistant" and not turns:
            return
        if role and text:
            turn: Dict[str, Any] = {"role": role, "content": text}
            if ts:
                turn["timestamp"] = ts
            turns.append(turn)

    for line in lines:
        is_user = line.startswith("#### ")
        current = "user" if is_user else "assistant"
        if current != role:
            emit()
            role, buf = current, []
        buf.append(line[5:] if is_user else line)
    emit()
    return turns


def _aider_history(root: Path) -> Optional[Path]:
    path = root / _AIDER_HISTORY if root.is_dir() else root
    return path if path.is_file() else None


def _aider_ids(root: Path) -> Iterator[Tuple[str, Path]]:
    path = _aider_history(root)
    if path is None:
        return
    for block in _aider_blocks(path):
        yield block.session_id, path


def _scan_aider(root: Path) -> List[SessionDescriptor]:
    path = _aider_history(root)
    if path is None:
        return []

    blocks = _aider_blocks(path)
    mtime = file_mtime_ms(path)
    sessions = []
    for i, block in enumerate(blocks):
        # A block ends when the next one starts; the last is still being written
        nxt = blocks[i + 1].started if i + 1 < len(blocks) else None
        updated = to_epoch_ms(nxt.isoformat()) if nxt else mtime
        desc = _describe(
            Provider.AIDER, path, block.session_id, block.records, TranscriptFormat.CHAT,
            label=path.parent.name or None,
            cwd=str(path.parent),
        )
        desc.last_updated = updated or mtime
        sessions.append(desc)
    return sessions


SCANNERS: Dict[Provider, Callable[[Path], List[SessionDescriptor]]] = {
    Provider.KOVA: _scan_kova,
    Provider.CLAUDE: _scan_claude,
    Provider.CODEX: _scan_codex,
    Provider.KIMI: _scan_kimi,
    Provider.GEMINI: _scan_gemini,
    Provider.COPILOT: _scan_copilot,
    Provider.FACTORY: _jsonl_tree_scanner(Provider.FACTORY),
    Provider.OPENCODE: _jsonl_tree_scanner(Provider.OPENCODE),
    Provider.AIDER: _scan_aider,
    Provider.CONTINUE: _scan_continue,
}

# Provider -> (session id, path) pairs, same id rule as SCANNERS
SESSION_IDS: Dict[Provider, Callable[[Path], Iterator[Tuple[str, Path]]]] = {
    Provider.KOVA: _kova_ids,
    Provider.CLAUDE: _claude_ids,
    Provider.CODEX: _codex_ids,
    Provider.KIMI: _kimi_files,
    Provider.GEMINI: _whole_file_ids(_gemini_files),
    Provider.COPILOT: _copilot_ids,
    Provider.FACTORY: _jsonl_tree_ids,
    Provider.OPENCODE: _jsonl_tree_ids,
    Provider.AIDER: _aider_ids,
    Provider.CONTINUE: _whole_file_ids(_continue_files),
}


# Provider -> transcript file extension counted by agent detection
SESSION_EXTENSIONS = {
    Provider.GEMINI: ".json",
    Provider.CONTINUE: ".json",
    Provider.AIDER: ".md",
}


def count_session_files(root: Union[str, Path], ext: str = ".jsonl", max_depth: int = 4) -> int:
    """Count files ending in ``ext`` under ``root``, descending at most ``max_depth`` levels."""
    root = Path(root).expanduser()
    if root.is_file():
        return 1 if root.name.endswith(ext) else 0

    def _count(directory: Path, depth: int) -> int:
        if depth > max_depth:
            return 0
        total = 0
        for entry in _safe_iterdir(directory):
            if entry.is_dir():
                total += _count(entry, depth + 1)
            elif entry.name.endswith(ext):
                total += 1
        return total

    return _count(root, 0)
