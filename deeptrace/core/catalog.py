"""
Catalog — the single query surface over every provider's sessions.

Nothing is cached: each call walks the configured roots again, so
transcripts that grew since the last call are always seen in full.
"""

from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..ingest.discovery import (
    SESSION_EXTENSIONS,
    count_session_files,
    load_session,
    scan_provider,
)
from ..ingest.normalizers import normalize_entries, sort_chronologically
from ..ingest.preview import extract_text
from ..ingest.reader import read_json, read_text
from .config import PROVIDER_BINARIES, PROVIDER_NAMES, Config
from .models import AgentStatus, Provider, SearchHit, SessionDescriptor

logger = logging.getLogger(__name__)

_SNIPPET_NOISE = str.maketrans({c: " " for c in '{}"\\'})
_WS_RE = re.compile(r"\s+")


class Catalog:
    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config.load()

    # ── Listing ───────────────────────────────────────────────────────────

    def list_sessions(self, provider: Optional[Provider] = None) -> List[SessionDescriptor]:
        """All sessions (or one provider's), most recently updated first.

        Ties keep discovery order: providers in enum order, files in walk order.
        """
        roots = self.config.roots()
        if provider is not None:
            roots = {provider: roots[provider]} if provider in roots else {}

        found: List[SessionDescriptor] = []
        for prov, root in roots.items():
            try:
                found.extend(scan_provider(prov, root))
            except Exception as e:
                logger.warning(f"Scanning {prov.value} sessions under {root} failed: {e}")

        limit = self.config.preview_chars
        for desc in found:
            if len(desc.preview) > limit:
                desc.preview = desc.preview[:limit]

        return sorted(found, key=lambda d: -d.last_updated)

    # ── Messages ──────────────────────────────────────────────────────────

    def get_messages(self, session_id: str, provider: Provider) -> Optional[List[Dict[str, Any]]]:
        """Normalized transcript of one session, or None if it cannot be found."""
        root = self.config.roots().get(provider)
        if root is None:
            return None
        loaded = load_session(provider, root, session_id)
        if loaded is None:
            return None
        records, fmt = loaded
        return sort_chronologically(normalize_entries(records, fmt))

    # ── Search ────────────────────────────────────────────────────────────

    def search(self, query: str, limit: Optional[int] = None) -> List[SearchHit]:
        """
        Case-insensitive substring search across all sessions.

        Metadata (title, label, preview) is checked first; only sessions
        without a metadata hit have their raw file scanned. Results follow
        the session list order and stop at ``limit``.
        """
        if not query or not query.strip():
            return []
        limit = limit if limit is not None else self.config.search_limit
        pattern = re.compile(re.escape(query), re.IGNORECASE)

        hits: List[SearchHit] = []
        for desc in self.list_sessions():
            if len(hits) >= limit:
                break
            snippet = None
            for field in (desc.title, desc.label, desc.preview):
                if field:
                    m = pattern.search(field)
                    if m:
                        snippet = self._snippet(field, m.start(), m.end())
                        break
            if snippet is None:
                text = self._raw_text(desc)
                m = pattern.search(text)
                if m:
                    snippet = self._snippet(text, m.start(), m.end())
            if snippet is not None:
                hits.append(SearchHit(descriptor=desc, snippet=snippet))
        return hits

    def _raw_text(self, desc: SessionDescriptor) -> str:
        if desc.provider != Provider.AIDER:
            return read_text(desc.file_path)
        # One aider file holds many sessions; only this block's turns count
        loaded = load_session(Provider.AIDER, desc.file_path, desc.session_id)
        if loaded is None:
            return ""
        records, _ = loaded
        return "\n".join(extract_text(r.get("content")) for r in records)

    def _snippet(self, text: str, start: int, end: int) -> str:
        """About ``snippet_chars`` of context centred on text[start:end]."""
        width = self.config.snippet_chars
        lo = max(0, start - max(0, width - (end - start)) // 2)
        hi = min(len(text), lo + width)
        lo = max(0, hi - width)

        body = _WS_RE.sub(" ", text[lo:hi].translate(_SNIPPET_NOISE)).strip()
        if lo > 0:
            body = "…" + body
        if hi < len(text):
            body = body + "…"
        return body

    # ── Lookups ───────────────────────────────────────────────────────────

    def find_by_key(self, key: str) -> Optional[Dict[str, str]]:
        """Resolve an OpenClaw session key through its sessions.json index."""
        root = self.config.roots().get(Provider.KOVA)
        if root is None:
            return None
        index = read_json(Path(root) / "sessions.json")
        if not isinstance(index, dict):
            return None
        meta = index.get(key)
        if not isinstance(meta, dict) or not meta.get("sessionId"):
            return None
        return {"sessionId": meta["sessionId"], "key": key}

    def detect_agents(self) -> List[AgentStatus]:
        """Which tools are installed and how many transcripts each has written."""
        agents = []
        for provider in Provider:
            settings = self.config.settings(provider)

            if settings.binary_path:
                custom = Path(settings.binary_path).expanduser()
                binary = str(custom) if custom.exists() else None
            else:
                binary = next(
                    (found for name in PROVIDER_BINARIES[provider] if (found := shutil.which(name))),
                    None,
                )

            root = self.config.root(provider)
            exists = root.exists()
            agents.append(AgentStatus(
                provider=provider,
                name=PROVIDER_NAMES[provider],
                binary_path=binary,
                binary_is_custom=bool(settings.binary_path),
                sessions_dir=str(root),
                sessions_dir_exists=exists,
                sessions_dir_is_custom=bool(settings.sessions_dir),
                session_count=count_session_files(root, SESSION_EXTENSIONS.get(provider, ".jsonl")) if exists else 0,
            ))
        return agents
