"""
Transcript readers — decode JSONL, JSON and plain-text files from disk.

Every reader is total: unreadable files and malformed content come back
as empty values, never exceptions. Tools may still be appending to a
transcript while it is read.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Union

logger = logging.getLogger(__name__)

RawRecord = Dict[str, Any]

PathLike = Union[str, Path]


def read_jsonl(path: PathLike) -> List[Any]:
    """Read a JSONL file into the list of values decoded from its lines.

    Blank and undecodable lines are skipped; they do not affect the
    lines after them.
    """
    records: List[Any] = []
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            for raw_line in f:
                stripped = raw_line.strip()
                if not stripped:
                    continue
                try:
                    records.append(json.loads(stripped))
                except json.JSONDecodeError:
                    continue
    except OSError as e:
        logger.debug(f"Cannot read {path}: {e}")
    return records


def read_records(path: PathLike) -> List[RawRecord]:
    """Like read_jsonl, keeping only JSON objects."""
    return [r for r in read_jsonl(path) if isinstance(r, dict)]


def read_json(path: PathLike) -> Any:
    """Decode a whole-file JSON document, or None if it cannot be read."""
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        logger.debug(f"Skipping unreadable JSON {path}: {e}")
        return None


def read_text(path: PathLike) -> str:
    """Read file content as text, or an empty string on failure."""
    try:
        return Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.debug(f"Cannot read {path}: {e}")
        return ""
