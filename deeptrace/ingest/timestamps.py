"""Timestamp helpers shared by the normalizers and metadata extraction."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

# Numbers above this are epoch milliseconds, below it epoch seconds
_MS_THRESHOLD = 1e11


def parse_timestamp(ts: Any) -> Optional[datetime]:
    """Parse an ISO string or epoch number into an aware datetime."""
    if ts is None or isinstance(ts, bool):
        return None
    if isinstance(ts, (int, float)):
        if not math.isfinite(ts):
            return None
        seconds = ts / 1000.0 if ts > _MS_THRESHOLD else float(ts)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(ts, str) and ts.strip():
        try:
            dt = datetime.fromisoformat(ts.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    return None


def to_epoch_ms(ts: Any) -> Optional[int]:
    dt = parse_timestamp(ts)
    if dt is None:
        return None
    return int(dt.timestamp() * 1000)


def to_iso(ts: Any) -> Optional[str]:
    """Render a record timestamp as an ISO string.

    Strings are passed through untouched; epoch numbers become UTC ISO-8601.
    """
    if isinstance(ts, str):
        return ts or None
    dt = parse_timestamp(ts)
    if dt is None:
        return None
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def file_mtime_ms(path: Union[str, Path]) -> int:
    """File modification time in whole milliseconds, 0 if it cannot be read."""
    try:
        return Path(path).stat().st_mtime_ns // 1_000_000
    except OSError:
        return 0
