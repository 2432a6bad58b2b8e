# FILE: portrait_backend/services/telemetry.py
"""
Generation telemetry (summary-only, rotated JSONL)

- Appends one line per event to {LOGS_DIR}/telemetry/events-YYYY-MM-DD.jsonl
  (UTC date).
- Keeps a small in-memory tail and per-event counters for the debug API.
- Events never carry image payloads or prompts.
"""
from __future__ import annotations

import json
import logging
from collections import defaultdict, deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Deque, Dict

from portrait_backend.config import get_settings

logger = logging.getLogger(__name__)

_MAX_IN_MEMORY_EVENTS = 200
_recent_events: Deque[Dict[str, Any]] = deque(maxlen=_MAX_IN_MEMORY_EVENTS)
_counters: Dict[str, int] = defaultdict(int)


def _telemetry_dir() -> Path:
    d = Path(get_settings().logs_dir) / "telemetry"
    d.mkdir(parents=True, exist_ok=True)
    return d


def _event_file_path(now_utc: datetime) -> Path:
    return _telemetry_dir() / f"events-{now_utc.date().isoformat()}.jsonl"


def init_telemetry() -> None:
    """Create the telemetry directory when enabled."""
    settings = get_settings()
    if not settings.telemetry_enabled:
        logger.info("Telemetry disabled")
        return

    directory = _telemetry_dir()
    logger.info(f"Telemetry initialized (dir={directory})")


def record_event(event: str, **fields: Any) -> None:
    """Record a telemetry event. Failures are logged, never raised."""
    settings = get_settings()
    now_utc = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "ts": now_utc.isoformat(),
        "event": event,
        **fields,
    }

    _recent_events.append(payload)
    _counters[event] += 1

    if not settings.telemetry_enabled:
        return

    try:
        path = _event_file_path(now_utc)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")
    except OSError as e:
        logger.warning(f"Failed to write telemetry event {event}: {e}")


def get_telemetry_summary() -> Dict[str, Any]:
    """Lightweight in-memory summary (does not scan JSONL files)"""
    return {
        "enabled": get_settings().telemetry_enabled,
        "total_events_in_memory": len(_recent_events),
        "counters_in_memory": dict(_counters),
        "recent_events": list(_recent_events)[-10:],
    }


def reset_telemetry() -> None:
    """Clear the in-memory tail and counters"""
    _recent_events.clear()
    _counters.clear()
