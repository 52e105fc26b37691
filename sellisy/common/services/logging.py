import json
import os
import sys
from datetime import datetime, timezone


_LEVELS = {"debug": 10, "info": 20, "warning": 30, "error": 40}
_min_level = _LEVELS.get(os.getenv("LOG_LEVEL", "INFO").lower(), 20)


def set_log_level(level: str) -> None:
    global _min_level
    _min_level = _LEVELS.get((level or "info").lower(), 20)


def log_event(level: str, event: str, **fields) -> None:
    level = level.lower()
    if _LEVELS.get(level, 20) < _min_level:
        return
    payload = {
        "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "level": level,
        "event": event,
    }
    payload.update(fields or {})
    try:
        sys.stdout.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")
    except (OSError, ValueError):
        # stdout closed or unwritable; logging must not break the request
        pass
