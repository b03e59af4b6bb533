"""Append-only JSONL trail of bridge lifecycle events.

Per-frame chatter goes to :mod:`logging`; this file only records listener
binds and restarts plus the final shutdown.
"""

from __future__ import annotations

import json
import os
import threading
from datetime import datetime, timezone
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[2]
LOG_DIR_ENV = "TELEMETRY_BRIDGE_LOG_DIR"


def resolve_log_dir() -> Path:
    log_dir_env = os.environ.get(LOG_DIR_ENV)
    if log_dir_env:
        candidate = Path(log_dir_env)
        if candidate.is_absolute():
            return candidate
        return REPO_ROOT / candidate
    return REPO_ROOT / "logs"


class AuditLogger:
    def __init__(self, log_dir: Path | None = None):
        log_dir = Path(log_dir) if log_dir is not None else resolve_log_dir()
        log_dir.mkdir(parents=True, exist_ok=True)
        self.log_path = log_dir / "ops_events.jsonl"
        self.operator = (
            os.environ.get("OPERATOR_ID")
            or os.environ.get("USER")
            or os.environ.get("USERNAME")
            or "unknown"
        )
        self.host = os.environ.get("HOSTNAME", "unknown_host")
        self._lock = threading.Lock()

    def write(self, action, status="info", message=None, details=None):
        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "operator": self.operator,
            "host": self.host,
            "action": action,
            "status": status,
        }
        if message:
            event["message"] = message
        if details is not None:
            event["details"] = details
        with self._lock, self.log_path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(event, ensure_ascii=False) + "\n")


class NullAuditLogger:
    """Drop-in for tests and embedded use where no trail is wanted."""

    def write(self, action, status="info", message=None, details=None):
        return None
