# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Execution event log.

One JSON object per line, appended as each execution attempt moves through
started / rejected / completed / failed / timed_out. Script text is never
written; callers pass a hash instead.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union


def _record(
    event_type: str,
    correlation_id: str,
    status: str,
    payload: Optional[Dict[str, Any]],
    error_message: Optional[str],
) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type,
        "correlation_id": correlation_id,
        "status": status,
    }
    if payload:
        record["payload"] = payload
    if error_message:
        record["error_message"] = error_message
    return record


class EventClient:
    """Append-only JSONL log of execution attempts."""

    def __init__(self, log_path: Union[str, Path]):
        self.log_path = Path(log_path).expanduser()
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_config(cls, config: Any) -> Optional["EventClient"]:
        """Build a client from SandboxConfig, or None when logging is disabled."""
        path = config.events_log_path
        return cls(path) if path is not None else None

    def log_event(
        self,
        event_type: str,
        correlation_id: str,
        status: str,
        payload: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> None:
        """Append one event line. Values JSON cannot encode are stringified."""
        line = json.dumps(
            _record(event_type, correlation_id, status, payload, error_message),
            default=str,
        )
        with open(self.log_path, "a") as f:
            f.write(line + "\n")

    def read_events(self, correlation_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Read logged events back, optionally for one execution attempt.

        Returns:
            Events in the order they were written. Empty if the log does
            not exist yet.
        """
        if not self.log_path.exists():
            return []
        events = []
        with open(self.log_path) as f:
            for line in f:
                if not line.strip():
                    continue
                event = json.loads(line)
                if correlation_id is None or event.get("correlation_id") == correlation_id:
                    events.append(event)
        return events
