"""Structured JSON logging with redaction of secrets and message content.

What:
  Offer a small facade over a text stream so every mailcli component emits one
  JSON object per line with consistent fields.

Why:
  Session diagnostics (which mailbox, how many UIDs, which THREAD algorithm)
  are useful when debugging a server, but passwords and message bodies must
  never reach a log file.

How:
  :class:`JsonLogger` builds a canonical payload (timestamp, level, event,
  component), merges a recursively redacted copy of the keyword fields, and
  writes it with :func:`json.dump`. The default stream is ``stderr`` so command
  output on ``stdout`` stays machine readable.

Interfaces:
  :class:`JsonLogger`, :func:`get_logger`.

Invariants & Safety:
  - Keys listed in :data:`SENSITIVE_KEYS` are replaced with ``[redacted]`` even
    inside nested dictionaries.
  - The stream is flushed after every entry.
"""
from __future__ import annotations

import json
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


REDACTED = "[redacted]"
SENSITIVE_KEYS = frozenset({"password", "secret", "token", "body", "html_body"})


@dataclass
class JsonLogger:
    """Structured JSON logger with automatic redaction.

    What:
      Emits single-line JSON entries tagged with a component name.

    How:
      :meth:`info`, :meth:`warning` and :meth:`error` forward to :meth:`log`
      which redacts the keyword fields before serialising.
    """

    stream: Any = field(default_factory=lambda: sys.stderr)
    component: str = "mailcli"

    def log(self, level: str, event: str, *, extra: Optional[Dict[str, Any]] = None) -> None:
        """Emit a structured JSON log entry.

        Args:
          level: Severity name (``"INFO"``, ``"WARN"``, ``"ERROR"``).
          event: Short machine-friendly event name.
          extra: Optional context that is redacted recursively.
        """

        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "lvl": level.upper(),
            "msg": event,
            "component": self.component,
        }
        if extra:
            payload.update(self._redact(extra))
        json.dump(payload, self.stream, separators=(",", ":"), default=str)
        self.stream.write("\n")
        self.stream.flush()

    def info(self, event: str, **kwargs: Any) -> None:
        self.log("INFO", event, extra=kwargs)

    def warning(self, event: str, **kwargs: Any) -> None:
        self.log("WARN", event, extra=kwargs)

    def error(self, event: str, **kwargs: Any) -> None:
        self.log("ERROR", event, extra=kwargs)

    @staticmethod
    def _redact(data: Dict[str, Any]) -> Dict[str, Any]:
        """Return a copy of ``data`` with sensitive values masked."""

        result: Dict[str, Any] = {}
        for key, value in data.items():
            if key in SENSITIVE_KEYS:
                result[key] = REDACTED
            elif isinstance(value, dict):
                result[key] = JsonLogger._redact(value)
            else:
                result[key] = value
        return result


def get_logger(component: str) -> JsonLogger:
    """Construct a :class:`JsonLogger` bound to ``component``."""

    return JsonLogger(component=component)
