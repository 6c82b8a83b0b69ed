"""Chat Engine Logging — JSON log lines carrying conversation identifiers.

Invariants:
    - Every line has timestamp (record creation time, UTC), level, logger, message
    - Conversation fields (session/message ids, storage keys, error kind,
      cancel reason, token usage) appear only when the call site passes them
    - Library loggers (SQLAlchemy engine, httpx, anthropic) stay at WARNING
      unless the app itself logs at DEBUG

Design Decisions:
    - JSONFormatter on stdlib logging: no extra dependency
    - setup_logging called once on startup via lifespan; calling it again
      replaces the handler instead of stacking a second one
"""

import json
import logging
from datetime import datetime, timezone

_CONVERSATION_FIELDS = (
    "session_id", "message_id", "storage_key", "file_count",
    "interrupted_messages", "cancel_reason",
)
_FAILURE_FIELDS = ("error_code", "error_kind", "attempt", "path")
_USAGE_FIELDS = ("prompt_tokens", "completion_tokens")

_QUIET_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "httpx", "anthropic")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, conversation fields flattened in."""

    fields = _CONVERSATION_FIELDS + _FAILURE_FIELDS + _USAGE_FIELDS

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log.update(
            (key, record.__dict__[key])
            for key in self.fields
            if record.__dict__.get(key) is not None
        )
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json") -> logging.Handler:
    """Configure root logging for the chat engine; returns the installed handler."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_chatengine", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler._chatengine = True  # type: ignore[attr-defined]
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
        ))
    root.addHandler(handler)

    app_level = getattr(logging, level.upper(), logging.INFO)
    root.setLevel(app_level)
    quiet_level = app_level if app_level <= logging.DEBUG else max(app_level, logging.WARNING)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)
    return handler
