"""
Structured Logging Configuration Module

JSON log lines for the onboarding workflow. Context fields (identity, attempt,
phase, action) travel as record attributes set by log_action(). Credentials
and card PINs are never passed to these helpers.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Optional


CONTEXT_FIELDS = ("identity_id", "attempt_id", "phase", "action", "extra")


class JSONFormatter(logging.Formatter):
    """Render a record as one JSON object, omitting absent context fields"""

    def format(self, record):
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", logger_name: str = "bank_onboarding",
                  log_file: Optional[str] = None) -> logging.Logger:
    """
    Route a logger tree to a single JSON handler.

    Calling it again replaces the handler, so repeated setup never duplicates
    output. Logs go to stderr unless log_file is given.
    """
    logger = logging.getLogger(logger_name)
    for existing in list(logger.handlers):
        logger.removeHandler(existing)

    handler = logging.FileHandler(log_file) if log_file else logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False
    return logger


def log_action(logger: logging.Logger, level: str, message: str,
               identity_id: Optional[str] = None, action: Optional[str] = None,
               phase: Optional[str] = None, attempt_id: Optional[str] = None,
               extra: Optional[dict] = None):
    """
    Log a workflow action with structured context.

    Args:
        logger: Logger instance
        level: Level name (info, warning, error, ...)
        message: Human readable message
        identity_id: Identity the workflow runs for
        action: Machine readable action name
        phase: Workflow phase at the time of the action
        attempt_id: Onboarding attempt identifier for tracing
        extra: Additional structured data
    """
    levelno = getattr(logging, level.upper())
    if not logger.isEnabledFor(levelno):
        return

    record = logger.makeRecord(logger.name, levelno, __name__, 0, message, (), None)
    context = {
        "identity_id": identity_id,
        "attempt_id": attempt_id,
        "phase": phase,
        "action": action,
        "extra": extra,
    }
    for field, value in context.items():
        if value:
            setattr(record, field, value)
    logger.handle(record)
