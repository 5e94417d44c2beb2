"""
Structured audit trail for sync and suggestion jobs.

Every event is one JSON line in ``<audit_log_dir>/audit.jsonl``. A logger
bound to a job repeats its context (job id, channel) on every line, so one
job can be followed with a single grep.
"""
import copy
import hashlib
import logging
import os
from typing import Any, Dict, Optional

import structlog

from ..config import settings
from ..errors import ErrorKind, SyncError

PROMPT_PREVIEW_CHARS = 100

# Failures the caller fixes by changing the request
CALLER_ERROR_KINDS = {ErrorKind.VALIDATION, ErrorKind.NOT_FOUND, ErrorKind.FORBIDDEN, ErrorKind.CANCELLED}


def prompt_fields(prompt: str) -> Dict[str, str]:
    """Hash and short preview of a model prompt. The prompt itself is never written."""
    preview = prompt[:PROMPT_PREVIEW_CHARS]
    if len(prompt) > PROMPT_PREVIEW_CHARS:
        preview += "..."
    return {
        "prompt_sha256": hashlib.sha256(prompt.encode()).hexdigest(),
        "prompt_preview": preview,
    }


def _file_logger(service_name: str, log_file: str) -> logging.Logger:
    # One handler per file, however many JobAuditLoggers point at it
    audit_logger = logging.getLogger(f"audit_logger_{service_name}_{log_file}")
    audit_logger.setLevel(logging.INFO)
    audit_logger.propagate = False

    if not audit_logger.handlers:
        handler = logging.FileHandler(log_file)
        handler.setFormatter(logging.Formatter('%(message)s'))  # JSON renderer does formatting
        audit_logger.addHandler(handler)
    return audit_logger


class JobAuditLogger:
    """
    JSONL audit logger.

    bind() returns a copy scoped to one job; the bound context is written
    next to the fields of every event it logs.
    """

    def __init__(self, service_name: str, log_dir: Optional[str] = None):
        self.service_name = service_name
        self.log_dir = log_dir or settings.audit_log_dir

        os.makedirs(self.log_dir, exist_ok=True)
        self.log_file = os.path.join(self.log_dir, "audit.jsonl")

        self._logger = structlog.wrap_logger(
            _file_logger(service_name, self.log_file),
            wrapper_class=structlog.stdlib.BoundLogger,
            processors=[
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.EventRenamer("event_type"),
                structlog.processors.JSONRenderer(),
            ],
        ).bind(service_name=service_name)

    def bind(self, **context: Any) -> "JobAuditLogger":
        """Copy of this logger with extra context. None values are left out."""
        bound = copy.copy(self)
        bound._logger = self._logger.bind(**{k: v for k, v in context.items() if v is not None})
        return bound

    def log_event(
        self,
        event_type: str,
        severity: str = "INFO",
        prompt: Optional[str] = None,
        **details: Any,
    ) -> None:
        """
        Log an audit event.

        Args:
            event_type: e.g. "SYNC_STARTED", "SUMMARY_BATCH", "SUGGESTIONS_GENERATED"
            severity: "INFO", "WARN", "CRITICAL"
            prompt: Model prompt behind the event (only hash and preview are kept)
            details: Event fields
        """
        if prompt:
            details.update(prompt_fields(prompt))
        self._logger.info(event_type, severity=severity, **details)

    def log_failure(self, event_type: str, error: SyncError, **details: Any) -> None:
        """Log a typed job failure. Caller mistakes are WARN, everything else CRITICAL."""
        severity = "WARN" if error.kind in CALLER_ERROR_KINDS else "CRITICAL"
        self.log_event(event_type, severity, kind=error.kind.value, message=error.message, **details)
