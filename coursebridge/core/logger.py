# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""coursebridge structured logging.

Component loggers live under the `coursebridge.` namespace. BridgeLogger adds
structured context fields, redaction of key material and JSON security
events (e.g. a Coordinator response whose signature does not verify).
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

# Key material that must never reach a log line
_SENSITIVE_PATTERNS = re.compile(
    r"-----BEGIN [A-Z ]*PRIVATE KEY-----[\s\S]*?-----END [A-Z ]*PRIVATE KEY-----"
    r"|-----BEGIN [A-Z ]*PRIVATE KEY-----[\s\S]*"
)

_SENSITIVE_KEYS = frozenset({
    "private_key", "private_key_pem", "privatekey", "secret", "passphrase",
    "token", "authorization", "credential",
})

# Signatures are not secret but are long and noisy; keep a short prefix.
_TRUNCATE_KEYS = frozenset({"signature", "x-signature", "x-service-signature"})


def _redact_value(key: str, value: Any) -> Any:
    """Redact sensitive values in log context."""
    if isinstance(value, str):
        if key.lower() in _SENSITIVE_KEYS:
            return "[REDACTED]"
        if key.lower() in _TRUNCATE_KEYS and len(value) > 20:
            return value[:20] + "..."
        if _SENSITIVE_PATTERNS.search(value):
            return _SENSITIVE_PATTERNS.sub("[REDACTED]", value)
    return value


def configure_logging(level: str = "INFO") -> None:
    """Root logging setup for entry points (CLI, application wiring)."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


class BridgeLogger:
    """Structured logger for messaging and trust events.

    Wraps Python logging with key=value context, redaction and
    security-event JSON lines.
    """

    def __init__(
        self,
        name: str = "coursebridge",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        max_bytes: int = 10 * 1024 * 1024,  # 10 MB
        backup_count: int = 5,
    ) -> None:
        """Initialize the logger.

        Args:
            name: Component identifier, logged as `coursebridge.<name>`.
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            log_dir: Directory for log files. If None, records only propagate
                to the handlers configured by the application.
            max_bytes: Max size per log file before rotation (default 10 MB).
            backup_count: Number of rotated log files to keep (default 5).
        """
        self._name = name
        self._logger = logging.getLogger(f"coursebridge.{name}")
        self._logger.setLevel(getattr(logging, level.upper(), logging.INFO))
        self._security_file_handler: Optional[logging.Handler] = None

        if log_dir:
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)
            fmt = logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
            if not any(isinstance(h, RotatingFileHandler) for h in self._logger.handlers):
                file_handler = RotatingFileHandler(
                    log_dir / f"coursebridge-{name}.log",
                    maxBytes=max_bytes,
                    backupCount=backup_count,
                    encoding="utf-8",
                )
                file_handler.setFormatter(fmt)
                self._logger.addHandler(file_handler)

            self._security_file_handler = RotatingFileHandler(
                log_dir / "security_events.jsonl",
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            self._security_file_handler.setFormatter(logging.Formatter("%(message)s"))
            self._security_file_handler.setLevel(logging.WARNING)

    @property
    def name(self) -> str:
        return self._logger.name

    def debug(self, message: str, **context: Any) -> None:
        self._log(logging.DEBUG, message, context)

    def info(self, message: str, **context: Any) -> None:
        """Log an informational message with structured context fields."""
        self._log(logging.INFO, message, context)

    def warning(self, message: str, **context: Any) -> None:
        """Log a warning message with structured context fields."""
        self._log(logging.WARNING, message, context)

    def error(self, message: str, **context: Any) -> None:
        """Log an error message with structured context fields."""
        self._log(logging.ERROR, message, context)

    def security_event(self, event_type: str, severity: str, details: dict[str, Any]) -> None:
        """Log a structured security event.

        Args:
            event_type: Type of event (e.g. 'response_signature_mismatch',
                'unsigned_request').
            severity: Severity level (low, medium, high, critical).
            details: Event-specific detail fields.
        """
        safe_details = {k: _redact_value(k, v) for k, v in details.items()}

        event = {
            "event_id": str(uuid.uuid4()),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "component": self._name,
            "event_type": event_type,
            "severity": severity.upper(),
            **safe_details,
        }
        level = {
            "low": logging.INFO,
            "medium": logging.WARNING,
            "high": logging.ERROR,
            "critical": logging.CRITICAL,
        }.get(severity.lower(), logging.WARNING)

        json_line = json.dumps(event, ensure_ascii=False, default=str)
        self._logger.log(level, json_line)

        if self._security_file_handler:
            record = logging.LogRecord(
                name="security", level=level, pathname="", lineno=0,
                msg=json_line, args=(), exc_info=None,
            )
            self._security_file_handler.emit(record)

    def _log(self, level: int, message: str, context: dict[str, Any]) -> None:
        """Append structured context with redaction."""
        if context:
            safe_ctx = {k: _redact_value(k, v) for k, v in context.items()}
            ctx_str = " ".join(f"{k}={v!r}" for k, v in safe_ctx.items())
            self._logger.log(level, "%s | %s", message, ctx_str)
        else:
            self._logger.log(level, message)
