"""
Audit Logger module for the DNS reconciler.

Structured entries (timestamp, level, component, message, data) written as
JSON lines, as human-readable text, or both. Directory credentials never
reach the output: credential-like keys are masked at any depth, and bearer
tokens embedded in string values are redacted.
"""

import json
import re
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, TextIO

from dns_reconciler.enums import LogLevel
from dns_reconciler.exceptions import DnsReconcilerError


OUTPUT_FORMATS = ("json", "text", "both")

BEARER_PATTERN = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/=-]+")


@dataclass
class LogEntry:
    """One structured log entry."""

    timestamp: str
    level: LogLevel
    component: str
    message: str
    data: dict = field(default_factory=dict)


class AuditLogger:
    """
    Structured logger shared by the resolver, adapter, watcher and stores.

    Entries below the configured level are dropped before they are kept or
    written. Kept entries are available through `entries` for inspection.
    """

    # Substrings that mark a data key as a credential
    SENSITIVE_KEYS = frozenset({
        'token', 'secret', 'password', 'api_key', 'auth', 'bearer', 'credential',
    })

    MASK_VALUE = "***MASKED***"

    def __init__(
        self,
        output_format: str = "text",
        output_stream: Optional[TextIO] = None,
        level: LogLevel = LogLevel.INFO,
    ):
        """
        Args:
            output_format: 'json', 'text' or 'both'
            output_stream: Destination stream (defaults to sys.stderr)
            level: Minimum severity that is recorded
        """
        if output_format not in OUTPUT_FORMATS:
            raise ValueError(f"Invalid output_format: {output_format}")

        self._output_format = output_format
        self._output_stream = output_stream or sys.stderr
        self._level = level
        self._entries: list[LogEntry] = []

    @property
    def output_format(self) -> str:
        return self._output_format

    @property
    def level(self) -> LogLevel:
        return self._level

    @property
    def entries(self) -> list[LogEntry]:
        return self._entries.copy()

    def log(
        self,
        level: LogLevel,
        component: str,
        message: str,
        data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """
        Record and write one entry.

        Returns:
            The entry, or None when it was below the configured level
        """
        if level.rank < self._level.rank:
            return None

        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=level,
            component=component,
            message=message,
            data=self.mask_sensitive_data(data or {}),
        )
        self._entries.append(entry)
        self._write(entry)
        return entry

    def log_exception(
        self,
        component: str,
        message: str,
        error: BaseException,
        data: Optional[dict] = None,
        level: LogLevel = LogLevel.ERROR,
    ) -> Optional[LogEntry]:
        """
        Record an exception with its type and message.

        DnsReconcilerError subclasses also contribute their code and details.
        """
        context = dict(data or {})
        context["error_type"] = type(error).__name__
        if isinstance(error, DnsReconcilerError):
            context["error_code"] = error.code
            context["error_message"] = error.message
            if error.details:
                context["error_details"] = error.details
        else:
            context["error_message"] = str(error)
        return self.log(level, component, message, context)

    def mask_sensitive_data(self, data: dict) -> dict:
        """Return a copy of data with credential keys and bearer tokens masked."""
        return self._mask(data)

    def _mask(self, value: Any) -> Any:
        if isinstance(value, dict):
            return {
                k: self.MASK_VALUE if self._is_sensitive(k) else self._mask(v)
                for k, v in value.items()
            }
        if isinstance(value, (list, tuple)):
            return [self._mask(item) for item in value]
        if isinstance(value, str):
            return BEARER_PATTERN.sub(f"Bearer {self.MASK_VALUE}", value)
        return value

    def _is_sensitive(self, key: Any) -> bool:
        lowered = str(key).lower()
        return any(marker in lowered for marker in self.SENSITIVE_KEYS)

    def _write(self, entry: LogEntry) -> None:
        if self._output_format in ("json", "both"):
            self._output_stream.write(self.format_json(entry) + "\n")
        if self._output_format in ("text", "both"):
            self._output_stream.write(self.format_text(entry) + "\n")
        self._output_stream.flush()

    def format_json(self, entry: LogEntry) -> str:
        return json.dumps(
            {
                "timestamp": entry.timestamp,
                "level": entry.level.value,
                "component": entry.component,
                "message": entry.message,
                "data": entry.data,
            },
            ensure_ascii=False,
            default=str,
        )

    def format_text(self, entry: LogEntry) -> str:
        # 2024-05-01T12:00:00+00:00 WARN  Resolver: message key=value ...
        line = f"{entry.timestamp} {entry.level.value.upper():<5} {entry.component}: {entry.message}"
        pairs = [
            f"{key}={json.dumps(value, ensure_ascii=False, default=str)}"
            for key, value in entry.data.items()
        ]
        return " ".join([line] + pairs)


class LoggingMixin:
    """Optional-logger helpers for components that accept a logger."""

    _logger: Optional[AuditLogger] = None

    def _log_info(self, component: str, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.log(LogLevel.INFO, component, message, data)

    def _log_debug(self, component: str, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.log(LogLevel.DEBUG, component, message, data)

    def _log_warning(self, component: str, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.log(LogLevel.WARN, component, message, data)

    def _log_error(self, component: str, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.log(LogLevel.ERROR, component, message, data)

    def _log_exception(
        self,
        component: str,
        message: str,
        error: BaseException,
        data: Optional[dict] = None,
    ) -> None:
        if self._logger:
            self._logger.log_exception(component, message, error, data)
