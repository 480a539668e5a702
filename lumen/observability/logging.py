"""
Structured Logging

JSON-structured logging with context propagation.

Ingestion and retrieval bind the knowledge ID (and, for retrieval, a
request ID) through context variables, so every skip-and-continue warning
emitted deep inside a pipeline can be traced back to the call that caused it.
"""

import contextvars
import json
import sys
import traceback
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, TextIO


class LogLevel(IntEnum):
    """Log levels matching Python's logging module."""

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    @classmethod
    def parse(cls, value: "str | int | LogLevel") -> "LogLevel":
        if isinstance(value, str):
            return cls[value.upper()]
        return cls(value)


@dataclass
class LogRecord:
    """A structured log record."""

    level: LogLevel
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    logger_name: str = "lumen"

    # Structured data
    data: dict[str, Any] = field(default_factory=dict)

    # Error info
    error: str | None = None
    error_type: str | None = None
    stack_trace: str | None = None

    # Pipeline context
    knowledge_id: str | None = None
    request_id: str | None = None
    operation: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        result = {
            "timestamp": self.timestamp.isoformat(),
            "level": LogLevel(self.level).name,
            "logger": self.logger_name,
            "message": self.message,
        }

        if self.data:
            result["data"] = self.data

        if self.error:
            result["error"] = {
                "message": self.error,
                "type": self.error_type,
                "stack_trace": self.stack_trace,
            }

        if self.knowledge_id:
            result["knowledge_id"] = self.knowledge_id
        if self.request_id:
            result["request_id"] = self.request_id
        if self.operation:
            result["operation"] = self.operation

        return result

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), default=str)


class LogHandler:
    """Base class for log handlers."""

    def __init__(self, level: LogLevel = LogLevel.DEBUG):
        self.level = level

    def should_handle(self, level: LogLevel) -> bool:
        return level >= self.level

    def handle(self, record: LogRecord) -> None:
        pass


class ConsoleHandler(LogHandler):
    """Outputs logs to console."""

    def __init__(
        self,
        level: LogLevel = LogLevel.DEBUG,
        stream: TextIO | None = None,
        json_output: bool = True,
    ):
        super().__init__(level)
        self.stream = stream or sys.stderr
        self.json_output = json_output

    def handle(self, record: LogRecord) -> None:
        if not self.should_handle(record.level):
            return

        if self.json_output:
            output = record.to_json()
        else:
            output = (
                f"[{record.timestamp.strftime('%Y-%m-%d %H:%M:%S')}] "
                f"{LogLevel(record.level).name:8s} {record.message}"
            )
            if record.knowledge_id:
                output += f" knowledge={record.knowledge_id}"
            if record.data:
                output += f" | {record.data}"
            if record.error:
                output += f" | ERROR: {record.error}"

        print(output, file=self.stream)


class BufferHandler(LogHandler):
    """Buffers logs in memory for testing."""

    def __init__(self, level: LogLevel = LogLevel.DEBUG, max_records: int = 1000):
        super().__init__(level)
        self.records: list[LogRecord] = []
        self._max_records = max_records

    def handle(self, record: LogRecord) -> None:
        if not self.should_handle(record.level):
            return

        self.records.append(record)

        if len(self.records) > self._max_records:
            self.records = self.records[-self._max_records :]

    def messages(self, level: LogLevel | None = None) -> list[str]:
        """Messages of buffered records, optionally at one level only."""
        return [r.message for r in self.records if level is None or r.level == level]

    def clear(self) -> None:
        self.records.clear()


_log_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "log_context", default={}
)


class StructuredLogger:
    """
    Main structured logging interface.

    Keyword arguments passed to the level methods become the record's
    structured data.
    """

    def __init__(
        self,
        name: str = "lumen",
        level: LogLevel = LogLevel.INFO,
        handlers: list[LogHandler] | None = None,
    ):
        self.name = name
        self.level = level
        self.handlers = handlers if handlers is not None else [ConsoleHandler()]

    def child(self, name: str) -> "StructuredLogger":
        """Logger sharing this logger's level and handlers under another name."""
        return StructuredLogger(name=name, level=self.level, handlers=self.handlers)

    def _log(
        self,
        level: LogLevel,
        message: str,
        data: dict[str, Any] | None = None,
        error: BaseException | None = None,
        **extra: Any,
    ) -> None:
        if level < self.level:
            return

        context = _log_context.get()

        record = LogRecord(
            level=level,
            message=message,
            logger_name=self.name,
            data={**(data or {}), **extra},
            knowledge_id=context.get("knowledge_id"),
            request_id=context.get("request_id"),
            operation=context.get("operation"),
        )

        if error is not None:
            record.error = str(error)
            record.error_type = type(error).__name__
            if error.__traceback__ is not None:
                record.stack_trace = "".join(
                    traceback.format_exception(type(error), error, error.__traceback__)
                )

        for handler in self.handlers:
            try:
                handler.handle(record)
            except Exception:
                pass  # Don't let logging errors affect main flow

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.WARNING, message, **kwargs)

    def error(self, message: str, error: BaseException | None = None, **kwargs: Any) -> None:
        self._log(LogLevel.ERROR, message, error=error, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log the exception currently being handled at ERROR level."""
        self.error(message, error=sys.exc_info()[1], **kwargs)

    @staticmethod
    @contextmanager
    def context(**kwargs: Any):
        """
        Context manager for adding context to logs.

        Usage:
            with logger.context(knowledge_id="faq", operation="index"):
                logger.info("Indexing")
        """
        current = _log_context.get()
        token = _log_context.set({**current, **kwargs})

        try:
            yield
        finally:
            _log_context.reset(token)

    @staticmethod
    def clear_context() -> None:
        _log_context.set({})


def get_logger(name: str = "lumen") -> StructuredLogger:
    """Get a logger instance."""
    return StructuredLogger(name=name)


def configure_logging(
    level: "LogLevel | str" = LogLevel.INFO,
    json_output: bool = True,
    stream: TextIO | None = None,
) -> StructuredLogger:
    """Configure and return the default logger."""
    level = LogLevel.parse(level)
    return StructuredLogger(
        level=level,
        handlers=[ConsoleHandler(level=level, stream=stream, json_output=json_output)],
    )
