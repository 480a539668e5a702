"""
Observability Module

Structured logging for the ingestion and retrieval pipelines.
"""

from lumen.observability.logging import (
    BufferHandler,
    ConsoleHandler,
    LogLevel,
    StructuredLogger,
    configure_logging,
    get_logger,
)

__all__ = [
    "BufferHandler",
    "ConsoleHandler",
    "LogLevel",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
]
