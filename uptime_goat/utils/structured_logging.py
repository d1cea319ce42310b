"""
Structured logging with correlation IDs and per-target context.
"""

import inspect
import functools
import json
import logging
import logging.handlers
import sys
import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

# Context variable for correlation ID
correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

_STANDARD_RECORD_FIELDS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'correlation_id', 'taskName'
}


@dataclass
class LogContext:
    """Context information for structured logging."""
    correlation_id: Optional[str] = None
    operation: Optional[str] = None
    target_name: Optional[str] = None
    cycle_number: Optional[int] = None
    additional_fields: Optional[Dict[str, Any]] = None


class CorrelationIdFilter(logging.Filter):
    """Logging filter that adds correlation ID to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id.get() or "-"
        return True


class StructuredFormatter(logging.Formatter):
    """
    Formatter that outputs one JSON object per log line.

    Extra fields passed through ``extra=`` are collected under ``extra``.
    """

    def __init__(
        self,
        include_extra_fields: bool = True,
        timestamp_format: str = "%Y-%m-%dT%H:%M:%S.%fZ"
    ):
        super().__init__()
        self.include_extra_fields = include_extra_fields
        self.timestamp_format = timestamp_format

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(self.timestamp_format),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "process": record.process,
            "correlation_id": getattr(record, 'correlation_id', '-')
        }

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info)
            }

        if self.include_extra_fields:
            extra_fields = {}
            for key, value in record.__dict__.items():
                if key in _STANDARD_RECORD_FIELDS:
                    continue
                try:
                    json.dumps(value)
                    extra_fields[key] = value
                except (TypeError, ValueError):
                    extra_fields[key] = str(value)

            if extra_fields:
                log_entry["extra"] = extra_fields

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class PlainFormatter(logging.Formatter):
    """
    Human-readable formatter: ``2024-01-01 12:00:00.123 message``.

    The level name is only printed for warnings and errors.
    """

    def __init__(self):
        super().__init__(datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        timestamp = f"{self.formatTime(record, self.datefmt)}.{int(record.msecs):03d}"
        message = record.getMessage()
        if record.levelno >= logging.WARNING:
            line = f"{timestamp} {record.levelname}: {message}"
        else:
            line = f"{timestamp} {message}"

        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class ContextualLogger:
    """
    Logger wrapper that attaches context fields to every record.
    """

    def __init__(self, name: str, context: Optional[LogContext] = None):
        self.logger = logging.getLogger(name)
        self.context = context or LogContext()

    def _log_with_context(
        self,
        level: int,
        message: str,
        *args,
        exc_info: Optional[Any] = None,
        extra_context: Optional[Dict[str, Any]] = None,
        **kwargs
    ) -> None:
        extra = {}

        if self.context.operation:
            extra["operation"] = self.context.operation
        if self.context.target_name:
            extra["target_name"] = self.context.target_name
        if self.context.cycle_number is not None:
            extra["cycle_number"] = self.context.cycle_number
        if self.context.additional_fields:
            extra.update(self.context.additional_fields)
        if extra_context:
            extra.update(extra_context)
        extra.update(kwargs)

        if self.context.correlation_id:
            correlation_id.set(self.context.correlation_id)

        self.logger.log(level, message, *args, exc_info=exc_info, extra=extra)

    def debug(self, message: str, *args, **kwargs) -> None:
        self._log_with_context(logging.DEBUG, message, *args, **kwargs)

    def info(self, message: str, *args, **kwargs) -> None:
        self._log_with_context(logging.INFO, message, *args, **kwargs)

    def warning(self, message: str, *args, **kwargs) -> None:
        self._log_with_context(logging.WARNING, message, *args, **kwargs)

    def error(self, message: str, *args, **kwargs) -> None:
        self._log_with_context(logging.ERROR, message, *args, **kwargs)

    def exception(self, message: str, *args, **kwargs) -> None:
        kwargs['exc_info'] = True
        self._log_with_context(logging.ERROR, message, *args, **kwargs)

    def with_context(self, **context_updates) -> 'ContextualLogger':
        """Create new logger with updated context."""
        new_context = LogContext(
            correlation_id=context_updates.get('correlation_id', self.context.correlation_id),
            operation=context_updates.get('operation', self.context.operation),
            target_name=context_updates.get('target_name', self.context.target_name),
            cycle_number=context_updates.get('cycle_number', self.context.cycle_number),
            additional_fields={
                **(self.context.additional_fields or {}),
                **context_updates.get('additional_fields', {})
            }
        )
        return ContextualLogger(self.logger.name, new_context)


class LoggingManager:
    """
    Centralized logging configuration.

    Sets up console and rotating file output with either JSON or plain
    formatting, and manages the per-cycle correlation ID.
    """

    def __init__(self):
        self._configured = False
        self._log_handlers: Dict[str, logging.Handler] = {}

    @property
    def configured(self) -> bool:
        return self._configured

    def setup_logging(
        self,
        log_level: str = "INFO",
        log_file: Optional[str] = None,
        max_file_size: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5,
        console_output: bool = True,
        structured_format: bool = False,
        include_extra_fields: bool = True,
        force: bool = False
    ) -> None:
        """
        Set up logging for the whole process.

        Args:
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_file: Path to log file (optional)
            max_file_size: Maximum size of log file before rotation
            backup_count: Number of backup files to keep
            console_output: Whether to output logs to stdout
            structured_format: Whether to use structured JSON format
            include_extra_fields: Whether to include extra fields in structured logs
            force: Reconfigure even if logging was already set up
        """
        if self._configured and not force:
            return

        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, log_level.upper()))

        for handler in self._log_handlers.values():
            root_logger.removeHandler(handler)
            handler.close()
        self._log_handlers.clear()

        if structured_format:
            formatter = StructuredFormatter(include_extra_fields=include_extra_fields)
        else:
            formatter = PlainFormatter()

        if console_output:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(formatter)
            console_handler.addFilter(CorrelationIdFilter())
            root_logger.addHandler(console_handler)
            self._log_handlers['console'] = console_handler

        if log_file:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=max_file_size,
                backupCount=backup_count,
                encoding='utf-8'
            )
            file_handler.setFormatter(formatter)
            file_handler.addFilter(CorrelationIdFilter())
            root_logger.addHandler(file_handler)
            self._log_handlers['file'] = file_handler

        self._configure_logger_levels()
        self._configured = True

        logging.getLogger(__name__).debug(
            "Logging configuration completed",
            extra={
                "log_level": log_level,
                "log_file": log_file,
                "structured_format": structured_format
            }
        )

    def _configure_logger_levels(self) -> None:
        """Reduce noise from third-party libraries."""
        logging.getLogger('asyncio').setLevel(logging.WARNING)
        logging.getLogger('aiohttp').setLevel(logging.WARNING)
        logging.getLogger('apscheduler').setLevel(logging.WARNING)

    def create_correlation_id(self) -> str:
        return uuid.uuid4().hex[:12]

    def get_correlation_id(self) -> Optional[str]:
        return correlation_id.get()


# Global logging manager instance
logging_manager = LoggingManager()


def get_logger(name: str, context: Optional[LogContext] = None) -> ContextualLogger:
    """
    Get a contextual logger instance.

    Args:
        name: Logger name
        context: Optional logging context

    Returns:
        ContextualLogger instance
    """
    return ContextualLogger(name, context)


def with_correlation_id(corr_id: Optional[str] = None):
    """
    Decorator that runs a coroutine function under its own correlation ID.

    Args:
        corr_id: Correlation ID to use, or None to generate new one
    """
    def decorator(func):
        if not inspect.iscoroutinefunction(func):
            raise TypeError("with_correlation_id only decorates coroutine functions")

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            token = correlation_id.set(corr_id or logging_manager.create_correlation_id())
            try:
                return await func(*args, **kwargs)
            finally:
                correlation_id.reset(token)

        return async_wrapper
    return decorator
