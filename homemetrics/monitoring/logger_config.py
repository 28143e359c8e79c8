"""
Structured logging configuration for the extraction pipeline.
"""

import os
import logging
import logging.handlers
import structlog
from typing import Any, Dict
from datetime import datetime

_configured = False
_installed_handlers = []


class IngestionLogger:
    """Configures structlog on top of the standard logging module."""

    @staticmethod
    def setup_logging(
        log_level: str = None,
        log_format: str = None,
        log_file: str = None,
        force: bool = False
    ) -> None:
        """Set up structured logging for the application."""
        global _configured, _installed_handlers
        if _configured and not force:
            return

        log_level = (log_level or os.getenv('LOG_LEVEL', 'INFO')).upper()
        log_format = log_format or os.getenv('LOG_FORMAT', 'json')
        log_file = log_file or os.getenv('LOG_FILE')

        level = getattr(logging, log_level, logging.INFO)

        handlers = []

        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        handlers.append(console_handler)

        if log_file:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)

            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5
            )
            file_handler.setLevel(level)
            handlers.append(file_handler)

        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                IngestionLogger._add_correlation_id,
                structlog.processors.UnicodeDecoder(),
                IngestionLogger._get_renderer(log_format),
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

        root_logger = logging.getLogger()
        root_logger.setLevel(level)
        for handler in _installed_handlers:
            root_logger.removeHandler(handler)
        for handler in handlers:
            root_logger.addHandler(handler)
        _installed_handlers = handlers

        _configured = True

        logger = structlog.get_logger("homemetrics")
        logger.debug(
            "Logging initialized",
            log_level=log_level,
            log_format=log_format,
            log_file=log_file or "console"
        )

    @staticmethod
    def _add_correlation_id(logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        """Drop an empty correlation ID so it does not clutter log lines."""
        if not event_dict.get('correlation_id'):
            event_dict.pop('correlation_id', None)
        return event_dict

    @staticmethod
    def _get_renderer(log_format: str):
        if log_format.lower() == 'json':
            return structlog.processors.JSONRenderer()
        return structlog.dev.ConsoleRenderer(colors=False)


class CorrelationLogger:
    """Logger bound to a correlation ID and message context."""

    def __init__(self, correlation_id: str = None):
        self.correlation_id = correlation_id
        self.logger = structlog.get_logger("homemetrics.pipeline")

        if correlation_id:
            self.logger = self.logger.bind(correlation_id=correlation_id)

    def bind(self, **context) -> "CorrelationLogger":
        bound = CorrelationLogger.__new__(CorrelationLogger)
        bound.correlation_id = self.correlation_id
        bound.logger = self.logger.bind(**context)
        return bound

    def info(self, message: str, **kwargs):
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs):
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs):
        self.logger.error(message, **kwargs)

    def exception(self, message: str, **kwargs):
        self.logger.exception(message, **kwargs)


class OperationLogger:
    """Context manager logging the start, end and duration of an operation."""

    def __init__(self, operation_name: str, correlation_id: str = None, **context):
        self.operation_name = operation_name
        self.correlation_id = correlation_id
        self.context = context
        self.start_time = None
        self.logger = CorrelationLogger(correlation_id)

    def __enter__(self):
        self.start_time = datetime.now()

        self.logger.info(
            f"Operation started: {self.operation_name}",
            operation=self.operation_name,
            **self.context
        )

        return self.logger

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = (datetime.now() - self.start_time).total_seconds()

        if exc_type is None:
            self.logger.info(
                f"Operation completed: {self.operation_name}",
                operation=self.operation_name,
                duration_seconds=duration,
                **self.context
            )
        else:
            self.logger.error(
                f"Operation failed: {self.operation_name}",
                operation=self.operation_name,
                duration_seconds=duration,
                error_type=exc_type.__name__,
                error_message=str(exc_val) if exc_val else None,
                **self.context
            )

        return False