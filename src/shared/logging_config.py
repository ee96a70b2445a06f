"""
Logging configuration for the Agent Callback Relay.

Provides structured logging with correlation IDs, centralized configuration,
and multiple output formats for different environments.
"""

import logging
import json
import sys
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union
from uuid import uuid4

import structlog

# Context variables for correlation tracking
correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)
job_id: ContextVar[Optional[str]] = ContextVar('job_id', default=None)


class CorrelationFilter(logging.Filter):
    """Add correlation IDs and context to log records."""

    def filter(self, record):
        """Add correlation context to log record."""
        record.correlation_id = correlation_id.get() or 'unknown'
        record.job_id = job_id.get() or 'no-job'
        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    RESERVED = set(logging.LogRecord('', 0, '', 0, '', (), None).__dict__) | {'message', 'asctime'}

    def __init__(self, include_extra=True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record):
        """Format log record as JSON."""
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'correlation_id': getattr(record, 'correlation_id', 'unknown'),
            'job_id': getattr(record, 'job_id', 'no-job'),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_entry['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'traceback': traceback.format_exception(*record.exc_info)
            }

        if self.include_extra:
            for key, value in record.__dict__.items():
                if key in log_entry or key in self.RESERVED or key.startswith('_'):
                    continue
                try:
                    json.dumps(value)
                    log_entry[key] = value
                except (TypeError, ValueError):
                    log_entry[key] = str(value)

        return json.dumps(log_entry, default=str)


class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output."""

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        """Format log record with colors."""
        color = self.COLORS.get(record.levelname, '')
        formatted = super().format(record)
        correlation_info = f"[{getattr(record, 'correlation_id', 'unknown')[:8]}]"
        job_info = f"[{getattr(record, 'job_id', 'no-job')}]"
        return f"{color}{formatted}{self.RESET} {correlation_info} {job_info}"


class LoggingConfig:
    """Centralized logging configuration."""

    DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    @classmethod
    def setup_logging(
        cls,
        level: Union[str, int] = logging.INFO,
        format_type: str = 'json',
        log_file: Optional[str] = None,
        console_output: bool = True,
        correlation_tracking: bool = True
    ):
        """
        Setup logging for the service.

        Args:
            level: Logging level
            format_type: 'json', 'colored', or 'standard'
            log_file: Optional log file path
            console_output: Enable console output
            correlation_tracking: Enable correlation ID tracking
        """
        if log_file:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)

        root_logger = logging.getLogger()
        root_logger.setLevel(level)
        root_logger.handlers.clear()

        correlation_filter = CorrelationFilter() if correlation_tracking else None

        if console_output:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(level)

            if format_type == 'json':
                console_handler.setFormatter(JSONFormatter())
            elif format_type == 'colored':
                console_handler.setFormatter(ColoredFormatter(cls.DEFAULT_FORMAT))
            else:
                console_handler.setFormatter(logging.Formatter(cls.DEFAULT_FORMAT))

            if correlation_filter:
                console_handler.addFilter(correlation_filter)

            root_logger.addHandler(console_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(level)
            file_handler.setFormatter(JSONFormatter())  # Always use JSON for files

            if correlation_filter:
                file_handler.addFilter(correlation_filter)

            root_logger.addHandler(file_handler)

        cls._configure_component_loggers()
        cls._configure_structlog()

        logging.getLogger(__name__).info(
            "Logging system initialized",
            extra={'format_type': format_type, 'log_file': log_file}
        )

    @classmethod
    def _configure_component_loggers(cls):
        """Reduce third-party noise."""
        third_party_loggers = {
            'uvicorn': logging.WARNING,
            'fastapi': logging.WARNING,
            'aiohttp': logging.WARNING,
            'sqlalchemy': logging.WARNING,
            'alembic': logging.WARNING,
        }

        for logger_name, level in third_party_loggers.items():
            logging.getLogger(logger_name).setLevel(level)

    @classmethod
    def _configure_structlog(cls):
        """Route structlog through the stdlib handlers configured above."""
        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.format_exc_info,
                structlog.processors.KeyValueRenderer(key_order=["event"]),
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )


class CorrelationContext:
    """Context manager for correlation tracking."""

    def __init__(self, correlation_id_value: str = None, job_id_value: str = None):
        self.correlation_id_value = correlation_id_value or str(uuid4())
        self.job_id_value = job_id_value
        self.correlation_token = None
        self.job_token = None

    def __enter__(self):
        self.correlation_token = correlation_id.set(self.correlation_id_value)
        if self.job_id_value:
            self.job_token = job_id.set(self.job_id_value)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.correlation_token:
            correlation_id.reset(self.correlation_token)
        if self.job_token:
            job_id.reset(self.job_token)


def get_correlation_id() -> Optional[str]:
    """Get current correlation ID."""
    return correlation_id.get()


def configure_logging(settings) -> None:
    """Initialize logging from a Settings instance."""
    LoggingConfig.setup_logging(
        level=settings.monitoring.log_level.value,
        format_type='json' if settings.is_production() else settings.monitoring.log_format,
        log_file=settings.monitoring.log_file,
        console_output=True,
        correlation_tracking=True
    )
