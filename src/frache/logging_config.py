"""
Logging configuration for Frache.

Provides structured logging with correlation IDs, centralized configuration,
and multiple output formats for different environments. The library never
configures handlers on its own; applications call initialize_logging() or
LoggingConfig.setup_logging(), or set FRACHE_CONFIGURE_LOGGING.
"""

import logging
import json
import sys
import os
from datetime import datetime, timezone
from typing import Dict, Any, Optional, Union
from uuid import uuid4
import traceback
from contextvars import ContextVar
from pathlib import Path


# Context variable for correlation tracking
correlation_id: ContextVar[Optional[str]] = ContextVar('frache_correlation_id', default=None)

# Attributes every LogRecord carries; anything else was passed as extra
_RESERVED_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message', 'asctime'}


class CorrelationFilter(logging.Filter):
    """Add correlation IDs and context to log records."""

    def filter(self, record):
        record.correlation_id = correlation_id.get() or 'none'
        record.component = getattr(record, 'component', 'unknown')
        record.operation = getattr(record, 'operation', 'unknown')
        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

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
            'correlation_id': getattr(record, 'correlation_id', correlation_id.get() or 'none'),
            'component': getattr(record, 'component', 'unknown'),
            'operation': getattr(record, 'operation', 'unknown'),
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
                if key in log_entry or key in _RESERVED_ATTRS or key.startswith('_'):
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
        color = self.COLORS.get(record.levelname, '')
        formatted = super().format(record)
        correlation_info = f"[{str(getattr(record, 'correlation_id', 'none'))[:8]}]"
        component_info = f"[{getattr(record, 'component', 'unknown')}]"
        return f"{color}{formatted}{self.RESET} {correlation_info} {component_info}"


class FracheLogger:
    """Logger wrapper that attaches component, operation and keyword fields."""

    def __init__(self, name: str, component: str = None):
        self.logger = logging.getLogger(name)
        self.component = component or name.split('.')[-1]

    def _log(self, log_level: int, message: str, operation: str = None, exc_info=None, **kwargs):
        if not self.logger.isEnabledFor(log_level):
            return
        extra = {
            'component': self.component,
            'operation': operation or 'unknown',
        }
        for key, value in kwargs.items():
            # LogRecord refuses extras that shadow its own attributes
            extra[f"{key}_" if key in _RESERVED_ATTRS else key] = value
        self.logger.log(log_level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, operation: str = None, **kwargs):
        self._log(logging.DEBUG, message, operation, **kwargs)

    def info(self, message: str, operation: str = None, **kwargs):
        self._log(logging.INFO, message, operation, **kwargs)

    def warning(self, message: str, operation: str = None, **kwargs):
        self._log(logging.WARNING, message, operation, **kwargs)

    def error(self, message: str, operation: str = None, **kwargs):
        self._log(logging.ERROR, message, operation, **kwargs)

    def critical(self, message: str, operation: str = None, **kwargs):
        self._log(logging.CRITICAL, message, operation, **kwargs)

    def exception(self, message: str, operation: str = None, **kwargs):
        """Log exception with traceback."""
        self._log(logging.ERROR, message, operation or 'exception', exc_info=True, **kwargs)


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
        Setup logging for an application using Frache.

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
            console_handler.setFormatter(cls._make_formatter(format_type))
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

        logger = FracheLogger(__name__, 'logging_config')
        logger.info(
            "Logging system initialized",
            operation="setup_logging",
            level=level,
            format_type=format_type,
            log_file=log_file,
        )

    @classmethod
    def _make_formatter(cls, format_type: str) -> logging.Formatter:
        if format_type == 'json':
            return JSONFormatter()
        if format_type == 'colored':
            return ColoredFormatter(cls.DEFAULT_FORMAT)
        return logging.Formatter(cls.DEFAULT_FORMAT)

    @classmethod
    def _configure_component_loggers(cls):
        """Configure component-specific loggers."""
        logging.getLogger('frache').setLevel(logging.NOTSET)

        # Third-party loggers (reduce noise)
        third_party_loggers = {
            'redis': logging.WARNING,
            'asyncio': logging.WARNING,
        }
        for logger_name, level in third_party_loggers.items():
            logging.getLogger(logger_name).setLevel(level)

    @classmethod
    def get_config_dict(
        cls,
        level: str = 'INFO',
        format_type: str = 'json',
        log_file: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Get logging configuration as dictionary for dictConfig.

        Args:
            level: Logging level
            format_type: Format type
            log_file: Optional log file path

        Returns:
            Logging configuration dictionary
        """
        config = {
            'version': 1,
            'disable_existing_loggers': False,
            'filters': {
                'correlation': {
                    '()': CorrelationFilter,
                }
            },
            'formatters': {
                'json': {
                    '()': JSONFormatter,
                    'include_extra': True
                },
                'colored': {
                    '()': ColoredFormatter,
                    'format': cls.DEFAULT_FORMAT
                },
                'standard': {
                    'format': cls.DEFAULT_FORMAT
                }
            },
            'handlers': {
                'console': {
                    'class': 'logging.StreamHandler',
                    'level': level,
                    'formatter': format_type,
                    'filters': ['correlation'],
                    'stream': 'ext://sys.stdout'
                }
            },
            'loggers': {
                'frache': {'level': level},
                'redis': {'level': 'WARNING'},
            },
            'root': {
                'level': level,
                'handlers': ['console']
            }
        }

        if log_file:
            config['handlers']['file'] = {
                'class': 'logging.FileHandler',
                'level': level,
                'formatter': 'json',
                'filters': ['correlation'],
                'filename': log_file
            }
            config['root']['handlers'].append('file')

        return config


class CorrelationContext:
    """Context manager for correlation tracking."""

    def __init__(self, correlation_id_value: str = None):
        self.correlation_id_value = correlation_id_value or str(uuid4())
        self.correlation_token = None

    def __enter__(self):
        self.correlation_token = correlation_id.set(self.correlation_id_value)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.correlation_token:
            correlation_id.reset(self.correlation_token)
            self.correlation_token = None


def get_logger(name: str, component: str = None) -> FracheLogger:
    """Get a Frache logger instance."""
    return FracheLogger(name, component)


def set_correlation_id(correlation_id_value: str):
    """Set correlation ID for current context."""
    correlation_id.set(correlation_id_value)


def get_correlation_id() -> Optional[str]:
    """Get current correlation ID."""
    return correlation_id.get()


def initialize_logging():
    """Initialize logging from FRACHE_ENVIRONMENT and FRACHE_LOG_LEVEL."""
    environment = os.getenv('FRACHE_ENVIRONMENT', 'development')
    log_level = os.getenv('FRACHE_LOG_LEVEL', 'INFO')

    if environment == 'production':
        LoggingConfig.setup_logging(
            level=log_level,
            format_type='json',
            log_file=os.getenv('FRACHE_LOG_FILE'),
        )
    else:
        LoggingConfig.setup_logging(level=log_level, format_type='colored')


if os.getenv('FRACHE_CONFIGURE_LOGGING'):
    initialize_logging()
