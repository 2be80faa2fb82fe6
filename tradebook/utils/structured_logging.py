"""
Structured logging for import batches

Provides JSON-formatted logging with structured fields for:
- Batch lifecycle (started, completed, failed)
- FIFO matching outcomes
- Data-quality warnings raised while reading rows
"""

import json
import logging
import logging.config
import os
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'taskName',
}


@dataclass
class ImportContext:
    """Context shared by every record of one import run"""
    run_id: str
    venue: Optional[str] = None
    source: Optional[str] = None

    @classmethod
    def create(cls, **kwargs) -> 'ImportContext':
        run_id = kwargs.get('run_id', f"import_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}")
        return cls(run_id=run_id, venue=kwargs.get('venue'), source=kwargs.get('source'))


class StructuredLogFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def __init__(self, extra_fields: Optional[Dict[str, Any]] = None):
        super().__init__()
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if record.thread and record.thread != threading.main_thread().ident:
            log_data['thread_id'] = record.thread

        log_data.update(self.extra_fields)

        extra_data = {}
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS:
                continue
            try:
                json.dumps(value)
                extra_data[key] = value
            except (TypeError, ValueError):
                extra_data[key] = str(value)

        if extra_data:
            log_data['extra'] = extra_data

        if record.exc_info:
            log_data['exception'] = {
                'type': record.exc_info[0].__name__ if record.exc_info[0] else None,
                'message': str(record.exc_info[1]) if record.exc_info[1] else None,
                'traceback': self.formatException(record.exc_info)
            }

        return json.dumps(log_data, default=str, separators=(',', ':'))


class ImportLogger:
    """
    Structured logger for import batches

    Every event carries the run id and venue so one batch can be followed
    through a shared log file.
    """

    def __init__(self, logger_name: str, context: Optional[ImportContext] = None):
        self.logger = logging.getLogger(logger_name)
        self.context = context or ImportContext.create()

    def _log_structured(self, level: int, event_type: str, message: str, **kwargs):
        log_data = {
            'event_type': event_type,
            'run_id': self.context.run_id,
            **kwargs
        }
        if self.context.venue:
            log_data.setdefault('venue', self.context.venue)
        if self.context.source:
            log_data['source'] = self.context.source

        log_data['event_timestamp'] = datetime.now(timezone.utc).isoformat()
        self.logger.log(level, message, extra=log_data)

    def batch_event(self, status: str, venue: str, message: str, **kwargs):
        """Log batch lifecycle event"""
        level = logging.ERROR if status == 'failed' else logging.INFO
        self._log_structured(
            level=level,
            event_type=f"batch.{status}",
            message=message,
            venue=venue,
            **kwargs
        )

    def match_event(self, venue: str, fills: int, trades: int, message: str, **kwargs):
        """Log FIFO matching outcome"""
        self._log_structured(
            level=logging.INFO,
            event_type="matching.completed",
            message=message,
            venue=venue,
            fill_count=fills,
            trade_count=trades,
            **kwargs
        )

    def data_quality_event(self, issue: str, message: str, **kwargs):
        """Log data-quality warning"""
        self._log_structured(
            level=logging.WARNING,
            event_type=f"data_quality.{issue}",
            message=message,
            **kwargs
        )


@contextmanager
def import_timer(logger: ImportLogger, operation: str, **context):
    """Time an import operation and log its duration"""
    start_time = time.perf_counter()
    success = False
    try:
        yield
        success = True
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000
        logger._log_structured(
            level=logging.DEBUG,
            event_type="timing.completed",
            message=f"Completed {operation}",
            operation=operation,
            duration_ms=round(duration_ms, 3),
            success=success,
            **context
        )


def configure_structured_logging(
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
    console_output: bool = True,
    json_format: bool = True,
    extra_fields: Optional[Dict[str, Any]] = None
):
    """
    Configure structured logging for the application

    Args:
        log_level: Logging level, defaults to $TRADEBOOK_LOG_LEVEL or INFO
        log_file: Optional file path for log output
        console_output: Whether to output to console
        json_format: Whether to use JSON formatting
        extra_fields: Extra fields to include in all log messages
    """
    log_level = log_level or os.getenv('TRADEBOOK_LOG_LEVEL', 'INFO')
    config = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {},
        'handlers': {},
        'loggers': {
            'tradebook': {
                'level': log_level,
                'handlers': [],
                'propagate': False
            }
        }
    }

    if json_format:
        config['formatters']['structured'] = {
            '()': StructuredLogFormatter,
            'extra_fields': extra_fields or {}
        }
        formatter_name = 'structured'
    else:
        config['formatters']['standard'] = {
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            'datefmt': '%Y-%m-%d %H:%M:%S'
        }
        formatter_name = 'standard'

    if console_output:
        config['handlers']['console'] = {
            'class': 'logging.StreamHandler',
            'level': log_level,
            'formatter': formatter_name,
            'stream': 'ext://sys.stderr'
        }
        config['loggers']['tradebook']['handlers'].append('console')

    if log_file:
        config['handlers']['file'] = {
            'class': 'logging.handlers.RotatingFileHandler',
            'level': log_level,
            'formatter': formatter_name,
            'filename': log_file,
            'maxBytes': 10 * 1024 * 1024,  # 10MB
            'backupCount': 5
        }
        config['loggers']['tradebook']['handlers'].append('file')

    logging.config.dictConfig(config)

    logging.getLogger("tradebook.logging").info(
        "Structured logging configured",
        extra={'log_level': log_level, 'json_format': json_format, 'log_file': log_file}
    )
