"""Logging setup for the coin reader.

Console output plus two rotating files under ``log_dir``: the full log and an
errors-only log. Every photo recognition and every live frame runs inside a
:class:`CorrelationContext` (``photo-<n>`` / ``frame-<n>``) so lines written by
the matching workers can be traced back to the image that produced them.
"""
import json
import logging
import logging.handlers
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Union

NO_CORRELATION_ID = 'no-correlation-id'

_current_id: ContextVar[Optional[str]] = ContextVar('coinreader_correlation_id', default=None)

# Library loggers that chatter once per image
QUIET_LOGGERS = ('PIL', 'ultralytics', 'matplotlib')

# Profile and sample paths end up in log lines; keep user names out of them
_PATH_REDACTIONS = (
    (re.compile(r'[C-Z]:\\+Users\\+[^\s\\]+'), '[USER_PATH_REDACTED]'),
    (re.compile(r'/home/[^/\s]+'), '[HOME_PATH_REDACTED]'),
)

_RECORD_ATTRIBUTES = frozenset(vars(logging.LogRecord('', 0, '', 0, '', None, None))) | {
    'message', 'asctime', 'correlation_id', 'taskName',
}


def redact_paths(text: str) -> str:
    for pattern, replacement in _PATH_REDACTIONS:
        text = pattern.sub(replacement, text)
    return text


class CorrelationIDFilter(logging.Filter):
    """Stamps ``record.correlation_id`` with the active photo or frame id."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = _current_id.get() or NO_CORRELATION_ID
        return True


class HumanReadableFormatter(logging.Formatter):
    """One line per record, correlation id after the level."""

    def __init__(self, include_correlation_id: bool = True):
        fmt = '%(asctime)s - %(name)s - %(levelname)s'
        if include_correlation_id:
            fmt += ' - %(correlation_id)s'
        super().__init__(fmt + ' - %(message)s')

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, 'correlation_id'):
            record.correlation_id = NO_CORRELATION_ID
        return redact_paths(super().format(record))


class StructuredFormatter(logging.Formatter):
    """JSON lines for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'correlation_id': getattr(record, 'correlation_id', NO_CORRELATION_ID),
            'thread': record.threadName,
            'location': f'{record.module}.{record.funcName}:{record.lineno}',
        }
        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry['exception'] = {
                'type': exc_type.__name__ if exc_type else None,
                'message': str(exc_value) if exc_value else None,
                'traceback': self.formatException(record.exc_info),
            }

        extra = {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRIBUTES}
        if extra:
            entry['extra'] = extra
        return redact_paths(json.dumps(entry, default=str))


class LoggingManager:
    """Owns the root handlers installed for the application."""

    def __init__(self):
        self._handlers: Dict[str, logging.Handler] = {}
        self._log_dir: Optional[Path] = None

    @property
    def is_configured(self) -> bool:
        return bool(self._handlers)

    @property
    def log_dir(self) -> Optional[Path]:
        return self._log_dir

    def configure(
        self,
        log_level: str = 'INFO',
        log_dir: Optional[Union[str, Path]] = None,
        enable_file_logging: bool = True,
        enable_console_logging: bool = True,
        structured_logging: bool = False,
        max_file_size: int = 5 * 1024 * 1024,
        backup_count: int = 3,
        application_name: str = 'coin-reader'
    ) -> None:
        """Install console and file handlers on the root logger.

        Args:
            log_level: Level name for the root logger and the non-error handlers
            log_dir: Directory for the rotating files (default ``logs``)
            enable_file_logging: Write ``<application_name>.log`` and ``-errors.log``
            enable_console_logging: Log to stdout
            structured_logging: JSON lines instead of the human-readable format
            max_file_size: Rotation threshold in bytes
            backup_count: Rotated files to keep
            application_name: Base name of the log files
        """
        if self.is_configured:
            return

        level = getattr(logging, str(log_level).upper(), logging.INFO)
        formatter = StructuredFormatter() if structured_logging else HumanReadableFormatter()
        correlation_filter = CorrelationIDFilter()

        def attach(name: str, handler: logging.Handler, handler_level: int) -> None:
            handler.setLevel(handler_level)
            handler.setFormatter(formatter)
            handler.addFilter(correlation_filter)
            root.addHandler(handler)
            self._handlers[name] = handler

        root = logging.getLogger()
        root.setLevel(level)
        root.handlers.clear()

        if enable_console_logging:
            attach('console', logging.StreamHandler(sys.stdout), level)

        if enable_file_logging:
            self._log_dir = Path(log_dir) if log_dir else Path('logs')
            self._log_dir.mkdir(parents=True, exist_ok=True)
            for name, suffix, handler_level in (('application', '', level),
                                                ('errors', '-errors', logging.ERROR)):
                attach(name, logging.handlers.RotatingFileHandler(
                    self._log_dir / f'{application_name}{suffix}.log',
                    maxBytes=max_file_size,
                    backupCount=backup_count,
                    encoding='utf-8',
                ), handler_level)

        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

        logging.getLogger(__name__).info(
            f"Logging configured - level={logging.getLevelName(level)} "
            f"files={'on' if enable_file_logging else 'off'} structured={structured_logging}")

    def shutdown(self) -> None:
        """Detach and close every handler this manager installed."""
        root = logging.getLogger()
        for handler in self._handlers.values():
            root.removeHandler(handler)
            handler.close()
        self._handlers.clear()


logging_manager = LoggingManager()


def configure_logging(**kwargs) -> None:
    logging_manager.configure(**kwargs)


def get_correlation_id() -> Optional[str]:
    return _current_id.get()


class CorrelationContext:
    """Scopes a correlation id to a block; the previous id is restored on exit.

    Context variables are per thread, so a worker thread starts with no id
    until it enters its own context.
    """

    def __init__(self, corr_id: str):
        self.corr_id = corr_id
        self._token = None

    def __enter__(self) -> str:
        self._token = _current_id.set(self.corr_id)
        return self.corr_id

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        _current_id.reset(self._token)
