"""
Structured JSON Logging Configuration

Provides centralized logging configuration with:
- JSON formatted output for machine parsing
- Request ID and current view tracking via contextvars
- File rotation (7 backups, 100MB max)
- Configurable log levels via environment
"""
import logging
import logging.handlers
import os
import contextvars
import re
from datetime import datetime, timezone
from typing import Optional
from pythonjsonlogger import jsonlogger

from tyrecheck.core.config import settings

# Context variable for request ID propagation
request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'request_id', default=None
)

# View currently being analyzed by the pipeline (treadView / sidewallView)
view_type_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'view_type', default=None
)

APP_VERSION = "1.0.0"

LOG_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), 'data', 'logs')


class RequestIdFilter(logging.Filter):
    """
    Logging filter that adds request_id and view_type to all log records.

    Uses contextvars so every log line emitted while handling one request
    (and one view within it) can be correlated.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        record.view_type = view_type_var.get() or "-"
        return True


class SanitizingFilter(logging.Filter):
    """
    Filter that strips CR/LF from log messages to prevent forged log entries.

    Backend replies are logged in truncated form and can contain arbitrary
    newlines, so this runs on every handler.
    """

    DANGEROUS_PATTERNS = [
        (r'\r\n', ' '),
        (r'\n', ' '),
        (r'\r', ' '),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            for pattern, replacement in self.DANGEROUS_PATTERNS:
                record.msg = re.sub(pattern, replacement, record.msg)

        if record.args:
            sanitized_args = []
            for arg in record.args:
                if isinstance(arg, str):
                    sanitized = arg
                    for pattern, replacement in self.DANGEROUS_PATTERNS:
                        sanitized = re.sub(pattern, replacement, sanitized)
                    sanitized_args.append(sanitized)
                else:
                    sanitized_args.append(arg)
            record.args = tuple(sanitized_args)

        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter that adds standard fields to all log entries.

    Output format:
    {
        "timestamp": "2025-11-23T10:30:00.000Z",
        "level": "INFO",
        "message": "Backend dispatch successful",
        "module": "analysis_backend",
        "request_id": "uuid-here",
        "view_type": "sidewallView",
        "logger": "tyrecheck.services.analysis_backend",
        ...extra fields...
    }
    """

    def add_fields(
        self,
        log_record: dict,
        record: logging.LogRecord,
        message_dict: dict
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get('timestamp'):
            log_record['timestamp'] = datetime.now(timezone.utc).isoformat()

        log_record['level'] = record.levelname
        log_record['module'] = record.module
        log_record['logger'] = record.name

        log_record['request_id'] = getattr(record, 'request_id', '-')
        log_record['view_type'] = getattr(record, 'view_type', '-')

        if record.funcName:
            log_record['function'] = record.funcName

        if record.lineno:
            log_record['line'] = record.lineno

        if 'message' not in log_record:
            log_record['message'] = record.getMessage()


def _build_handler(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SanitizingFilter())
    return handler


def setup_logging(
    log_level: Optional[str] = None,
    log_dir: Optional[str] = None,
    app_version: Optional[str] = None,
    log_to_file: bool = True
) -> logging.Logger:
    """
    Configure application-wide logging with JSON format and rotation.

    Args:
        log_level: Override log level (default from settings.LOG_LEVEL)
        log_dir: Override log directory (default settings.LOG_DIR or backend/data/logs)
        app_version: Application version to include in startup logs
        log_to_file: Attach rotating file handlers in addition to the console

    Returns:
        Root logger configured for the application
    """
    global APP_VERSION

    level = getattr(logging, (log_level or settings.LOG_LEVEL).upper(), logging.INFO)
    if app_version:
        APP_VERSION = app_version

    json_formatter = CustomJsonFormatter(
        '%(timestamp)s %(level)s %(name)s %(message)s'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    root_logger.addHandler(_build_handler(logging.StreamHandler(), level, json_formatter))

    if log_to_file:
        directory = log_dir or settings.LOG_DIR or LOG_DIR
        os.makedirs(directory, exist_ok=True)

        # Max 100MB per file, keep 7 backups
        root_logger.addHandler(_build_handler(
            logging.handlers.RotatingFileHandler(
                os.path.join(directory, 'app.log'),
                maxBytes=100 * 1024 * 1024,
                backupCount=7,
                encoding='utf-8'
            ),
            level,
            json_formatter,
        ))

        # Error-only file for failed analyses
        root_logger.addHandler(_build_handler(
            logging.handlers.RotatingFileHandler(
                os.path.join(directory, 'error.log'),
                maxBytes=50 * 1024 * 1024,
                backupCount=5,
                encoding='utf-8'
            ),
            logging.ERROR,
            json_formatter,
        ))

    # Suppress noisy third-party loggers
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('anthropic').setLevel(logging.WARNING)
    logging.getLogger('openai').setLevel(logging.WARNING)
    logging.getLogger('libav').setLevel(logging.ERROR)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance (typically called with __name__)."""
    return logging.getLogger(name)


def set_request_id(request_id: Optional[str]) -> contextvars.Token:
    """Set the request ID for the current context; returns a reset token."""
    return request_id_var.set(request_id)


def get_request_id() -> Optional[str]:
    """Get the current request ID from context, or None if not set."""
    return request_id_var.get()


def clear_request_id(token: contextvars.Token) -> None:
    """Reset the request ID context using the token from set_request_id."""
    request_id_var.reset(token)


def set_view_type(view_type: Optional[str]) -> contextvars.Token:
    """Mark the view currently being analyzed; returns a reset token."""
    return view_type_var.set(view_type)


def clear_view_type(token: contextvars.Token) -> None:
    view_type_var.reset(token)


def sanitize_log_value(value: str, max_length: int = 10000) -> str:
    """
    Sanitize a value for safe logging, preventing log injection.

    Args:
        value: Value to sanitize (non-strings are converted with str())
        max_length: Values longer than this are truncated

    Returns:
        Single-line string safe for logging
    """
    if not isinstance(value, str):
        return str(value)

    sanitized = value.replace('\r\n', ' ').replace('\n', ' ').replace('\r', ' ')

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length] + '...[truncated]'

    return sanitized
