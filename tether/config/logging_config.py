"""
Logging setup for the relay.

Two output styles share one set of request-scoped fields: the trace id of
the HTTP request being served, the time since that request started, and
the session id when the log call came through a SessionLoggerAdapter.
Capability keys never appear in these fields.
"""

import json
import logging
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

# Request-scoped values, visible to every log call made while serving a request
trace_id_var: ContextVar[Optional[str]] = ContextVar('trace_id', default=None)
request_start_var: ContextVar[Optional[float]] = ContextVar('request_start', default=None)

# Attributes the error handlers attach through ``extra``
_RELAY_ATTRIBUTES = ('session_id', 'error_code', 'context')


def _request_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Collect trace, timing and relay attributes for one record."""
    fields: Dict[str, Any] = {}

    trace_id = trace_id_var.get()
    if trace_id:
        fields['trace_id'] = trace_id

    started = request_start_var.get()
    if started is not None:
        fields['elapsed_ms'] = round((time.time() - started) * 1000, 2)

    for name in _RELAY_ATTRIBUTES:
        value = getattr(record, name, None)
        if value is not None:
            fields[name] = value

    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry = {
            'ts': created.isoformat(timespec='milliseconds').replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'msg': record.getMessage(),
            'where': f"{record.module}:{record.funcName}:{record.lineno}",
        }
        entry.update(_request_fields(record))

        if record.exc_info:
            entry['exc'] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Single-line console output, optionally coloured by level."""

    LEVEL_COLORS = {
        logging.DEBUG: 36,
        logging.INFO: 32,
        logging.WARNING: 33,
        logging.ERROR: 31,
        logging.CRITICAL: 35,
    }

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        fields = _request_fields(record)
        tags = ''
        if 'trace_id' in fields:
            tags += f"[{fields['trace_id'][-8:]}]"
        if 'session_id' in fields:
            tags += f"[{fields['session_id']}]"

        when = datetime.fromtimestamp(record.created).strftime('%H:%M:%S.%f')[:-3]
        parts = [when, f"{record.levelname:<8}", tags, f"{record.name}:", record.getMessage()]
        line = ' '.join(part for part in parts if part)

        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"

        color = self.LEVEL_COLORS.get(record.levelno) if self.use_color else None
        if color is None:
            return line
        return f"\033[{color}m{line}\033[0m"


def generate_trace_id() -> str:
    """New trace id for a request that did not bring one."""
    return f"tether-{uuid.uuid4().hex}"


def get_trace_id() -> Optional[str]:
    return trace_id_var.get()


@contextmanager
def trace_context(trace_id: Optional[str] = None):
    """
    Bind a trace id and a request start time for the duration of a block.

    Yields:
        The bound trace id (generated when none is given)
    """
    trace_id = trace_id or generate_trace_id()
    trace_token = trace_id_var.set(trace_id)
    start_token = request_start_var.set(time.time())
    try:
        yield trace_id
    finally:
        request_start_var.reset(start_token)
        trace_id_var.reset(trace_token)


class SessionLoggerAdapter(logging.LoggerAdapter):
    """Tags every record with the session it concerns."""

    def __init__(self, logger: logging.Logger, session_id: str):
        super().__init__(logger, {'session_id': session_id})

    def process(self, msg, kwargs):
        kwargs['extra'] = {**kwargs.get('extra', {}), 'session_id': self.extra['session_id']}
        return msg, kwargs


def _build_handler(output: str) -> logging.Handler:
    if output == 'stdout':
        return logging.StreamHandler(sys.stdout)
    if output == 'stderr':
        return logging.StreamHandler(sys.stderr)
    return logging.FileHandler(output)


def configure_logging(
    level: Union[str, int] = "INFO",
    format_type: str = "human",
    output: str = "stdout"
) -> None:
    """
    Replace the root handlers with one configured handler.

    Args:
        level: Level name or number
        format_type: 'json' or 'human'
        output: 'stdout', 'stderr' or a file path
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = _build_handler(output)
    if format_type == 'json':
        handler.setFormatter(StructuredFormatter())
    else:
        # No ANSI colours in log files
        handler.setFormatter(HumanReadableFormatter(use_color=output in ('stdout', 'stderr')))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Quiet noisy libraries
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)

    logging.getLogger('tether.config.logging').info(
        f"Logging configured: level={logging.getLevelName(level)} format={format_type} output={output}"
    )


def get_logger(name: str, session_id: Optional[str] = None) -> Union[logging.Logger, SessionLoggerAdapter]:
    """Named logger, wrapped in a SessionLoggerAdapter when a session id is given."""
    logger = logging.getLogger(name)
    if session_id:
        return SessionLoggerAdapter(logger, session_id)
    return logger
