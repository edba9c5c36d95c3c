import logging
import logging.config
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import contextvars

from .config import LoggingConfig

# Context variable for trace ID
trace_id_var = contextvars.ContextVar('trace_id', default=None)

_RESERVED_ATTRS = frozenset([
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'taskName', 'getMessage',
    'exc_info', 'exc_text', 'stack_info', 'message', 'asctime',
])


def get_trace_id() -> Optional[str]:
    """Get the current trace ID from context"""
    return trace_id_var.get()


class JsonFormatter(logging.Formatter):
    """JSON formatter; every `extra` field becomes a top-level key"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "trace_id": get_trace_id(),
            "component": getattr(record, 'component', 'api'),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in log_entry:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


def _handler_config(cfg: LoggingConfig) -> Dict[str, Any]:
    if cfg.output == "stdout":
        return {"class": "logging.StreamHandler", "stream": "ext://sys.stdout"}
    if cfg.output == "stderr":
        return {"class": "logging.StreamHandler", "stream": "ext://sys.stderr"}
    return {"class": "logging.FileHandler", "filename": cfg.output, "encoding": "utf-8"}


def setup_logging(cfg: LoggingConfig) -> Dict[str, Any]:
    """Configure the cronmetrics and uvicorn loggers from LoggingConfig"""
    log_level = cfg.level.upper()

    handler = _handler_config(cfg)
    handler.update({"level": log_level, "formatter": cfg.format})

    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": JsonFormatter},
            "text": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S"
            }
        },
        "handlers": {
            "console": handler,
        },
        "loggers": {
            "cronmetrics": {"level": log_level, "handlers": ["console"], "propagate": False},
            "uvicorn": {"level": log_level, "handlers": ["console"], "propagate": False},
            "uvicorn.access": {"level": "WARNING", "handlers": ["console"], "propagate": False},
        },
        "root": {
            "level": log_level,
            "handlers": ["console"]
        }
    }

    logging.config.dictConfig(config)
    return config
