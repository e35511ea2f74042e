"""structlog + stdlib logging wiring.

Everything is rendered to stderr so stdout stays reserved for the JSON
report printed by the CLI.  Records are handed to a background
``QueueListener`` so slow terminals never stall the event loop.
"""

from __future__ import annotations

import atexit
import copy
import logging
import logging.config
import queue
from datetime import datetime, timezone
from logging.handlers import QueueHandler, QueueListener
from typing import Any, Optional

import structlog

from sourcegauge.infrastructure.config.schema import AppConfig

log = structlog.get_logger(__name__)

# Kept at WARNING regardless of the configured level.
QUIET_LOGGERS: tuple[str, ...] = ("httpx", "httpcore")

_listener: Optional[QueueListener] = None


def _stamp_from_record(_: Any, __: Any, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Timestamp stdlib records with their creation time, in UTC."""
    record = event_dict.get("_record")
    if isinstance(record, logging.LogRecord):
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        event_dict["timestamp"] = created.isoformat().replace("+00:00", "Z")
    return event_dict


def _formatter_entry(config: AppConfig) -> dict[str, Any]:
    renderer: structlog.typing.Processor
    if config.log_format == "json":
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)
    else:
        renderer = structlog.dev.ConsoleRenderer()
    return {
        "()": structlog.stdlib.ProcessorFormatter,
        "foreign_pre_chain": [
            structlog.contextvars.merge_contextvars,
            _stamp_from_record,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
        ],
        "processors": [
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    }


def build_logging_config(config: AppConfig) -> dict[str, Any]:
    """``logging.config.dictConfig`` payload for *config*."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"structlog": _formatter_entry(config)},
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stderr",
                "formatter": "structlog",
            },
        },
        "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
        "root": {"handlers": ["default"], "level": config.log_level},
    }


class _EventDictQueueHandler(QueueHandler):
    # The stock prepare() flattens record.msg to a string, which would
    # drop the structlog event dict before ProcessorFormatter sees it.
    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        return copy.copy(record)


def _stop_listener() -> None:
    global _listener
    listener, _listener = _listener, None
    if listener is not None:
        listener.stop()


def _move_root_handlers_behind_queue() -> None:
    global _listener
    _stop_listener()
    root = logging.getLogger()
    handlers = list(root.handlers)
    records: queue.Queue[logging.LogRecord] = queue.Queue()
    root.handlers = [_EventDictQueueHandler(records)]
    _listener = QueueListener(records, *handlers, respect_handler_level=True)
    _listener.start()


def configure_logging(config: AppConfig) -> dict[str, Any]:
    """Install structlog and stdlib logging; returns the applied dictConfig."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    cfg = build_logging_config(config)
    logging.config.dictConfig(cfg)
    _move_root_handlers_behind_queue()
    atexit.register(_stop_listener)

    log.info("logging_configured", log_format=config.log_format, log_level=config.log_level)
    return cfg
