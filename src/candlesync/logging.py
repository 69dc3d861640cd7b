"""Structured logging for sync runs, built on structlog.

Every record passes through structlog's processor chain and is rendered by
a stdlib ProcessorFormatter, so third-party loggers (httpx, aiosqlite) end
up in the same stream and format as our own events.
"""

import logging

import structlog

# Keys that may carry OANDA credentials; never rendered
_CREDENTIAL_KEYS = frozenset({"access_token", "authorization", "token"})

# Chatty third-party loggers and the level they are capped at
_QUIET_LOGGERS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "aiosqlite": logging.INFO,
}


def _mask_credentials(
    logger: object, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    for key in _CREDENTIAL_KEYS & event_dict.keys():
        event_dict[key] = "**********"
    return event_dict


def setup_logging(log_level: str = "INFO", log_format: str = "console") -> None:
    """Configure structlog and the root logger for one run.

    Args:
        log_level: Root level name, e.g. "DEBUG". Unknown names fall back
            to INFO.
        log_format: "json" for scheduled runs whose output is collected,
            anything else for the human-readable console renderer.
            Normally taken from AppSettings.log_format (LOG_FORMAT).

    The orchestrator binds instrument and granularity through
    structlog.contextvars, so they appear on every line logged while a
    pair is being synced, including lines from the client and the store.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _mask_credentials,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format.lower() == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name, level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger with the given name."""
    return structlog.get_logger(name)
