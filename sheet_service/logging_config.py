"""
Structured logging for the character sheet service.

Every module obtains its logger through ``get_logger(__name__)`` and logs
events as key/value pairs, e.g.::

    logger.info("Level increased", character_id=character_id, level=level)

``configure_logging`` is called once from the application lifespan. The
request id bound by the HTTP middleware is merged into every event through
``structlog.contextvars``.
"""

import logging
import sys

import structlog
from structlog.stdlib import BoundLogger, LoggerFactory


def configure_logging(log_level: str = "INFO", json_logs: bool = False) -> None:
    """
    Configure stdlib logging and structlog.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR)
        json_logs: Render events as JSON lines instead of console key/values
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    logging.getLogger().setLevel(level)

    renderer = (
        structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=BoundLogger,
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> BoundLogger:
    return structlog.get_logger(name)
