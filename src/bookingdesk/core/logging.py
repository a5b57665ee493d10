# src/bookingdesk/core/logging.py
"""Structured logging for bookingdesk.

structlog and stdlib logging share one handler: stdlib records (uvicorn,
sqlalchemy, httpx) are rendered through a ProcessorFormatter with the same
processor chain, so the service writes one line shape, JSON or console.

Request context (request_id, route, submission_id, transaction_id) is
bound with structlog.contextvars by the web layer and intake pipeline.

Two scrubbing processors run on every event:
- credential fields (api_key, authorization, signature, ...) are replaced
  with "[redacted]"
- decision link tokens inside any string (/accept/<token>, /deny/<token>)
  are masked, since a logged link is enough to decide a booking
"""

import logging
import re
import sys
from typing import Any

import structlog
from structlog.stdlib import ProcessorFormatter

REDACTED = "[redacted]"

# Event keys whose values are credentials
_CREDENTIAL_KEYS = frozenset(
    {
        "api_key",
        "assertion",
        "access_token",
        "authorization",
        "framer-signature",
        "password",
        "private_key",
        "secret",
        "signature",
        "webhook_secret",
    }
)

_DECISION_LINK = re.compile(r"(/(?:accept|deny)/)[A-Za-z0-9_\-]+")

# httpx logs one INFO line per request and uvicorn.access logs full paths,
# decision tokens included. Both stay at WARNING or above.
_QUIET_LOGGERS: tuple[str, ...] = (
    "httpx",
    "httpcore",
    "sqlalchemy.engine",
    "uvicorn.access",
)


def _mask_links(value: str) -> str:
    return _DECISION_LINK.sub(r"\1" + REDACTED, value)


def _scrub(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Redact credential fields and decision tokens."""
    for key, value in event_dict.items():
        if key.lower() in _CREDENTIAL_KEYS and value:
            event_dict[key] = REDACTED
        elif isinstance(value, str) and ("/accept/" in value or "/deny/" in value):
            event_dict[key] = _mask_links(value)
    return event_dict


def _drop_formatter_fields(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    # Always present once ProcessorFormatter has handled the record
    del event_dict["_record"]
    del event_dict["_from_structlog"]
    return event_dict


def configure_logging(
    *,
    json_output: bool = False,
    level: str = "INFO",
) -> None:
    """Install the bookingdesk handler on the root logger.

    Args:
        json_output: One JSON object per line instead of console rendering.
        level: Root log level name (DEBUG, INFO, WARNING, ERROR).
    """
    log_level = getattr(logging, level.upper())

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        _scrub,
    ]

    renderer: Any = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=True)
    render_chain: list[Any] = [_drop_formatter_fields]
    if json_output:
        render_chain.append(structlog.processors.format_exc_info)
    render_chain.append(renderer)

    structlog.configure(
        processors=[*pre_chain, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Tests reconfigure between cases
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ProcessorFormatter(processors=render_chain, foreign_pre_chain=pre_chain))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    quiet_level = max(log_level, logging.WARNING)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Bound logger for a module (pass __name__)."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
