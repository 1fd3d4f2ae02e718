"""
Structured logging for the API.

Configures structlog for JSON output. Handlers, workflows and integrations
get a bound logger through ``get_logger`` so every event carries the
component that emitted it.

Example:
    from logger import get_logger

    logger = get_logger(component="mentorship")
    logger.info("Mentorship request created", request_id="...", mentor_id="...")
"""

import logging
import sys
from pathlib import Path
from typing import List, Optional

import structlog
from structlog.types import BindableLogger, EventDict, WrappedLogger

from config import Config

SENSITIVE_FIELDS = {"password", "api_key", "token", "secret", "authorization"}


def mask_credentials(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """
    Processor replacing credential-like values with ``***MASKED***``.

    Matches exact keys and keys joined by ``_`` or ``-`` to a sensitive word,
    so ``session_token`` is masked while ``tokenizer`` is not.
    """
    for key in list(event_dict.keys()):
        key_lower = key.lower()
        for sensitive in SENSITIVE_FIELDS:
            if (
                key_lower == sensitive
                or key_lower.endswith(f"_{sensitive}")
                or key_lower.endswith(f"-{sensitive}")
                or key_lower.startswith(f"{sensitive}_")
                or key_lower.startswith(f"{sensitive}-")
            ):
                event_dict[key] = "***MASKED***"
                break

    return event_dict


def configure_logging(
    log_level: str = Config.LOG_LEVEL, log_file: Optional[str] = Config.LOG_FILE
) -> None:
    """
    Configure structlog with JSON output to stdout and, optionally, a file.

    Log Format (JSON):
        {
            "timestamp": "2026-10-19T10:30:45Z",
            "level": "info",
            "component": "referral",
            "event": "Application reviewed",
            "application_id": "...",
            "status": "approved"
        }
    """
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper(), logging.INFO),
        handlers=handlers,
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            mask_credentials,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(component: Optional[str] = None, **context) -> BindableLogger:
    """Get a structlog logger bound to ``component`` and any extra context."""
    logger = structlog.get_logger()
    if component:
        logger = logger.bind(component=component)
    if context:
        logger = logger.bind(**context)
    return logger


# Initialize logging on module import with configured settings
configure_logging()
