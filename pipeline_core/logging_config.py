"""
Structured Logging Configuration

Wires structlog to the standard library root logger:
  - JSON output in production (or when LOG_JSON is set)
  - Human-readable console output otherwise
  - Quiet noisy HTTP and storage client loggers
"""

import logging
import sys
from typing import Optional

import structlog

from .config import PipelineConfig, get_config

_NOISY_LOGGERS = ("httpx", "httpcore", "botocore", "boto3", "urllib3", "asyncio")


def configure_logging(config: Optional[PipelineConfig] = None) -> None:
    """Configure application-wide logging."""
    config = config or get_config()
    level = logging.getLevelName(config.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if config.log_json or config.is_production:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
