"""
Loguru setup for the API process.

Services log with structured keyword fields, e.g.
``logger.info("Normalized payload", kind="pdf", size_bytes=1234)``.
Those land in ``record["extra"]`` and are rendered by the sink below
(or serialized as JSON when LOG_JSON is enabled).
"""

import sys

from loguru import logger

from .config import settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - "
    "<level>{message}</level> | {extra}"
)


def setup_logging(level: str | None = None, json_logs: bool | None = None):
    """
    Replace loguru's default sink with one configured from settings.

    Args:
        level: Override for LOG_LEVEL
        json_logs: Override for LOG_JSON

    Returns:
        The configured loguru logger
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=(level or settings.log_level).upper(),
        format=LOG_FORMAT,
        serialize=settings.log_json if json_logs is None else json_logs,
        backtrace=False,
        diagnose=False,
    )
    return logger
