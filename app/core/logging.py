"""Logging configuration."""
import logging
import sys

from app.core.config import settings

# Client libraries that log every request; a live call makes several per turn
QUIET_LOGGERS = (
    "httpx",
    "httpcore",
    "openai",
    "websockets",
    "aiosqlite",
    "sqlalchemy.engine",
)


def setup_logging() -> None:
    """Configure application logging at the configured level."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
