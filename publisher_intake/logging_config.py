"""
logging_config.py — Centralized logging for the publisher intake pipeline

Sets up Loguru as the single logging backend. Intercepts Python's stdlib
logging module so SQLAlchemy, httpx and uvicorn records route through
Loguru with the same format.

Business Rules:
- All logs go through Loguru (no print())
- JSON lines in production for machine parsing
- Human-readable format in development
- Log rotation: 50MB files, 7-day retention when LOG_FILE is set

Called by: publisher_intake/main.py (lifespan), scripts/reprocess_emails.py
"""

import logging
import os
import sys

from loguru import logger


def setup_logging() -> None:
    """Configure Loguru and intercept stdlib logging.

    Call once at process start, before anything else logs.
    """
    logger.remove()

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    is_production = os.getenv("ENVIRONMENT", "development").lower() == "production"

    if is_production:
        logger.add(
            sys.stdout,
            level=log_level,
            format="{message}",
            serialize=True,
        )
        log_file = os.getenv("LOG_FILE")
        if log_file:
            logger.add(
                log_file,
                level=log_level,
                rotation="50 MB",
                retention="7 days",
                compression="gz",
                serialize=True,
            )
    else:
        logger.add(
            sys.stdout,
            level=log_level,
            format=(
                "<green>{time:HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "{message}"
            ),
            colorize=True,
        )

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)

    for noisy in ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger.info("Logging configured", level=log_level, production=is_production)


class _InterceptHandler(logging.Handler):
    """Route stdlib logging records to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip frames from stdlib logging internals
        frame, depth = logging.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )
