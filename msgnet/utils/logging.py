"""Loguru sink setup shared by the command-line entry points."""

import sys

from loguru import logger

from msgnet.utils.config import LoggingConfig

TEXT_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>"


def setup_logging(config: LoggingConfig | None = None, *, verbose: bool = False) -> None:
    """Replace loguru's default sink with the configured ones.

    Args:
        config: Logging configuration. If None, uses default settings.
        verbose: Force DEBUG level regardless of the configured level.
    """
    config = config or LoggingConfig()
    level = "DEBUG" if verbose else config.level
    serialize = config.format == "json"

    logger.remove()
    if serialize:
        logger.add(sys.stderr, level=level, serialize=True)
    else:
        logger.add(sys.stderr, format=TEXT_FORMAT, level=level)

    if config.file:
        logger.add(
            config.file,
            level=level,
            serialize=serialize,
            rotation=f"{config.max_size_mb} MB",
            retention=config.backup_count,
            encoding="utf-8",
        )
