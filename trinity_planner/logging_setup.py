"""Loguru sink configuration"""

import sys
from typing import Optional

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - <level>{message}</level>"
)


def setup_logging(level: str = "INFO", log_file: Optional[str] = None):
    """
    Replace loguru's default sink

    Args:
        level: Minimum level for stderr
        log_file: Optional path for a rotating DEBUG file log
    """
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=CONSOLE_FORMAT)

    if log_file:
        logger.add(log_file, level="DEBUG", rotation="10 MB", retention=5, enqueue=True)
        logger.debug(f"File logging enabled: {log_file}")
