"""
Logging configuration
"""
import os
import sys

from loguru import logger

from app_settings import get_setting


def setup_logger():
    """Configure loguru sinks for the dashboard and its scripts"""
    logger.remove()

    logger.add(
        sys.stderr,
        colorize=True,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level=get_setting("LOG_LEVEL", "INFO"),
    )

    log_dir = get_setting("LOG_DIR", "logs")
    logger.add(
        os.path.join(log_dir, "dashboard_{time:YYYY-MM-DD}.log"),
        rotation="00:00",
        retention="30 days",
        compression="zip",
        level="INFO",
    )

    logger.add(
        os.path.join(log_dir, "errors_{time:YYYY-MM-DD}.log"),
        rotation="00:00",
        retention="90 days",
        level="ERROR",
    )

    return logger


log = setup_logger()
