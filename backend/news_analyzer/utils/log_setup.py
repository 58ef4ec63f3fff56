import sys
from loguru import logger

from news_analyzer.config import settings


def setup_logging(level: str = None):
    """
    Route loguru output to stderr at the configured level
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=(level or settings.LOG_LEVEL).upper(),
        format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
               "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        backtrace=False,
        diagnose=settings.DEBUG,
    )
