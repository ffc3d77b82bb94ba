"""
Loguru setup for the API process.

Call setup_logging() once at startup. Records emitted through the standard
logging module (uvicorn, httpx, google-genai) are forwarded to loguru so the
whole process writes through a single sink.
"""

import logging
import sys

from loguru import logger

from .config import settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level> | {extra}"
)


class InterceptHandler(logging.Handler):
    """Route standard logging records into loguru"""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the caller that originated the record, skipping logging internals
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str | None = None, serialize: bool | None = None):
    level = (level or settings.log_level).upper()
    serialize = settings.log_json if serialize is None else serialize

    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format=LOG_FORMAT,
        serialize=serialize,
        backtrace=False,
        diagnose=settings.app_env == "dev",
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False

    logger.bind(app=settings.app_name, env=settings.app_env).debug("Logging configured", level=level)
    return logger
