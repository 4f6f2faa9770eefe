import logging
from loguru import logger

from agritrace.core.config import settings


class InterceptHandler(logging.Handler):
    """Forwards stdlib log records to loguru, keeping the original caller."""

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame.f_back and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging():
    """
    Sends uvicorn, SQLAlchemy and alembic output through loguru and adds the
    rotating application log file.
    """
    level = "DEBUG" if settings.debug else "INFO"

    logging.basicConfig(handlers=[InterceptHandler()], level=logging.INFO, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = [InterceptHandler()]
        uvicorn_logger.propagate = False

    # SQL statements only in debug mode
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.debug else logging.WARNING)

    logger.add(
        settings.log_file,
        rotation="500 MB",
        retention="30 days",
        compression="zip",
        level=level,
        backtrace=True,
        diagnose=settings.debug,
    )
