import logging
import sys
from typing import TextIO

LOGGER_NAME = "csv_ingest"
LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(threadName)s] %(message)s"


class Log:
    """Process-wide logger for the ingestion service.

    Keyword arguments become ``key=value`` context appended to the message,
    so job and file ids stay greppable across dispatcher threads.
    """

    _logger: logging.Logger = logging.getLogger(LOGGER_NAME)

    @classmethod
    def configure(cls, log_level: str, stream: TextIO | None = None) -> None:
        """Set the level and attach a single stream handler (stdout by default)."""
        cls._logger.setLevel(log_level.upper())
        if cls._logger.handlers:
            return
        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        cls._logger.addHandler(handler)

    @classmethod
    def info(cls, message: str, **context: object) -> None:
        cls._logger.info(_with_context(message, context))

    @classmethod
    def error(cls, message: str, **context: object) -> None:
        cls._logger.error(_with_context(message, context))

    @classmethod
    def exception(cls, message: str, **context: object) -> None:
        """Error with the traceback of the exception being handled."""
        cls._logger.exception(_with_context(message, context))

    @classmethod
    def warning(cls, message: str, **context: object) -> None:
        cls._logger.warning(_with_context(message, context))

    @classmethod
    def debug(cls, message: str, **context: object) -> None:
        cls._logger.debug(_with_context(message, context))


def _with_context(message: str, context: dict[str, object]) -> str:
    if not context:
        return message
    fields = " ".join(f"{key}={value}" for key, value in context.items())
    return f"{message} {fields}"
