from fastapi import Request
import logging
from typing import Any

from rich.logging import RichHandler

from vidrelay.config.settings import LoggingConfig

logger = logging.getLogger("vidrelay")


class RequestIdFilter(logging.Filter):
    """Make sure every record carries a request_id for the formatter"""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = "-"
        return True


def setup_logging(logging_config: LoggingConfig) -> None:
    """Configure the vidrelay logger tree once"""
    if logging_config.enable_rich:
        handler: logging.Handler = RichHandler(rich_tracebacks=True, show_path=False)
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(logging_config.format))
    handler.addFilter(RequestIdFilter())

    logger.handlers = [handler]
    logger.setLevel(logging_config.level)
    logger.propagate = False


def log_with_context(
    request: Request,
    level: int,
    message: str,
    exc_info: Any = None,
    **kwargs: Any
) -> None:
    """
    Log with request context.
    Automatically includes request_id for tracing.
    """
    extra = {
        "request_id": getattr(request.state, "request_id", "unknown"),
        **kwargs
    }
    logger.log(level, message, exc_info=exc_info, extra=extra)

def log_info(request: Request, message: str, **kwargs: Any) -> None:
    log_with_context(request, logging.INFO, message, **kwargs)

def log_error(request: Request, message: str, **kwargs: Any) -> None:
    log_with_context(request, logging.ERROR, message, **kwargs)

def log_warning(request: Request, message: str, **kwargs: Any) -> None:
    log_with_context(request, logging.WARNING, message, **kwargs)
