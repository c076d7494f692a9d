"""ABOUTME: Logging set up for warden, structlog on top of the stdlib logging module
ABOUTME: JSON output in production, readable console output in development, plus a gunicorn adapter"""

import logging.config
import os
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import structlog

from warden import config

if TYPE_CHECKING:
    import gunicorn.config
    import gunicorn.http
    import gunicorn.http.wsgi

timestamper = structlog.processors.TimeStamper(fmt="iso")
pre_chain = [
    # Add the log level and a timestamp to the event_dict if the log entry is not from structlog.
    structlog.stdlib.add_log_level,
    timestamper,
]

_configured = False


def _logging_dict(handler_name: str) -> dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processor": structlog.dev.ConsoleRenderer(colors=False),
                "foreign_pre_chain": pre_chain,
            },
            "json": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processor": structlog.processors.JSONRenderer(),
                "foreign_pre_chain": pre_chain,
            },
        },
        "handlers": {
            "default": {
                "level": "INFO",
                "class": "logging.StreamHandler",
                "formatter": "json",
            },
            "dev_console": {
                "level": "DEBUG",
                "class": "logging.StreamHandler",
                "formatter": "console",
            },
        },
        "loggers": {
            "": {
                "handlers": [handler_name],
                "level": "INFO",
                "propagate": True,
            },
        },
    }


def configure_logging() -> None:
    """Install the stdlib handlers and the structlog processor chain. Safe to call more than once."""
    global _configured
    if _configured:
        return

    # switch to dev_console for development set up
    handler_to_use = "dev_console" if config.is_development() else "default"
    logging.config.dictConfig(_logging_dict(handler_to_use))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            timestamper,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _configured = True


def logging_setup(log_level: int = logging.INFO) -> None:
    configure_logging()

    for handler_name in ("default", "dev_console"):
        handler = logging.getHandlerByName(handler_name)
        if handler is not None:
            handler.setLevel(log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    if config.should_log_all_requests():
        root_logger.setLevel(logging.DEBUG)
        # the pwned passwords check goes out through requests/urllib3
        urllib3_log = logging.getLogger("urllib3")
        urllib3_log.setLevel(logging.DEBUG)
        urllib3_log.propagate = True


class GunicornLogger:
    """
    Stripped down version of gunicorn.glogging.Logger that sends gunicorn's
    error and access logs through structlog.

    Use with `gunicorn --logger-class warden.logging.GunicornLogger`.
    """

    def __init__(self, cfg: "gunicorn.config.Config") -> None:
        configure_logging()
        log_level = config.get_log_level()
        self._error_logger = structlog.get_logger("gunicorn.error")
        self._error_logger.setLevel(log_level)
        self._access_logger = structlog.get_logger("gunicorn.access")
        self._access_logger.setLevel(log_level)
        self.cfg = cfg

    def critical(self, msg: object, *args: object, **kwargs: object) -> None:
        self._error_logger.error(msg, *args, **kwargs)

    def error(self, msg: object, *args: object, **kwargs: object) -> None:
        self._error_logger.error(msg, *args, **kwargs)

    def warning(self, msg: object, *args: object, **kwargs: object) -> None:
        self._error_logger.warning(msg, *args, **kwargs)

    def info(self, msg: object, *args: object, **kwargs: object) -> None:
        self._error_logger.info(msg, *args, **kwargs)

    def debug(self, msg: object, *args: object, **kwargs: object) -> None:
        self._error_logger.debug(msg, *args, **kwargs)

    def exception(self, msg: object, *args: object, **kwargs: object) -> None:
        self._error_logger.exception(msg, *args, **kwargs)

    def log(self, lvl: int, msg: object, *args: object, **kwargs: object) -> None:
        self._error_logger.log(lvl, msg, *args, **kwargs)

    def access(
        self,
        resp: "gunicorn.http.wsgi.Response",
        req: "gunicorn.http.Request",
        environ: dict[str, object],
        request_time: timedelta,
    ) -> None:
        status = resp.status
        if isinstance(status, str):
            status = status.split(None, 1)[0]

        # never log the query string, ids in paths are fine but secrets may not be
        self._access_logger.info(
            "request",
            method=environ["REQUEST_METHOD"],
            path=environ.get("PATH_INFO"),
            status=status,
            response_length=getattr(resp, "sent", None),
            request_time_seconds=f"{request_time.seconds:d}.{request_time.microseconds:06d}",
            pid=f"<{os.getpid()}>",
        )

    def reopen_files(self) -> None:
        pass  # we only log to streams

    def close_on_exec(self) -> None:
        pass  # we only log to streams
