from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Union

from gdprkv.core.trace import current_request_id


FILE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | rid=%(request_id)s | %(message)s"
CONSOLE_FORMAT = "%(levelname)s %(name)s [%(request_id)s]: %(message)s"


class RequestIdFilter(logging.Filter):
    """Stamps each record with the request id bound by `request_context`, or "-"."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = current_request_id("-")
        return True


def _attach(logger: logging.Logger, handler: logging.Handler, fmt: str) -> None:
    handler.setFormatter(logging.Formatter(fmt))
    handler.addFilter(RequestIdFilter())
    logger.addHandler(handler)


def setup_logging(log_dir: str = "logs", *, level: Union[int, str] = logging.INFO) -> logging.Logger:
    """
    Configure the "gdprkv" logger tree: a rotating file under `log_dir` plus
    stderr. Child loggers (gdprkv.purge, gdprkv.audit, ...) inherit both.
    Calling it again only updates the level.
    """
    logger = logging.getLogger("gdprkv")
    logger.setLevel(level)
    logger.propagate = False

    has_file = any(isinstance(h, RotatingFileHandler) for h in logger.handlers)
    has_console = any(type(h) is logging.StreamHandler for h in logger.handlers)

    if not has_file:
        os.makedirs(log_dir, exist_ok=True)
        path = os.path.join(log_dir, "gdprkv.log")
        _attach(logger, RotatingFileHandler(path, maxBytes=1_000_000, backupCount=5, encoding="utf-8"), FILE_FORMAT)
    if not has_console:
        _attach(logger, logging.StreamHandler(), CONSOLE_FORMAT)

    return logger
