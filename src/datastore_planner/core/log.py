"""
Logging configuration.

Modules log through logging.getLogger(__name__) and never configure
handlers themselves. Applications embedding the planner call
configure_logging once, either with a plain console format or with JSON
lines for log shippers.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

PACKAGE_LOGGER = "datastore_planner"

# Extra attributes copied into JSON records when a call site passes them.
_EXTRA_FIELDS = ("host", "vm", "datastore", "size")


class JSONFormatter(logging.Formatter):
    """JSON line formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for name in _EXTRA_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        return json.dumps(log_data)


def configure_logging(level: int | str = logging.INFO, json_output: bool = False) -> logging.Logger:
    """
    Attach a single stream handler to the package logger.

    Calling it again replaces the handler instead of stacking another one.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
    logger.addHandler(handler)
    return logger
