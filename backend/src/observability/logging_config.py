"""Structured JSON logging configuration.

Provides centralized logging setup with event correlation and JSON formatting.
"""

import logging
import json
import sys
from datetime import datetime, timezone

from .context import get_event_id, order_id_var, shop_domain_var


class EvaluationContextFilter(logging.Filter):
    """Add event_id, shop_domain and order_id to all log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add context attributes to log record.

        Explicit ``extra`` values passed by the caller win over the context.

        Returns:
            bool: Always True (don't filter out records)
        """
        record.event_id = get_event_id()
        if not hasattr(record, "shop_domain"):
            record.shop_domain = shop_domain_var.get()
        if not hasattr(record, "order_id"):
            record.order_id = order_id_var.get()
        return True


class JSONFormatter(logging.Formatter):
    """Format log records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "event_id": getattr(record, "event_id", "no-event-id"),
            "logger": record.name,
            "function": record.funcName,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["error"] = str(record.exc_info[1])
            log_data["traceback"] = self.formatException(record.exc_info)

        shop_domain = getattr(record, "shop_domain", None)
        if shop_domain:
            log_data["shop_domain"] = shop_domain
        order_id = getattr(record, "order_id", None)
        if order_id:
            log_data["order_id"] = str(order_id)

        return json.dumps(log_data)


_NOISY_LOGGERS = ("sqlalchemy.engine", "urllib3", "celery.redirected", "kombu")


def configure_logging(level: str = "INFO", json_format: bool = True) -> logging.Handler:
    """Install the stdout handler used by workers and scripts.

    Every record passes through EvaluationContextFilter, so both formats carry
    the event id and the shop being processed.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        json_format: JSON lines when True, plain text otherwise

    Returns:
        logging.Handler: The installed handler
    """
    log_level = getattr(logging, level.upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.addFilter(EvaluationContextFilter())
    handler.setFormatter(
        JSONFormatter() if json_format else logging.Formatter(
            "%(asctime)s %(levelname)s [%(event_id)s] %(shop_domain)s/%(order_id)s %(name)s: %(message)s"
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(log_level)
    root_logger.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return handler
