"""
Module loggers for ordersaga.

Every module does ``logger = get_logger(__name__)``. By default that is a
stdlib logger under the ``ordersaga`` tree with a ``NullHandler`` attached, so
nothing is printed until the application configures logging (see
``ordersaga.monitoring.logging.setup_saga_logging``).

An application that uses structlog, loguru or similar can route every
ordersaga module through its own logger with ``set_logger``. Modules look the
logger up at import time, so call it before importing the rest of ordersaga.
"""

import logging
from typing import Any

_override: Any = None


def set_logger(logger: Any) -> None:
    """
    Use ``logger`` for all ordersaga modules, or None to restore stdlib logging.

    The replacement needs ``debug``, ``info``, ``warning``, ``error`` and
    ``critical`` methods accepting a message string.
    """
    global _override
    _override = logger


def get_logger(name: str = "ordersaga") -> Any:
    if _override is not None:
        return _override

    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    return logger
