from __future__ import annotations

import logging
import sys

from identity_lifecycle.configs.settings import get_settings


def setup_logging(level: str | None = None) -> None:
    """
    Structured-enough logging for ops users.

    Messages are dotted event names followed by key=value pairs, e.g.
    ``svc.user.create start tenant_id=... email=...``.
    """
    root = logging.getLogger()
    root.setLevel((level or get_settings().LOG_LEVEL).upper())

    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    handler.setFormatter(formatter)

    # Replace existing handlers to avoid duplicates under reload.
    root.handlers = [handler]


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
