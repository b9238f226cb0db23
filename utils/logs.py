from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import Request

LOGGER_NAME = "lingocards"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(request_id)s] %(message)s"


class _RequestIdDefault(logging.Filter):
    """Records emitted outside a request still need a request_id for the format."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = "-"
        return True


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger(LOGGER_NAME)
    if not any(getattr(h, "_lingocards", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.addFilter(_RequestIdDefault())
        handler._lingocards = True
        root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


def new_request_id() -> str:
    return uuid.uuid4().hex


def request_logger(request_id: Optional[str] = None, name: str = "core") -> logging.LoggerAdapter:
    """Logger bound to one request; passed explicitly into core functions."""
    return logging.LoggerAdapter(
        logging.getLogger(f"{LOGGER_NAME}.{name}"),
        {"request_id": request_id or new_request_id()},
    )


def get_request_logger(request: Request) -> logging.LoggerAdapter:
    """FastAPI dependency: logger bound to the request's correlation id."""
    return request_logger(getattr(request.state, "request_id", None))
