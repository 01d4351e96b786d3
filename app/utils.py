# -*- coding: utf-8 -*-
"""
utils.py

Utility trasversali dell'API:
- identificativo di correlazione per richiesta (request id) e sua propagazione nei log
- configurazione del logging
- timestamp ISO 8601 e valori sicuri per gli header HTTP
"""
import logging
import secrets
import string
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from urllib.parse import quote

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

_LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s [%(request_id)s]: %(message)s"
_LOG_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}
_ID_ALPHABET = string.ascii_lowercase + string.digits


# -----------------------------------------------------------------------------
# Request id
# -----------------------------------------------------------------------------
def generate_request_id() -> str:
    """Formato: req_<epoch ms>_<9 caratteri casuali base36>."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"req_{int(time.time() * 1000)}_{suffix}"


class RequestIdFilter(logging.Filter):
    """Aggiunge `request_id` a ogni record, così il formato può usarlo."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get()
        return True


def configure_logging(level: str = "info") -> None:
    root = logging.getLogger()
    if any(isinstance(f, RequestIdFilter) for h in root.handlers for f in h.filters):
        root.setLevel(_LOG_LEVELS.get(level, logging.INFO))
        return

    logging.basicConfig(
        level=_LOG_LEVELS.get(level, logging.INFO),
        format=_LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for handler in root.handlers:
        handler.addFilter(RequestIdFilter())


# -----------------------------------------------------------------------------
# Varie
# -----------------------------------------------------------------------------
def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def header_safe(value: str) -> str:
    """Gli header HTTP sono latin-1: i valori non codificabili vengono percent-encoded."""
    try:
        value.encode("latin-1")
    except UnicodeEncodeError:
        return quote(value, safe=" ._-()[]")
    if any(ch in value for ch in "\r\n\""):
        return quote(value, safe=" ._-()[]")
    return value
