"""Logging setup for the bridge.

Log files go to ``log_dir`` (default ``data/logs``), rotated at midnight via
TimedRotatingFileHandler. A console handler mirrors everything to stderr.

Passwords are never passed to a logger anywhere in the package; the
formatter does not need to scrub anything.
"""
from __future__ import annotations

import logging
import os
from logging.handlers import TimedRotatingFileHandler

_LOG_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"
_LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_LOG_FILE = "ldap_bridge.log"

# Handlers installed by us, removed again on reconfiguration.
_file_handler: logging.Handler | None = None
_console_handler: logging.Handler | None = None


def _parse_level(level: str) -> int:
    level_str = (level or "INFO").strip().upper()
    if level_str not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        level_str = "INFO"
    return getattr(logging, level_str, logging.INFO)


def setup_logging(level: str = "INFO", retention_days: int = 30, log_dir: str | None = None) -> None:
    """Configure the root logger.

    - file handler (only when ``log_dir`` is given): daily rotation
    - console handler: always
    """
    global _file_handler, _console_handler

    log_level = _parse_level(level)
    retention_days = max(1, min(365, int(retention_days or 30)))

    root = logging.getLogger()
    for handler in (_file_handler, _console_handler):
        if handler and handler in root.handlers:
            root.removeHandler(handler)
            handler.close()
    _file_handler = None

    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATE_FORMAT)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        fh = TimedRotatingFileHandler(
            os.path.join(log_dir, _LOG_FILE),
            when="midnight",
            interval=1,
            backupCount=retention_days,
            encoding="utf-8",
            utc=True,
        )
        fh.suffix = "%Y-%m-%d"
        fh.setLevel(log_level)
        fh.setFormatter(formatter)
        root.addHandler(fh)
        _file_handler = fh

    ch = logging.StreamHandler()
    ch.setLevel(log_level)
    ch.setFormatter(formatter)
    root.addHandler(ch)
    _console_handler = ch

    root.setLevel(log_level)

    # ldap3 logs through its own logger at very fine granularity when enabled
    logging.getLogger("ldap3").setLevel(max(log_level, logging.WARNING))
    logging.getLogger("uvicorn.access").setLevel(max(log_level, logging.WARNING))

    logging.getLogger("ldap_bridge").info(
        "Logging configured: level=%s, retention=%d days, dir=%s",
        logging.getLevelName(log_level), retention_days, log_dir or "-",
    )
