"""Central logging configuration.

Usage:
    from kinograph.utils.logging_config import configure_logging
    configure_logging(json_logs=False, level="INFO")

Idempotent: safe to call multiple times.
"""
from __future__ import annotations
import json
import logging
import os
import sys
import time
from logging.handlers import RotatingFileHandler
from typing import Any, Dict

import json_log_formatter
from loguru import logger

_CONFIGURED = False
_PLAIN_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _ensure_parent(path: str) -> None:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)


def configure_logging(json_logs: bool = False, level: str = "INFO") -> None:
    global _CONFIGURED
    if _CONFIGURED:
        return
    root = logging.getLogger()
    root.setLevel(level.upper())
    for h in list(root.handlers):
        root.removeHandler(h)

    console_handler = logging.StreamHandler(sys.stdout)
    if json_logs:
        console_handler.setFormatter(json_log_formatter.JSONFormatter())
    else:
        console_handler.setFormatter(logging.Formatter(fmt=_PLAIN_FORMAT, datefmt=_DATE_FORMAT))
    root.addHandler(console_handler)

    # loguru carries the library's own log lines
    logger.remove()
    logger.add(sys.stdout, level=level.upper(), serialize=json_logs)

    # Optional structured JSON file (rotating) controlled by env KINOGRAPH_LOG_FILE
    log_file = os.getenv('KINOGRAPH_LOG_FILE')
    if log_file:
        _ensure_parent(log_file)
        file_handler = RotatingFileHandler(log_file, maxBytes=5_000_000, backupCount=3)
        file_handler.setFormatter(json_log_formatter.JSONFormatter())
        root.addHandler(file_handler)
        logger.add(log_file, level=level.upper(), serialize=True, rotation="5 MB", retention=3)
    _CONFIGURED = True


def emit_metrics(record: Dict[str, Any]) -> None:
    """Emit a metrics JSON line on the 'metrics' logger.

    Controlled by env KINOGRAPH_METRICS_FILE; without it the line goes wherever
    the root logger sends INFO records.
    """
    _configure_metrics_channel()
    payload = {'ts': time.time(), **record}
    try:
        line = json.dumps(payload, default=str)
    except (TypeError, ValueError):
        logging.getLogger(__name__).debug('Failed to serialize metrics record')
        return
    logging.getLogger('metrics').info(line)


def _configure_metrics_channel() -> None:
    path = os.getenv('KINOGRAPH_METRICS_FILE')
    if not path:
        return
    metrics_logger = logging.getLogger('metrics')
    if any(isinstance(h, RotatingFileHandler) for h in metrics_logger.handlers):
        return
    _ensure_parent(path)
    handler = RotatingFileHandler(path, maxBytes=5_000_000, backupCount=2)
    handler.setFormatter(logging.Formatter('%(message)s'))
    metrics_logger.addHandler(handler)
    metrics_logger.setLevel(logging.INFO)
