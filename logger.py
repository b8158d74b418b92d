from __future__ import annotations

import os
import logging
import logging.handlers
import traceback
import json
import datetime as _dt
from typing import Any, Dict, Optional

ROOT_LOGGER = 'redraft'
LOG_FILE = 'redraft.log'
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 3

# Chatty third-party loggers, capped at WARNING
NOISY_LOGGERS = ('openai', 'httpx', 'urllib3')


def _repo_root() -> str:
    return os.path.dirname(os.path.abspath(__file__))


def get_log_dir() -> str:
    """Directory for redraft.log: REDRAFT_LOG_DIR, else <repo>/logs."""
    logs = os.getenv('REDRAFT_LOG_DIR') or os.path.join(_repo_root(), 'logs')
    try:
        os.makedirs(logs, exist_ok=True)
    except OSError:
        pass
    return logs


def get_logger(name: str = ROOT_LOGGER, level: Optional[int] = None) -> logging.Logger:
    """Return a logger writing to the rotating redraft.log.

    Level is DEBUG when the DEBUG env var is set, else INFO. A console
    handler is attached in DEBUG mode or when the log file cannot be opened.
    Handlers are attached once per logger name.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    if level is None:
        level = logging.DEBUG if os.getenv('DEBUG') else logging.INFO
    logger.setLevel(level)

    if name == ROOT_LOGGER:
        for noisy in NOISY_LOGGERS:
            logging.getLogger(noisy).setLevel(logging.WARNING)

    formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%dT%H:%M:%SZ'
    )

    file_handler: Optional[logging.Handler]
    try:
        file_handler = logging.handlers.RotatingFileHandler(
            os.path.join(get_log_dir(), LOG_FILE),
            maxBytes=MAX_LOG_BYTES,
            backupCount=LOG_BACKUPS,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError:
        # Read-only deployments still get console logging
        file_handler = None

    if os.getenv('DEBUG') or file_handler is None:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def _record(event: str, **fields: Any) -> Dict[str, Any]:
    return {
        "timestamp": _dt.datetime.now(_dt.timezone.utc).isoformat(),
        "event": event,
        **fields,
    }


def log_event(event: str, message: str, level: int = logging.INFO) -> None:
    """Log ``[EVENT] message`` on the root redraft logger, e.g. REFINE_START."""
    try:
        get_logger().log(level, f"[{event}] {message}")
    except Exception:
        # Logging must never break a refinement
        pass


def log_exception(event: str, exc: Exception, level: int = logging.ERROR) -> None:
    """Log an exception with the active traceback."""
    try:
        tb = traceback.format_exc()
        get_logger().log(level, f"[{event}] Exception: {exc}\n{tb}")
    except Exception:
        pass


def log_json(event: str, message: str, **kwargs: Any) -> None:
    """Log one JSON line; extra kwargs become top-level fields."""
    try:
        get_logger().info(json.dumps(_record(event, message=message, **kwargs), default=str))
    except Exception:
        pass


def log_performance(event: str, duration_ms: float, **context: Any) -> None:
    """Log a timing record, e.g. REFINE_MESSAGE or LLM_COMPLETION."""
    try:
        data = _record(event, type="performance", duration_ms=round(duration_ms, 2), **context)
        get_logger().info(json.dumps(data, default=str))
    except Exception:
        pass
