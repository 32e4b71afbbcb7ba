"""
Structured logging configuration using structlog.

Provides JSON-structured logs that are queryable and include:
- Timestamp
- Log level
- Component name
- Price window summaries (hashed instead of dumped)
- Process memory for engine snapshots
"""

import hashlib
import logging
import sys
from typing import Any, Dict, Optional

import numpy as np
import psutil
import structlog


def hash_array(arr: np.ndarray) -> str:
    """Hash a numpy array for logging without dumping all data."""
    if arr.size == 0:
        return "empty"
    data_hash = hashlib.md5(np.ascontiguousarray(arr).tobytes()).hexdigest()[:8]
    return f"{data_hash}_len_{arr.size}"


def summarize_prices(values: np.ndarray) -> Dict[str, Any]:
    """
    Compact description of a price series for log events.

    Args:
        values: Close prices

    Returns:
        Dict with hash, length, first/last and min/max
    """
    if values.size == 0:
        return {"hash": "empty", "length": 0}
    return {
        "hash": hash_array(values),
        "length": int(values.size),
        "first": float(values[0]),
        "last": float(values[-1]),
        "min": float(np.min(values)),
        "max": float(np.max(values)),
    }


def get_memory_usage() -> float:
    """Get current process memory usage in MB."""
    process = psutil.Process()
    return process.memory_info().rss / 1024 / 1024


def configure_structlog(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    json_output: bool = True,
):
    """
    Configure structlog for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file path for log output
        json_output: Render JSON lines (True) or human-readable console output
    """
    handler: logging.Handler
    if log_file:
        handler = logging.FileHandler(log_file)
    else:
        handler = logging.StreamHandler(sys.stdout)

    logging.basicConfig(
        format="%(message)s",
        handlers=[handler],
        level=getattr(logging, log_level.upper()),
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a configured structlog logger.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)
