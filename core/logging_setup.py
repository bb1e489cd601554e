"""
Core Module - Logging Setup.

Structured stdout logging for the engine. Modules log through
``logging.getLogger(__name__)``; this module only installs the handler.
"""

import json
import logging
import sys
from typing import Any, Optional


def setup_logging(
    level: str = "INFO",
    log_format: str = "text",
    correlation_id: Optional[str] = None,
) -> logging.Logger:
    """
    Set up structured logging.

    Args:
        level: Log level
        log_format: Output format (json or text)
        correlation_id: Correlation ID for tracing

    Returns:
        The engine's top-level logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
                "correlation_id": correlation_id or "",
            })
        )
    else:
        formatter = logging.Formatter(
            f"%(asctime)s | %(levelname)-8s | %(name)s | {correlation_id or ''} | %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    return logging.getLogger("perp_engine")


def short_key(value: Any, visible: int = 4) -> str:
    """
    Shorten a public key for log lines.

    Example: "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin" -> "9xQe...VFin"
    """
    text = str(value)
    if len(text) <= visible * 2 + 3:
        return text
    return f"{text[:visible]}...{text[-visible:]}"
