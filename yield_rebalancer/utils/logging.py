"""Logging configuration for Yield Rebalancer.

Root logger setup plus a helper for key=value context on log lines.
"""

import logging
import sys
from pathlib import Path
from typing import Any, Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    level: str = "INFO",
    log_format: Optional[str] = None,
    log_file: Optional[str | Path] = None,
) -> None:
    """Configure logging for the application.

    Logs always go to stdout. When ``log_file`` is given, the same records
    are also appended to that file.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Custom format string. If None, uses DEFAULT_FORMAT.
        log_file: Optional path to an additional log file

    Example:
        >>> setup_logging(level="DEBUG")
        >>> get_logger(__name__).info("Rebalancer started")
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    logging.basicConfig(
        level=numeric_level,
        format=log_format or DEFAULT_FORMAT,
        handlers=handlers,
        force=True,
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a module.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    **context: Any,
) -> None:
    """Log a message with structured context.

    Context is appended to the message in key=value format.

    Example:
        >>> log_with_context(
        ...     logger, "warning", "Movement failed",
        ...     source="lido", destination="morpho", reason="submission_failed",
        ... )
        # Logs: "Movement failed | source=lido destination=morpho reason=submission_failed"
    """
    log_func = getattr(logger, level.lower())

    if context:
        context_str = " ".join(f"{k}={v}" for k, v in context.items())
        log_func("%s | %s", message, context_str)
    else:
        log_func(message)
