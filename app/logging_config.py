"""
Logging configuration for Salustia.
Provides consistent logging across all modules, plus a separate security log.
"""
import json
import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional

SECURITY_LOGGER_NAME = "security"


def setup_logging(level: str = "INFO", log_file: str = None, security_log_file: str = None):
    """
    Configure logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file. If None, only logs to console.
        security_log_file: Optional path for security events. If None,
            security events go to the root handlers.
    """
    # Convert string level to logging constant
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    detailed_formatter = logging.Formatter(
        fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Console handler (stdout)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(detailed_formatter)

    handlers = [console_handler]

    # File handler with rotation (optional)
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        # Rotate after 10MB, keep 5 backup files
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5
        )
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(detailed_formatter)
        handlers.append(file_handler)

    # Configure root logger
    logging.basicConfig(
        level=numeric_level,
        handlers=handlers,
        force=True  # Override any existing configuration
    )

    # Set third-party loggers to WARNING to reduce noise
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)

    # Security events go to their own file and stay out of the root logger
    if security_log_file:
        security_path = Path(security_log_file)
        security_path.parent.mkdir(parents=True, exist_ok=True)

        security_logger = logging.getLogger(SECURITY_LOGGER_NAME)
        for handler in list(security_logger.handlers):
            security_logger.removeHandler(handler)
        security_handler = logging.FileHandler(security_log_file)
        security_handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(message)s'))
        security_logger.addHandler(security_handler)
        security_logger.setLevel(logging.INFO)
        security_logger.propagate = False

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured at {level} level")
    if log_file:
        logger.info(f"Logging to file: {log_file}")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: Usually __name__ from the calling module

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def log_security_event(event: str, details: Optional[dict] = None) -> None:
    """Record a security-relevant event (sanitized prompt, denied access, admin action)."""
    logging.getLogger(SECURITY_LOGGER_NAME).warning(
        f"[SECURITY] {event}: {json.dumps(details or {}, default=str, ensure_ascii=False)}"
    )
