"""Logging utilities for Repository Migration Tool."""

import sys
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from .redaction import redact


def _redacting_patcher(redactor: Callable[[str], str]):
    """Build a loguru patcher that scrubs credentials from every record."""

    def patcher(record) -> None:
        record['message'] = redactor(record['message'])

    return patcher


def setup_logging(
    level: str = 'INFO',
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    redactor: Optional[Callable[[str], str]] = None,
) -> None:
    """Setup logging configuration using loguru.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        log_format: Optional custom log format
        redactor: Function used to strip credentials from messages;
            defaults to pattern-based redaction
    """
    # Remove default handler
    logger.remove()
    logger.configure(
        patcher=_redacting_patcher(redactor or redact),
        extra={'component': 'repo-migrate'},
    )

    # Default format if not provided
    if log_format is None:
        log_format = (
            '<green>{time:YYYY-MM-DD HH:mm:ss}</green> | '
            '<level>{level: <8}</level> | '
            '<cyan>{extra[component]}</cyan> | '
            '<level>{message}</level>'
        )

    # Add console handler
    logger.add(
        sys.stderr,
        format=log_format,
        level=level,
        colorize=True,
        backtrace=False,
        diagnose=False,
    )

    # Add file handler if specified
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        # File format (no colors)
        file_format = (
            '{time:YYYY-MM-DD HH:mm:ss} | '
            '{level: <8} | '
            '{extra[component]} | '
            '{message}'
        )

        logger.add(
            log_file,
            format=file_format,
            level=level,
            rotation='10 MB',
            retention='30 days',
            compression='gz',
            backtrace=False,
            diagnose=False,
        )

    logger.debug(f'Logging initialized with level: {level}')
    if log_file:
        logger.info(f'Log file: {log_file}')
