"""Shared utilities."""

from .logging import setup_logging
from .redaction import redact
from .retry import BackoffPolicy, retry_async, retry_sync

__all__ = [
    'setup_logging',
    'redact',
    'BackoffPolicy',
    'retry_async',
    'retry_sync',
]
