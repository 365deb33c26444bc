"""Configuration and credentials."""

from .config import (
    Config,
    DestinationHostConfig,
    GitConfig,
    LoggingConfig,
    MigrationConfig,
    RetryConfig,
    SourceHostConfig,
)
from .credentials import CredentialStore

__all__ = [
    'Config',
    'DestinationHostConfig',
    'GitConfig',
    'LoggingConfig',
    'MigrationConfig',
    'RetryConfig',
    'SourceHostConfig',
    'CredentialStore',
]
