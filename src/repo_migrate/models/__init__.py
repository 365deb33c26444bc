"""Data models for repositories and migration tasks."""

from .repository import (
    MigrationTask,
    RemoteEndpoint,
    RepositoryIdentifier,
    TaskStatus,
    TransferOutcome,
)

__all__ = [
    'MigrationTask',
    'RemoteEndpoint',
    'RepositoryIdentifier',
    'TaskStatus',
    'TransferOutcome',
]
