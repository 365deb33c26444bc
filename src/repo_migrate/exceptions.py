"""Migration error taxonomy.

Batch-fatal errors (``ConfigError``, ``SourceListError``) abort before any
repository is dispatched. Task-level errors (``ProvisionError``,
``TransferError``, ``MigrationCancelled``) are recorded in the report and
never stop the rest of the batch.
"""

from enum import Enum
from typing import Optional


class TransferStage(str, Enum):
    """Steps of a mirror transfer."""

    CLONE = 'clone'
    REMOTE_ADD = 'remote_add'
    PUSH_BRANCHES = 'push_branches'
    PUSH_TAGS = 'push_tags'


class MigrateError(Exception):
    """Base exception for migration errors."""

    transient = False


class ConfigError(MigrateError):
    """Missing or invalid configuration."""


class SourceListError(MigrateError):
    """The source host could not produce a repository list."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ProvisionError(MigrateError):
    """The destination repository could not be created or resolved."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        transient: bool = False,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.transient = transient


class TransferError(MigrateError):
    """A git transfer step failed."""

    def __init__(self, stage: TransferStage, message: str, transient: bool = False):
        super().__init__(f'{stage.value} failed: {message}')
        self.stage = stage
        self.message = message
        self.transient = transient


class MigrationCancelled(MigrateError):
    """Cancellation was requested before the task finished."""

    def __init__(self, message: str = 'cancelled'):
        super().__init__(message)
