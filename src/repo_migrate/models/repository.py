"""Repository and migration task models."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..exceptions import TransferStage


class RepositoryIdentifier(BaseModel):
    """Unique key for one migration unit: ``owner/name`` on the source host."""

    model_config = ConfigDict(frozen=True)

    owner: str = Field(..., description='Source account or organization')
    name: str = Field(..., description='Repository name')

    @field_validator('owner', 'name')
    @classmethod
    def validate_part(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Repository owner and name must not be empty')
        if '/' in v or '..' in v or any(ord(c) < 32 for c in v):
            raise ValueError(f'Invalid repository path component: {v!r}')
        return v

    @classmethod
    def parse(cls, value: str, default_owner: Optional[str] = None) -> 'RepositoryIdentifier':
        """Parse ``owner/name`` (or a bare ``name`` with a default owner).

        A trailing ``.git`` suffix is dropped.

        Raises:
            ValueError: If the value cannot be parsed
        """
        value = value.strip()
        if value.endswith('.git'):
            value = value[: -len('.git')]
        if '/' in value:
            owner, _, name = value.partition('/')
        elif default_owner:
            owner, name = default_owner, value
        else:
            raise ValueError(
                f'Repository {value!r} has no owner; use owner/name or set a source org'
            )
        return cls(owner=owner, name=name)

    @property
    def full_name(self) -> str:
        return f'{self.owner}/{self.name}'

    @property
    def slug(self) -> str:
        """Filesystem-safe key, e.g. for the retention directory."""
        return f'{self.owner}_{self.name}'

    def __str__(self) -> str:
        return self.full_name


class RemoteEndpoint(BaseModel):
    """A git URL paired with the HTTP Authorization header that opens it.

    The URL itself never carries the credential, so it is safe to log.
    """

    model_config = ConfigDict(frozen=True)

    url: str = Field(..., description='Credential-free git URL')
    auth_header: Optional[str] = Field(
        default=None, repr=False, description='Authorization header value'
    )

    def __str__(self) -> str:
        return self.url


class TaskStatus(str, Enum):
    """Migration task status.

    Statuses only move forward, except that a retry resets to ``pending``.
    """

    PENDING = 'pending'
    PROVISIONING = 'provisioning'
    CLONING = 'cloning'
    PUSHING = 'pushing'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'

    @property
    def terminal(self) -> bool:
        return self in (TaskStatus.SUCCEEDED, TaskStatus.FAILED)


_FORWARD_ORDER = [
    TaskStatus.PENDING,
    TaskStatus.PROVISIONING,
    TaskStatus.CLONING,
    TaskStatus.PUSHING,
    TaskStatus.SUCCEEDED,
]


class MigrationTask(BaseModel):
    """State of one repository's migration, owned by a single worker."""

    identifier: RepositoryIdentifier = Field(..., description='Repository key')
    source_clone_url: Optional[str] = Field(default=None, description='Source URL')
    destination_push_url: Optional[str] = Field(
        default=None, description='Destination URL'
    )
    status: TaskStatus = Field(default=TaskStatus.PENDING, description='Task status')
    attempts: int = Field(default=0, description='Attempts started')
    last_error: Optional[str] = Field(default=None, description='Last error message')
    error_stage: Optional[str] = Field(
        default=None, description='Stage of the last failure'
    )
    transient: Optional[bool] = Field(
        default=None, description='Whether the last failure was transient'
    )
    retained_path: Optional[str] = Field(
        default=None, description='Where the clone was kept, if requested'
    )
    started_at: Optional[datetime] = Field(default=None, description='Start time')
    completed_at: Optional[datetime] = Field(
        default=None, description='Completion time'
    )

    def advance(self, status: TaskStatus) -> None:
        """Move to a later status.

        Raises:
            ValueError: On a backwards move or a move out of a terminal status
        """
        if self.status.terminal:
            raise ValueError(
                f'{self.identifier}: task already {self.status.value}'
            )
        if status == TaskStatus.FAILED:
            self.status = status
            return
        if _FORWARD_ORDER.index(status) < _FORWARD_ORDER.index(self.status):
            raise ValueError(
                f'{self.identifier}: cannot move from {self.status.value} to {status.value}'
            )
        self.status = status

    def reset_for_retry(self) -> None:
        """Return a non-terminal task to ``pending`` before another attempt."""
        if self.status.terminal:
            raise ValueError(f'{self.identifier}: task already {self.status.value}')
        self.status = TaskStatus.PENDING

    def record_error(
        self,
        message: str,
        stage: Optional[str] = None,
        transient: bool = False,
    ) -> None:
        self.last_error = message
        self.error_stage = stage
        self.transient = transient

    def snapshot(self) -> 'MigrationTask':
        """Detached copy for the report."""
        return self.model_copy(deep=True)


class TransferOutcome(BaseModel):
    """Result of a completed mirror transfer."""

    status: TaskStatus = Field(..., description='Always succeeded on return')
    stages_completed: List[TransferStage] = Field(
        default_factory=list, description='Stages that finished'
    )
    retained_path: Optional[str] = Field(
        default=None, description='Where the clone was kept, if requested'
    )
