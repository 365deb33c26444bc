"""Migration report."""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from ..models.repository import MigrationTask, TaskStatus


class MigrationReport(BaseModel):
    """Outcome of a batch: one finalized task per input repository, in input order."""

    tasks: List[MigrationTask] = Field(default_factory=list, description='Task snapshots')
    started_at: Optional[datetime] = Field(default=None, description='Batch start time')
    completed_at: Optional[datetime] = Field(
        default=None, description='Batch completion time'
    )
    dry_run: bool = Field(default=False, description='Nothing was changed')

    @property
    def total(self) -> int:
        return len(self.tasks)

    @property
    def succeeded(self) -> int:
        return len(self.by_status(TaskStatus.SUCCEEDED))

    @property
    def failed(self) -> int:
        return len(self.by_status(TaskStatus.FAILED))

    @property
    def skipped(self) -> int:
        """Tasks that never reached a terminal status."""
        return self.total - self.succeeded - self.failed

    @property
    def counts(self) -> Dict[str, int]:
        return {
            'succeeded': self.succeeded,
            'failed': self.failed,
            'skipped': self.skipped,
        }

    @property
    def all_succeeded(self) -> bool:
        return self.failed == 0 and self.skipped == 0

    @property
    def duration(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def by_status(self, status: TaskStatus) -> List[MigrationTask]:
        return [task for task in self.tasks if task.status == status]

    def failed_tasks(self) -> List[MigrationTask]:
        return self.by_status(TaskStatus.FAILED)

    def get(self, full_name: str) -> Optional[MigrationTask]:
        """Look up a task by ``owner/name``."""
        for task in self.tasks:
            if task.identifier.full_name == full_name:
                return task
        return None

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready representation."""
        return {
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'duration_seconds': self.duration,
            'dry_run': self.dry_run,
            'counts': self.counts,
            'tasks': [
                {
                    'repository': task.identifier.full_name,
                    'status': task.status.value,
                    'attempts': task.attempts,
                    'source_clone_url': task.source_clone_url,
                    'destination_push_url': task.destination_push_url,
                    'error_stage': task.error_stage,
                    'last_error': task.last_error,
                    'transient': task.transient,
                    'retained_path': task.retained_path,
                    'started_at': task.started_at.isoformat() if task.started_at else None,
                    'completed_at': (
                        task.completed_at.isoformat() if task.completed_at else None
                    ),
                }
                for task in self.tasks
            ],
        }

    def write_json(self, path: Union[str, Path]) -> None:
        """Write the report to ``path`` as JSON."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)
