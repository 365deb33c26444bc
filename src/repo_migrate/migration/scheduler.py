"""Bounded worker pool that migrates a batch of repositories."""

import asyncio
import os
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from loguru import logger

from ..api.github import GitHubSource
from ..exceptions import MigrateError, MigrationCancelled, TransferError, TransferStage
from ..git.transfer import MirrorTransfer
from ..models.repository import MigrationTask, RepositoryIdentifier, TaskStatus
from ..utils.redaction import redact
from ..utils.retry import BackoffPolicy
from .provisioner import DestinationProvisioner
from .report import MigrationReport

CANCELLED = 'cancelled'
PROVISION_STAGE = 'provision'


def default_concurrency() -> int:
    """Pool size used when the caller gives none."""
    return min(32, (os.cpu_count() or 1) + 4)


class MigrationScheduler:
    """Fans repositories out to a fixed pool of worker coroutines.

    Workers pull ``(index, identifier)`` pairs from a shared queue, so each
    repository is handled by exactly one worker. Finished tasks are stored
    under a lock keyed by input position, which keeps the report in input
    order whatever order tasks complete in.

    A task whose provisioning or transfer fails with a transient error is
    retried from provisioning, up to ``max_attempts`` attempts in total.
    Anything else fails the task on the spot.
    """

    def __init__(
        self,
        source: GitHubSource,
        provisioner: DestinationProvisioner,
        transfer: MirrorTransfer,
        max_attempts: int = 2,
        policy: Optional[BackoffPolicy] = None,
        dry_run: bool = False,
        redactor: Callable[[str], str] = redact,
        on_task_complete: Optional[Callable[[MigrationTask], None]] = None,
    ):
        """Initialize migration scheduler.

        Args:
            source: Builds clone endpoints for source repositories
            provisioner: Creates destination repositories
            transfer: Moves the git data
            max_attempts: Attempts per task for transient failures
            policy: Backoff between task attempts
            dry_run: Provision in dry-run mode and skip transfers
            redactor: Strips credentials from recorded errors
            on_task_complete: Called with each finished task
        """
        if max_attempts < 1:
            raise ValueError('max_attempts must be at least 1')
        self.source = source
        self.provisioner = provisioner
        self.transfer = transfer
        self.max_attempts = max_attempts
        self.policy = policy or BackoffPolicy()
        self.dry_run = dry_run
        self.redactor = redactor
        self.on_task_complete = on_task_complete
        self.logger = logger.bind(component='MigrationScheduler')

        self._cancel_event = asyncio.Event()
        self.in_flight = 0
        self.max_in_flight = 0

    def cancel(self) -> None:
        """Ask every worker to stop at its next stage boundary."""
        if not self._cancel_event.is_set():
            self.logger.warning('Cancellation requested')
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    async def run(
        self,
        identifiers: Iterable[RepositoryIdentifier],
        concurrency_limit: Optional[int] = None,
    ) -> MigrationReport:
        """Migrate every repository and return the batch report.

        Args:
            identifiers: Repositories to migrate; duplicates are dropped
            concurrency_limit: Worker count (defaults to the available parallelism)

        Returns:
            Report with one terminal task per repository, in input order
        """
        if concurrency_limit is not None and concurrency_limit < 1:
            raise ValueError('concurrency_limit must be at least 1')

        unique = self._unique(identifiers)
        report = MigrationReport(started_at=datetime.now(), dry_run=self.dry_run)
        if not unique:
            report.completed_at = datetime.now()
            return report

        workers = min(concurrency_limit or default_concurrency(), len(unique))
        self.logger.info(
            f'Migrating {len(unique)} repositories with {workers} workers'
        )

        queue: asyncio.Queue = asyncio.Queue()
        for item in enumerate(unique):
            queue.put_nowait(item)

        results: Dict[int, MigrationTask] = {}
        lock = asyncio.Lock()
        self.in_flight = 0
        self.max_in_flight = 0

        await asyncio.gather(
            *(self._worker(queue, results, lock) for _ in range(workers))
        )

        report.tasks = [results[index] for index in range(len(unique))]
        report.completed_at = datetime.now()
        self.logger.info(
            f'Batch finished: {report.succeeded} succeeded, {report.failed} failed'
        )
        return report

    def _unique(
        self, identifiers: Iterable[RepositoryIdentifier]
    ) -> List[RepositoryIdentifier]:
        seen = set()
        unique = []
        for identifier in identifiers:
            if identifier in seen:
                self.logger.warning(f'Skipping duplicate repository {identifier}')
                continue
            seen.add(identifier)
            unique.append(identifier)
        return unique

    async def _worker(
        self,
        queue: asyncio.Queue,
        results: Dict[int, MigrationTask],
        lock: asyncio.Lock,
    ) -> None:
        while True:
            try:
                index, identifier = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            task = await self._run_task(identifier)

            async with lock:
                if index in results:
                    raise RuntimeError(f'{identifier} reported twice')
                results[index] = task.snapshot()

            if self.on_task_complete is not None:
                self.on_task_complete(task)

    async def _run_task(self, identifier: RepositoryIdentifier) -> MigrationTask:
        task = MigrationTask(identifier=identifier, started_at=datetime.now())

        while True:
            if self.cancelled:
                self._fail(task, CANCELLED)
                break

            task.attempts += 1
            self._enter()
            try:
                await self._attempt(task)
                task.advance(TaskStatus.SUCCEEDED)
                break
            except MigrationCancelled:
                self._fail(task, CANCELLED)
                break
            except MigrateError as e:
                stage = e.stage.value if isinstance(e, TransferError) else PROVISION_STAGE
                message = self.redactor(str(e))
                task.record_error(message, stage=stage, transient=e.transient)

                if e.transient and task.attempts < self.max_attempts and not self.cancelled:
                    wait = self.policy.delay(task.attempts)
                    self.logger.warning(
                        f'{identifier}: attempt {task.attempts}/{self.max_attempts} '
                        f'failed ({message}); retrying in {wait:.1f}s'
                    )
                    task.reset_for_retry()
                    await asyncio.sleep(wait)
                    continue

                self.logger.error(
                    f'{identifier}: failed after {task.attempts} attempt(s): {message}'
                )
                task.advance(TaskStatus.FAILED)
                break
            except Exception as e:
                # An unexpected error fails this task only
                message = self.redactor(f'unexpected error: {e}')
                self.logger.error(f'{identifier}: {message}')
                self._fail(task, message)
                break
            finally:
                self._leave()

        task.completed_at = datetime.now()
        return task

    async def _attempt(self, task: MigrationTask) -> None:
        """Provision then transfer one repository, advancing its status."""
        identifier = task.identifier

        task.advance(TaskStatus.PROVISIONING)
        source = self.source.clone_endpoint(identifier)
        task.source_clone_url = source.url
        destination = await self.provisioner.ensure(identifier)
        task.destination_push_url = destination.url

        if self.dry_run:
            self.logger.info(f'[DRY RUN] Would mirror {source.url} to {destination.url}')
            return

        if self.cancelled:
            raise MigrationCancelled()

        task.advance(TaskStatus.CLONING)

        def on_stage(stage: TransferStage) -> None:
            if stage == TransferStage.PUSH_BRANCHES:
                task.advance(TaskStatus.PUSHING)

        outcome = await self.transfer.transfer(
            identifier,
            source,
            destination,
            cancel_event=self._cancel_event,
            on_stage=on_stage,
        )
        task.retained_path = outcome.retained_path

    def _fail(self, task: MigrationTask, message: str, stage: Optional[str] = None) -> None:
        task.record_error(message, stage=stage, transient=False)
        task.advance(TaskStatus.FAILED)

    def _enter(self) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)

    def _leave(self) -> None:
        self.in_flight -= 1
