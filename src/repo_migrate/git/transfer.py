"""Mirror transfer: clone a source repository and push it to a destination."""

import asyncio
import os
import shutil
import tempfile
from pathlib import Path
from typing import Awaitable, Callable, Optional

from loguru import logger

from ..exceptions import MigrationCancelled, TransferError, TransferStage
from ..models.repository import (
    RemoteEndpoint,
    RepositoryIdentifier,
    TaskStatus,
    TransferOutcome,
)
from ..utils.redaction import redact
from ..utils.retry import BackoffPolicy, retry_async
from .operations import GitCommandError, GitRunner

DESTINATION_REMOTE = 'destination'
REPO_DIR_NAME = 'repo.git'


class MirrorTransfer:
    """Runs the clone / remote add / push branches / push tags cycle.

    Owns the temporary workspace of each transfer: it is created fresh for
    every call and is removed on every exit path, unless the caller asked to
    keep clones, in which case a successful clone is moved to the retention
    directory instead.
    """

    def __init__(
        self,
        runner: GitRunner,
        policy: Optional[BackoffPolicy] = None,
        temp_dir: Optional[str] = None,
        keep_clones: bool = False,
        retention_dir: str = 'clones',
        redactor: Callable[[str], str] = redact,
    ):
        """Initialize mirror transfer.

        Args:
            runner: Git collaborator
            policy: Backoff policy for transient git failures
            temp_dir: Parent of the per-transfer workspaces (system temp if None)
            keep_clones: Keep successful clones under ``retention_dir``
            retention_dir: Where kept clones go, one directory per repository
            redactor: Strips credentials from error messages
        """
        self.runner = runner
        self.policy = policy or BackoffPolicy()
        self.temp_dir = temp_dir
        self.keep_clones = keep_clones
        self.retention_dir = retention_dir
        self.redactor = redactor
        self.logger = logger.bind(component='MirrorTransfer')

    async def transfer(
        self,
        identifier: RepositoryIdentifier,
        source: RemoteEndpoint,
        destination: RemoteEndpoint,
        cancel_event: Optional[asyncio.Event] = None,
        on_stage: Optional[Callable[[TransferStage], None]] = None,
    ) -> TransferOutcome:
        """Mirror ``source`` into ``destination``.

        Args:
            identifier: Repository being moved (names the workspace)
            source: Clone endpoint
            destination: Push endpoint
            cancel_event: Checked before every stage
            on_stage: Called as each stage starts

        Returns:
            Outcome with status ``succeeded``

        Raises:
            TransferError: If a stage fails after its retries
            MigrationCancelled: If cancellation was requested between stages
        """
        workspace = self._create_workspace(identifier)
        repo_path = os.path.join(workspace, REPO_DIR_NAME)
        outcome = TransferOutcome(status=TaskStatus.PENDING)

        try:
            await self._stage(
                TransferStage.CLONE,
                lambda: self._fresh_clone(source, repo_path),
                identifier, outcome, cancel_event, on_stage,
            )
            await self._stage(
                TransferStage.REMOTE_ADD,
                lambda: self.runner.add_remote(repo_path, DESTINATION_REMOTE, destination),
                identifier, outcome, cancel_event, on_stage,
            )
            await self._stage(
                TransferStage.PUSH_BRANCHES,
                lambda: self.runner.push_all(repo_path, DESTINATION_REMOTE, destination),
                identifier, outcome, cancel_event, on_stage,
            )
            await self._stage(
                TransferStage.PUSH_TAGS,
                lambda: self.runner.push_tags(repo_path, DESTINATION_REMOTE, destination),
                identifier, outcome, cancel_event, on_stage,
            )

            outcome.status = TaskStatus.SUCCEEDED
            if self.keep_clones:
                outcome.retained_path = self._retain(identifier, repo_path)

            self.logger.info(f'Mirrored {identifier} to {destination.url}')
            return outcome

        finally:
            # Whatever happened, nothing is left in the temp area
            self._cleanup_workspace(workspace)

    async def _stage(
        self,
        stage: TransferStage,
        operation: Callable[[], Awaitable[None]],
        identifier: RepositoryIdentifier,
        outcome: TransferOutcome,
        cancel_event: Optional[asyncio.Event],
        on_stage: Optional[Callable[[TransferStage], None]],
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise MigrationCancelled()
        if on_stage is not None:
            on_stage(stage)

        self.logger.debug(f'{identifier}: {stage.value}')
        try:
            await retry_async(
                operation, self.policy, description=f'{identifier} {stage.value}'
            )
        except GitCommandError as e:
            message = self.redactor(str(e))
            self.logger.error(f'{identifier}: {stage.value} failed: {message}')
            raise TransferError(stage, message, transient=e.transient) from None
        except OSError as e:
            message = self.redactor(str(e))
            raise TransferError(stage, message, transient=False) from None

        outcome.stages_completed.append(stage)

    async def _fresh_clone(self, source: RemoteEndpoint, repo_path: str) -> None:
        # A failed attempt may leave a partial clone behind
        if os.path.exists(repo_path):
            shutil.rmtree(repo_path, ignore_errors=True)
        await self.runner.mirror_clone(source, repo_path)

    def _create_workspace(self, identifier: RepositoryIdentifier) -> str:
        """Create a uniquely named, owner-only workspace for one transfer."""
        if self.temp_dir:
            os.makedirs(self.temp_dir, mode=0o700, exist_ok=True)
        workspace = tempfile.mkdtemp(prefix=f'{identifier.slug}_', dir=self.temp_dir)
        os.chmod(workspace, 0o700)
        self.logger.debug(f'Created workspace {workspace}')
        return workspace

    def _cleanup_workspace(self, workspace: str) -> None:
        if not os.path.exists(workspace):
            return
        try:
            shutil.rmtree(workspace)
            self.logger.debug(f'Cleaned up workspace {workspace}')
        except OSError as e:
            self.logger.warning(f'Failed to clean up workspace {workspace}: {e}')
            shutil.rmtree(workspace, ignore_errors=True)

    def _retain(self, identifier: RepositoryIdentifier, repo_path: str) -> Optional[str]:
        """Move a finished clone to ``<retention_dir>/<owner>_<name>``.

        An older clone of the same repository is replaced. Both pushes are
        already done, so a failed move only loses the local copy and returns None.
        """
        target = Path(self.retention_dir) / identifier.slug
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            if target.exists():
                shutil.rmtree(target)
            shutil.move(repo_path, str(target))
        except OSError as e:
            self.logger.warning(
                f'Could not keep clone of {identifier} at {target}: {self.redactor(str(e))}'
            )
            return None
        self.logger.info(f'Kept clone of {identifier} at {target}')
        return str(target)
