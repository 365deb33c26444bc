"""Migration engine - main entry point for migration operations."""

import asyncio
from typing import Callable, Dict, List, Optional

from loguru import logger

from ..api.azure_devops import AzureDevOpsDestination
from ..api.github import GitHubSource
from ..config.config import Config
from ..config.credentials import CredentialStore
from ..git.operations import GitRunner
from ..git.transfer import MirrorTransfer
from ..models.repository import MigrationTask, RepositoryIdentifier
from ..utils.retry import BackoffPolicy
from .lister import RepoLister
from .provisioner import DestinationProvisioner
from .report import MigrationReport
from .scheduler import MigrationScheduler


class MigrationEngine:
    """Wires configuration and credentials into a ready-to-run migration."""

    def __init__(
        self,
        config: Config,
        credentials: CredentialStore,
        source: Optional[GitHubSource] = None,
        destination: Optional[AzureDevOpsDestination] = None,
        runner: Optional[GitRunner] = None,
    ):
        """Initialize migration engine.

        Args:
            config: Migration configuration
            credentials: Tokens for both hosts
            source: Source host collaborator (built from config if None)
            destination: Destination host collaborator (built from config if None)
            runner: Git collaborator (built from config if None)
        """
        self.config = config
        self.credentials = credentials
        self.logger = logger.bind(component='MigrationEngine')

        policy = BackoffPolicy.from_config(config.retry)
        dry_run = config.migration.dry_run

        self.source = source or GitHubSource(config.source, credentials)
        self.destination = destination or AzureDevOpsDestination(
            config.destination, credentials
        )
        self.runner = runner or GitRunner(config.git.executable, config.git.timeout)

        self.lister = RepoLister(
            self.source, default_owner=config.source.org, policy=policy
        )
        self.provisioner = DestinationProvisioner(
            self.destination, dry_run=dry_run, redactor=credentials.redact
        )
        self.transfer = MirrorTransfer(
            self.runner,
            policy=policy,
            temp_dir=config.git.temp_dir,
            keep_clones=config.git.keep_clones,
            retention_dir=config.git.retention_dir,
            redactor=credentials.redact,
        )
        self.scheduler = MigrationScheduler(
            self.source,
            self.provisioner,
            self.transfer,
            max_attempts=config.migration.max_attempts,
            policy=policy,
            dry_run=dry_run,
            redactor=credentials.redact,
        )

    def set_progress_callback(
        self, callback: Optional[Callable[[MigrationTask], None]]
    ) -> None:
        self.scheduler.on_task_complete = callback

    async def list_repositories(self) -> List[RepositoryIdentifier]:
        """Resolve the batch, from config or from the source host.

        Raises:
            ConfigError: If an explicit repository name is invalid
            SourceListError: If the source host cannot be listed
        """
        return await asyncio.to_thread(
            self.lister.list_repositories, self.config.migration.repos
        )

    async def migrate(
        self, identifiers: Optional[List[RepositoryIdentifier]] = None
    ) -> MigrationReport:
        """Migrate the batch.

        Args:
            identifiers: Repositories to migrate (listed if None)

        Returns:
            Batch report
        """
        if identifiers is None:
            identifiers = await self.list_repositories()

        mode = 'dry run' if self.config.migration.dry_run else 'migration'
        self.logger.info(
            f'Starting {mode} of {len(identifiers)} repositories to '
            f'{self.config.destination.org_url}/{self.config.destination.project}'
        )
        return await self.scheduler.run(
            identifiers, concurrency_limit=self.config.migration.concurrency
        )

    def cancel(self) -> None:
        self.scheduler.cancel()

    async def test_connectivity(self) -> Dict[str, bool]:
        """Check the source API, the destination API and the git binary."""
        self.logger.info('Testing connectivity')
        results = {
            'source': await asyncio.to_thread(self.source.test_connection),
            'destination': await asyncio.to_thread(self.destination.test_connection),
            'git': await self.runner.version() is not None,
        }
        for name, ok in results.items():
            if not ok:
                self.logger.warning(f'Connectivity check failed: {name}')
        return results

    def close(self) -> None:
        self.source.close()
        self.destination.close()
